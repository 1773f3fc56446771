"""Document upload, listing, download and deletion endpoints."""

import re
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import StreamingResponse

from app.api.dependencies import get_document_service
from app.api.documents.schemas import ERROR_RESPONSES, DocumentResponse
from app.config.logger import app_logger
from app.core.errors import DocumentError, DocumentNotFound, InternalError, InvalidInput
from app.services.document_service import DocumentService
from app.utils.responses import SuccessResponse, success_response

router = APIRouter(prefix="/api/documents", tags=["documents"])

# Largest value of the documents.id column (PostgreSQL SERIAL)
MAX_DOCUMENT_ID = 2**31 - 1
# Characters encodeURIComponent leaves alone besides the unreserved set
_DISPOSITION_SAFE = "!'()*"


def parse_document_id(raw: str) -> int:
    """Parse a path id; only positive decimal integers are accepted."""
    if not re.fullmatch(r"[0-9]+", raw):
        raise InvalidInput("Invalid document ID")
    document_id = int(raw)
    if document_id <= 0:
        raise InvalidInput("Invalid document ID")
    if document_id > MAX_DOCUMENT_ID:
        raise DocumentNotFound()
    return document_id


def content_disposition(filename: str) -> str:
    return f'attachment; filename="{quote(filename, safe=_DISPOSITION_SAFE)}"'


@router.get(
    "",
    response_model=List[DocumentResponse],
    responses={500: ERROR_RESPONSES[500]},
    summary="List all documents, newest first",
)
async def list_documents(
    service: DocumentService = Depends(get_document_service),
) -> List[DocumentResponse]:
    try:
        documents = await service.list()
    except DocumentError:
        raise
    except Exception as e:
        app_logger.error(f"Error fetching documents: {e}")
        raise InternalError("Failed to fetch documents")

    return [DocumentResponse.model_validate(document) for document in documents]


@router.post(
    "/upload",
    status_code=status.HTTP_201_CREATED,
    response_model=DocumentResponse,
    responses={400: ERROR_RESPONSES[400], 500: ERROR_RESPONSES[500]},
    summary="Upload a PDF document",
)
async def upload_document(
    file: Optional[UploadFile] = File(default=None, description="PDF file, at most 10MB"),
    service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    """Store an uploaded PDF and create its metadata record.

    The file must be sent as multipart form data in the ``file`` field with
    content type ``application/pdf``.
    """
    if file is None:
        raise InvalidInput("No file uploaded")

    try:
        document = await service.create(
            source=file,
            filename=file.filename,
            content_type=file.content_type,
            declared_size=file.size,
        )
    except DocumentError as e:
        app_logger.warning(f"Upload of {file.filename!r} rejected: {e.message}")
        raise
    except Exception as e:
        app_logger.error(f"Error uploading document: {e}")
        raise InternalError("Failed to upload document")
    finally:
        await file.close()

    return DocumentResponse.model_validate(document)


@router.get(
    "/{document_id}",
    response_class=StreamingResponse,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "The PDF file"},
        **ERROR_RESPONSES,
    },
    summary="Download a document",
)
async def download_document(
    document_id: str,
    service: DocumentService = Depends(get_document_service),
) -> StreamingResponse:
    doc_id = parse_document_id(document_id)

    try:
        document, blob = await service.open_download(doc_id)
    except DocumentError as e:
        app_logger.warning(f"Download of document {doc_id} failed: {e.message}")
        raise
    except Exception as e:
        app_logger.error(f"Error downloading document {doc_id}: {e}")
        raise InternalError("Failed to download document")

    return StreamingResponse(
        blob.iter_chunks(),
        media_type="application/pdf",
        headers={
            "Content-Disposition": content_disposition(document.filename),
            "Content-Length": str(blob.size),
        },
    )


@router.delete(
    "/{document_id}",
    response_model=SuccessResponse,
    responses=ERROR_RESPONSES,
    summary="Delete a document and its file",
)
async def delete_document(
    document_id: str,
    service: DocumentService = Depends(get_document_service),
) -> SuccessResponse:
    doc_id = parse_document_id(document_id)

    try:
        await service.delete(doc_id)
    except DocumentError:
        raise
    except Exception as e:
        app_logger.error(f"Error deleting document {doc_id}: {e}")
        raise InternalError("Failed to delete document")

    return success_response(message="Document deleted successfully")
