"""Document service: coordinates the blob store and the metadata store.

There is no transaction spanning both stores. Operations are ordered so that
a failure leaves, at worst, an orphan blob (create) or a row whose blob is
already gone (delete), never a silently corrupt record returned to a client.
"""

import asyncio
import time
from typing import List, Optional, Protocol

from app.config.logger import app_logger, log_performance
from app.config.settings import MAX_UPLOAD_SIZE
from app.core.errors import DocumentNotFound, StorageUnavailable
from app.models.document import Document
from app.services.blob_store import BlobHandle, ByteSource, StoredBlob
from app.services.upload_validator import validate_upload


class MetadataStoreProtocol(Protocol):
    async def list(self) -> List[Document]: ...

    async def get(self, document_id: int) -> Optional[Document]: ...

    async def insert(self, filename: str, storage_path: str, filesize: int) -> Document: ...

    async def delete(self, document_id: int) -> bool: ...


class BlobStoreProtocol(Protocol):
    async def put(self, source: ByteSource, original_filename: str) -> StoredBlob: ...

    async def get(self, storage_path: str) -> BlobHandle: ...

    async def delete(self, storage_path: str) -> bool: ...


class DocumentService:
    """Create, list, download and delete documents."""

    def __init__(
        self,
        metadata: MetadataStoreProtocol,
        blobs: BlobStoreProtocol,
        max_upload_size: int = MAX_UPLOAD_SIZE,
        size_label: str = "10MB",
    ):
        self.metadata = metadata
        self.blobs = blobs
        self.max_upload_size = max_upload_size
        self.size_label = size_label

    async def create(
        self,
        source: ByteSource,
        filename: Optional[str],
        content_type: Optional[str],
        declared_size: Optional[int],
    ) -> Document:
        """Validate, store the bytes, then record the metadata.

        If the metadata insert fails the new blob is deleted once, best-effort,
        and the insert error is re-raised unchanged.
        """
        start_time = time.perf_counter()
        name = validate_upload(
            content_type,
            filename,
            declared_size,
            max_size=self.max_upload_size,
            size_label=self.size_label,
        )

        stored = await self.blobs.put(source, name)

        try:
            document = await self.metadata.insert(name, stored.storage_path, stored.size)
        except (Exception, asyncio.CancelledError):
            app_logger.warning(f"Metadata insert failed; removing blob {stored.storage_path}")
            await self._compensate(stored.storage_path)
            raise

        log_performance("document upload", time.perf_counter() - start_time, size=stored.size)
        app_logger.info(f"Created document {document.id}: {name} ({stored.size} bytes)")
        return document

    async def _compensate(self, storage_path: str) -> None:
        try:
            await asyncio.shield(self.blobs.delete(storage_path))
        except Exception as e:
            app_logger.error(f"Could not remove orphan blob {storage_path}: {e}")

    async def list(self) -> List[Document]:
        return await self.metadata.list()

    async def get(self, document_id: int) -> Document:
        document = await self.metadata.get(document_id)
        if document is None:
            raise DocumentNotFound()
        return document

    async def open_download(self, document_id: int) -> tuple[Document, BlobHandle]:
        """Return the record and an opened blob.

        A record whose blob is missing raises BlobNotFound; the record itself
        is left in place.
        """
        document = await self.get(document_id)
        handle = await self.blobs.get(document.filepath)
        return document, handle

    async def delete(self, document_id: int) -> Document:
        """Delete the blob, then the record."""
        document = await self.get(document_id)

        existed = await self.blobs.delete(document.filepath)
        if not existed:
            app_logger.warning(f"Blob {document.filepath} for document {document_id} was already missing")

        if not await self.metadata.delete(document_id):
            app_logger.error(f"Document {document_id} disappeared before its row could be deleted")
            raise StorageUnavailable("Failed to delete document from database")

        app_logger.info(f"Deleted document {document_id}: {document.filename}")
        return document
