"""FastAPI dependencies resolving the per-application resources built at startup."""

from fastapi import Request

from app.core.errors import StorageUnavailable
from app.db.db import Database
from app.services.document_service import DocumentService


def get_document_service(request: Request) -> DocumentService:
    """Dependency returning the DocumentService created in the app lifespan."""
    service = getattr(request.app.state, "document_service", None)
    if service is None:
        raise StorageUnavailable("Document storage is not initialized")
    return service


def get_database(request: Request) -> Database | None:
    return getattr(request.app.state, "database", None)
