"""Models module - imports all models for SQLModel registration."""

from app.models.document import Document

__all__ = [
    "Document",
]
