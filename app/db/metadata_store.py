"""Relational persistence for document metadata records."""

import asyncio
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.config.logger import app_logger
from app.core.errors import StorageUnavailable
from app.db.db import Database
from app.models.document import Document


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into StorageUnavailable."""
    try:
        yield
    except (SQLAlchemyError, asyncio.TimeoutError, OSError) as e:
        app_logger.error(f"Metadata store {operation} failed: {type(e).__name__}: {e}")
        raise StorageUnavailable() from e


class MetadataStore:
    """CRUD over the ``documents`` table.

    ``insert`` is the only place ids and creation timestamps are produced.
    """

    def __init__(self, database: Database):
        self._db = database

    async def list(self) -> List[Document]:
        """Return every document, newest first."""
        with _storage_errors("list"):
            async with self._db.session() as session:
                result = await session.execute(
                    select(Document).order_by(Document.created_at.desc(), Document.id.desc())
                )
                return list(result.scalars().all())

    async def get(self, document_id: int) -> Optional[Document]:
        with _storage_errors("get"):
            async with self._db.session() as session:
                return await session.get(Document, document_id)

    async def insert(self, filename: str, storage_path: str, filesize: int) -> Document:
        document = Document(
            filename=filename,
            filepath=storage_path,
            filesize=filesize,
            created_at=datetime.now(timezone.utc),
        )
        with _storage_errors("insert"):
            async with self._db.session() as session:
                session.add(document)
                await session.commit()
                await session.refresh(document)

        app_logger.debug(f"Inserted document {document.id} ({storage_path})")
        return document

    async def delete(self, document_id: int) -> bool:
        """Delete a row; True iff it existed."""
        with _storage_errors("delete"):
            async with self._db.session() as session:
                result = await session.execute(sa_delete(Document).where(Document.id == document_id))
                await session.commit()
                return result.rowcount > 0

    async def ping(self) -> tuple[bool, str]:
        return await self._db.ping()
