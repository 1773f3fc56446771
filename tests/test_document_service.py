"""Tests for DocumentService ordering and compensation across the two stores."""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from app.core.errors import (
    BlobNotFound,
    DocumentNotFound,
    InvalidInput,
    PayloadTooLarge,
    StorageUnavailable,
    UnsupportedMediaType,
)
from app.models.document import Document
from app.services.blob_store import LocalBlobStore
from app.services.document_service import DocumentService

from conftest import PDF_BYTES, BytesSource


class InMemoryMetadataStore:
    def __init__(self):
        self.rows: Dict[int, Document] = {}
        self.next_id = 1
        self.calls: List[str] = []

    async def list(self) -> List[Document]:
        return sorted(self.rows.values(), key=lambda d: (d.created_at, d.id), reverse=True)

    async def get(self, document_id: int) -> Optional[Document]:
        return self.rows.get(document_id)

    async def insert(self, filename: str, storage_path: str, filesize: int) -> Document:
        self.calls.append("insert")
        document = Document(
            id=self.next_id,
            filename=filename,
            filepath=storage_path,
            filesize=filesize,
            created_at=datetime.now(timezone.utc),
        )
        self.rows[document.id] = document
        self.next_id += 1
        return document

    async def delete(self, document_id: int) -> bool:
        self.calls.append("delete")
        return self.rows.pop(document_id, None) is not None


class FailingInsertStore(InMemoryMetadataStore):
    async def insert(self, filename: str, storage_path: str, filesize: int) -> Document:
        raise StorageUnavailable()


class VanishingRowStore(InMemoryMetadataStore):
    """The row is deleted by someone else between lookup and delete."""

    async def delete(self, document_id: int) -> bool:
        self.rows.pop(document_id, None)
        return False


class UndeletableBlobStore(LocalBlobStore):
    async def delete(self, storage_path: str) -> bool:
        raise OSError("read-only filesystem")


class HangingInsertStore(InMemoryMetadataStore):
    """The database stalls until the request is abandoned."""

    async def insert(self, filename: str, storage_path: str, filesize: int) -> Document:
        self.calls.append("insert")
        await asyncio.sleep(5)
        return await super().insert(filename, storage_path, filesize)


@pytest.fixture
def blobs(tmp_path):
    store = LocalBlobStore(tmp_path / "blobs", max_bytes=1024)
    store.ensure_root()
    return store


@pytest.fixture
def metadata():
    return InMemoryMetadataStore()


@pytest.fixture
def service(metadata, blobs):
    return DocumentService(metadata, blobs, max_upload_size=1024)


def blob_names(blobs):
    return sorted(p.name for p in blobs.root.iterdir())


def create(service, data=PDF_BYTES, filename="a.pdf", content_type="application/pdf", declared_size=None):
    return asyncio.run(service.create(BytesSource(data), filename, content_type, declared_size))


class TestCreate:
    def test_create_stores_bytes_and_metadata(self, service, metadata, blobs):
        document = create(service, data=b"12345", declared_size=5)

        assert document.id == 1
        assert document.filename == "a.pdf"
        assert document.filesize == 5
        assert blob_names(blobs) == [document.filepath]
        assert (blobs.root / document.filepath).read_bytes() == b"12345"

    def test_filesize_is_actual_byte_count(self, service):
        document = create(service, data=b"x" * 300, declared_size=None)
        assert document.filesize == 300

    def test_validation_failure_touches_nothing(self, service, metadata, blobs):
        with pytest.raises(UnsupportedMediaType):
            create(service, content_type="text/plain")

        assert metadata.calls == []
        assert blob_names(blobs) == []

    def test_declared_oversize_rejected_before_storage(self, service, metadata, blobs):
        with pytest.raises(PayloadTooLarge):
            create(service, declared_size=2048)
        assert blob_names(blobs) == []

    def test_actual_oversize_rejected_by_storage(self, service, metadata, blobs):
        with pytest.raises(PayloadTooLarge):
            create(service, data=b"x" * 1025, declared_size=None)

        assert metadata.calls == []
        assert blob_names(blobs) == []

    def test_empty_file_rejected(self, service, metadata, blobs):
        with pytest.raises(InvalidInput):
            create(service, data=b"", declared_size=None)
        assert metadata.rows == {}
        assert blob_names(blobs) == []

    def test_insert_failure_removes_blob(self, blobs):
        service = DocumentService(FailingInsertStore(), blobs, max_upload_size=1024)

        with pytest.raises(StorageUnavailable):
            create(service)
        assert blob_names(blobs) == []

    def test_failed_compensation_keeps_original_error(self, tmp_path):
        blobs = UndeletableBlobStore(tmp_path / "blobs", max_bytes=1024)
        blobs.ensure_root()
        service = DocumentService(FailingInsertStore(), blobs, max_upload_size=1024)

        with pytest.raises(StorageUnavailable):
            create(service)
        # the orphan is left behind, only logged
        assert len(blob_names(blobs)) == 1

    def test_cancel_during_insert_removes_blob(self, blobs):
        metadata = HangingInsertStore()
        service = DocumentService(metadata, blobs, max_upload_size=1024)

        async def cancel_during_insert():
            task = asyncio.create_task(service.create(BytesSource(PDF_BYTES), "a.pdf", "application/pdf", None))
            while "insert" not in metadata.calls:
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(cancel_during_insert())
        assert metadata.rows == {}
        assert blob_names(blobs) == []

    def test_create_is_never_idempotent(self, service):
        first = create(service)
        second = create(service)

        assert first.id != second.id
        assert first.filepath != second.filepath


class TestReadAndDelete:
    def test_list_newest_first(self, service):
        ids = [create(service, filename=f"{n}.pdf").id for n in range(3)]
        listed = asyncio.run(service.list())
        assert [d.id for d in listed] == list(reversed(ids))

    def test_open_download_returns_bytes(self, service):
        document = create(service, data=b"%PDF-body")
        found, handle = asyncio.run(service.open_download(document.id))

        assert found.id == document.id
        assert b"".join(handle.iter_chunks()) == b"%PDF-body"

    def test_download_unknown_id(self, service):
        with pytest.raises(DocumentNotFound):
            asyncio.run(service.open_download(99))

    def test_download_with_missing_blob_keeps_row(self, service, metadata, blobs):
        document = create(service)
        (blobs.root / document.filepath).unlink()

        with pytest.raises(BlobNotFound):
            asyncio.run(service.open_download(document.id))
        assert document.id in metadata.rows

    def test_delete_removes_blob_then_row(self, service, metadata, blobs):
        document = create(service)
        metadata.calls.clear()

        asyncio.run(service.delete(document.id))

        assert metadata.calls == ["delete"]
        assert metadata.rows == {}
        assert blob_names(blobs) == []

    def test_delete_unknown_id_changes_nothing(self, service, metadata, blobs):
        document = create(service)
        metadata.calls.clear()

        with pytest.raises(DocumentNotFound):
            asyncio.run(service.delete(document.id + 1))

        assert metadata.calls == []
        assert list(metadata.rows) == [document.id]
        assert blob_names(blobs) == [document.filepath]

    def test_delete_with_missing_blob_still_removes_row(self, service, metadata, blobs):
        document = create(service)
        (blobs.root / document.filepath).unlink()

        asyncio.run(service.delete(document.id))
        assert metadata.rows == {}

    def test_row_vanishing_mid_delete_is_storage_error(self, blobs):
        metadata = VanishingRowStore()
        service = DocumentService(metadata, blobs, max_upload_size=1024)
        document = create(service)

        with pytest.raises(StorageUnavailable, match="Failed to delete document from database"):
            asyncio.run(service.delete(document.id))
