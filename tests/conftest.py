"""Shared fixtures: every test gets its own SQLite database and upload directory."""

import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.config.settings import Settings
from app.main import create_app

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


class BytesSource:
    """Minimal async byte source, like an UploadFile without a declared size."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'documents.db'}",
        UPLOADS_DIR=str(tmp_path / "uploads"),
        LOG_TO_FILE=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def uploads_dir(settings: Settings) -> Path:
    return Path(settings.UPLOADS_DIR)


@pytest.fixture
def client(settings: Settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def upload(client: TestClient, filename: str = "a.pdf", data: bytes = PDF_BYTES, content_type: str = "application/pdf"):
    return client.post(
        "/api/documents/upload",
        files={"file": (filename, data, content_type)},
    )
