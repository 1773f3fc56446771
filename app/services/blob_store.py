"""Filesystem blob storage for uploaded PDF bytes.

Blobs are addressed by a server-generated storage path (``<epoch-ms>-<random><ext>``)
that is never derived from the client's filename, so uploads can neither
collide nor escape the upload directory.
"""

import asyncio
import os
import re
import secrets
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Protocol

from fastapi.concurrency import run_in_threadpool

from app.config.logger import app_logger
from app.core.errors import BlobNotFound, InvalidInput, PayloadTooLarge, StorageUnavailable

_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,10}$")
_KEY_ATTEMPTS = 5


class ByteSource(Protocol):
    """Anything with an async ``read(size)`` (e.g. ``fastapi.UploadFile``)."""

    async def read(self, size: int = -1) -> bytes: ...


@dataclass
class StoredBlob:
    storage_path: str
    size: int


@dataclass
class BlobHandle:
    """An opened blob ready to be streamed to a client."""

    storage_path: str
    size: int
    file: BinaryIO

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        try:
            while True:
                chunk = self.file.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.file.close()

    def close(self) -> None:
        self.file.close()


class LocalBlobStore:
    """Stores blobs as files in a single directory."""

    def __init__(
        self,
        root: str | Path,
        max_bytes: int,
        chunk_size: int = 64 * 1024,
        timeout: float = 60.0,
        size_label: str = "10MB",
    ):
        self.root = Path(root)
        self.max_bytes = max_bytes
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.size_label = size_label

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        app_logger.info(f"Blob storage directory: {self.root.resolve()}")

    @staticmethod
    def generate_key(original_filename: str) -> str:
        """Build a fresh storage path; only the (sanitized) extension comes from the client."""
        suffix = Path(original_filename).suffix.lower()
        ext = suffix if _EXTENSION_RE.match(suffix) else ""
        return f"{time.time_ns() // 1_000_000}-{secrets.randbelow(1_000_000_000)}{ext}"

    def _resolve(self, storage_path: str) -> Optional[Path]:
        """Map a storage path to a file directly inside the root, or None."""
        if not storage_path:
            return None
        root = self.root.resolve()
        candidate = (root / storage_path).resolve()
        if candidate.parent != root:
            return None
        return candidate

    def _open_new(self, path: Path) -> BinaryIO:
        return open(path, "xb")

    def _create_unique(self, original_filename: str, pending: "_PendingBlob") -> None:
        """Create a fresh empty blob file and hand it to ``pending`` (runs in a worker thread)."""
        for _ in range(_KEY_ATTEMPTS):
            storage_path = self.generate_key(original_filename)
            try:
                handle = self._open_new(self.root / storage_path)
            except FileExistsError:
                continue
            pending.claim(storage_path, handle)
            return
        raise StorageUnavailable("Could not allocate a storage path")

    @staticmethod
    def _finish(handle: BinaryIO) -> None:
        handle.flush()
        os.fsync(handle.fileno())
        handle.close()

    async def put(self, source: ByteSource, original_filename: str) -> StoredBlob:
        """Stream ``source`` into a new blob and return its key and byte count.

        Raises:
            PayloadTooLarge: More than ``max_bytes`` were received
            InvalidInput: The source was empty
            StorageUnavailable: The medium failed or the write timed out
        """
        try:
            return await asyncio.wait_for(self._write(source, original_filename), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            app_logger.error(f"Blob write timed out after {self.timeout}s")
            raise StorageUnavailable("Timed out writing file to storage") from e

    async def _write(self, source: ByteSource, original_filename: str) -> StoredBlob:
        pending = _PendingBlob(self.root)
        written = 0
        try:
            await run_in_threadpool(self._create_unique, original_filename, pending)
            handle = pending.handle

            while True:
                chunk = await source.read(self.chunk_size)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_bytes:
                    raise PayloadTooLarge(f"File size must be less than {self.size_label}")
                await run_in_threadpool(handle.write, chunk)

            if written == 0:
                raise InvalidInput("Uploaded file is empty")

            await run_in_threadpool(self._finish, handle)
        except (Exception, asyncio.CancelledError) as e:
            # Cleanup stays synchronous so it also runs inside a cancelled task
            pending.abandon()
            if isinstance(e, OSError):
                app_logger.error(f"Failed to write blob in {self.root}: {e}")
                raise StorageUnavailable() from e
            raise

        app_logger.debug(f"Stored blob {pending.storage_path} ({written} bytes)")
        return StoredBlob(storage_path=pending.storage_path, size=written)

    @staticmethod
    def _unlink(path: Path) -> None:
        path.unlink()

    def _open(self, storage_path: str, path: Path) -> BlobHandle:
        handle = open(path, "rb")
        size = os.fstat(handle.fileno()).st_size
        return BlobHandle(storage_path=storage_path, size=size, file=handle)

    async def get(self, storage_path: str) -> BlobHandle:
        path = self._resolve(storage_path)
        if path is None:
            raise BlobNotFound()
        try:
            return await asyncio.wait_for(
                run_in_threadpool(self._open, storage_path, path), timeout=self.timeout
            )
        except (FileNotFoundError, IsADirectoryError) as e:
            raise BlobNotFound() from e
        except asyncio.TimeoutError as e:
            app_logger.error(f"Opening blob {storage_path} timed out after {self.timeout}s")
            raise StorageUnavailable() from e
        except OSError as e:
            app_logger.error(f"Failed to open blob {storage_path}: {e}")
            raise StorageUnavailable() from e

    async def delete(self, storage_path: str) -> bool:
        """Remove a blob; returns whether it existed."""
        path = self._resolve(storage_path)
        if path is None:
            return False
        try:
            await asyncio.wait_for(run_in_threadpool(self._unlink, path), timeout=self.timeout)
            return True
        except FileNotFoundError:
            return False
        except asyncio.TimeoutError as e:
            app_logger.error(f"Deleting blob {storage_path} timed out after {self.timeout}s")
            raise StorageUnavailable() from e
        except OSError as e:
            app_logger.error(f"Failed to delete blob {storage_path}: {e}")
            raise StorageUnavailable() from e


def _discard(handle: BinaryIO, path: Path) -> None:
    """Close and remove a partial write."""
    try:
        handle.close()
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            app_logger.error(f"Failed to remove partial blob {path.name}: {e}")


class _PendingBlob:
    """A blob file being created by a worker thread for a writer that may give up.

    Whichever of ``claim`` (worker) and ``abandon`` (writer) runs second removes
    the file, so a cancelled or timed-out write never leaves one behind.
    """

    def __init__(self, root: Path):
        self.root = root
        self.storage_path: Optional[str] = None
        self.handle: Optional[BinaryIO] = None
        self._abandoned = False
        self._lock = threading.Lock()

    def claim(self, storage_path: str, handle: BinaryIO) -> None:
        with self._lock:
            self.storage_path, self.handle = storage_path, handle
            if not self._abandoned:
                return
        _discard(handle, self.root / storage_path)

    def abandon(self) -> None:
        with self._lock:
            self._abandoned = True
            storage_path, handle = self.storage_path, self.handle
        if handle is not None:
            _discard(handle, self.root / storage_path)
