"""Checks run on an upload's declared metadata before anything is stored."""

import re
from typing import Optional

from app.config.settings import MAX_UPLOAD_SIZE
from app.core.errors import InvalidInput, PayloadTooLarge, UnsupportedMediaType

PDF_MEDIA_TYPE = "application/pdf"
PDF_EXTENSION = ".pdf"
MAX_FILENAME_LENGTH = 255

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


def normalize_filename(filename: Optional[str]) -> str:
    """Reduce a client-supplied name to a bare display name.

    Directory components (``/`` or ``\\``) and control characters are dropped.
    """
    if not filename:
        return ""
    name = re.split(r"[\\/]", filename)[-1]
    return _CONTROL_CHARS_RE.sub("", name).strip()


def _media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def _extension(filename: str) -> str:
    # A leading-dot name such as ".exe" counts as that extension
    _, dot, ext = filename.rpartition(".")
    if not dot or not ext:
        return ""
    return f".{ext.lower()}"


def validate_upload(
    content_type: Optional[str],
    filename: Optional[str],
    declared_size: Optional[int],
    max_size: int = MAX_UPLOAD_SIZE,
    size_label: str = "10MB",
) -> str:
    """Accept or reject an upload from its declared metadata.

    Rules are applied in order and the first failure wins:

    1. The media type must be ``application/pdf``; a filename extension, when
       present, must be ``.pdf``.
    2. A declared size must be positive and at most ``max_size``. An unknown
       size (``None``) is left to the blob store, which counts real bytes.
    3. The normalized filename must be non-empty and at most 255 characters.

    Returns:
        The normalized filename to persist.

    Raises:
        UnsupportedMediaType, PayloadTooLarge, InvalidInput
    """
    name = normalize_filename(filename)

    if _media_type(content_type) != PDF_MEDIA_TYPE:
        raise UnsupportedMediaType()
    if name and _extension(name) not in ("", PDF_EXTENSION):
        raise UnsupportedMediaType()

    if declared_size is not None:
        if declared_size > max_size:
            raise PayloadTooLarge(f"File size must be less than {size_label}")
        if declared_size <= 0:
            raise InvalidInput("Uploaded file is empty")

    if not name:
        raise InvalidInput("Filename is required")
    if len(name) > MAX_FILENAME_LENGTH:
        raise InvalidInput(f"Filename must be at most {MAX_FILENAME_LENGTH} characters")

    return name
