"""Document metadata model."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from app.config.settings import MAX_UPLOAD_SIZE


class Document(SQLModel, table=True):
    """Metadata for one uploaded PDF; the bytes live in the blob store at ``filepath``."""

    __tablename__ = "documents"
    # Never hand out the id of a deleted row again
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    filename: str = Field(max_length=255, min_length=1)
    filepath: str = Field(max_length=500, min_length=1, unique=True)
    filesize: int = Field(ge=1, le=MAX_UPLOAD_SIZE)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
