from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field

load_dotenv()


MAX_UPLOAD_SIZE = 10 * 1024 * 1024


class Settings(BaseSettings):
    """Base settings for the application."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Document Portal"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Upload, list, download and delete PDF documents"

    HOST: str = "0.0.0.0"
    PORT: int = 5000
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # Database settings
    DATABASE_URL: str = Field(default="", description="SQLAlchemy URL (postgresql:// or sqlite+aiosqlite://)")
    DATABASE_SSL: bool = False
    DATABASE_POOL_SIZE: int = 20
    DATABASE_TIMEOUT_SECONDS: float = 30.0

    # Blob storage settings
    UPLOADS_DIR: str = "uploads"
    MAX_UPLOAD_SIZE: int = Field(default=MAX_UPLOAD_SIZE, ge=1)
    UPLOAD_CHUNK_SIZE: int = Field(default=64 * 1024, ge=1)
    STORAGE_TIMEOUT_SECONDS: float = 60.0

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOGS_DIR: str = "logs"
    LOG_TO_FILE: bool = True

    @computed_field
    @property
    def max_upload_size_label(self) -> str:
        """Human readable upload cap used in client-facing messages."""
        megabytes = self.MAX_UPLOAD_SIZE / (1024 * 1024)
        if megabytes.is_integer():
            return f"{int(megabytes)}MB"
        return f"{megabytes:.2f}MB"


settings = Settings()
