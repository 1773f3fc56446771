"""Database connection management using SQLModel with asyncpg or aiosqlite."""

import ssl
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from urllib.parse import urlparse, urlunparse

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.config.logger import app_logger
from app.config.settings import Settings


def get_db_url(settings: Settings) -> str:
    """Get database URL for SQLAlchemy with an async driver.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    db_url = (settings.DATABASE_URL or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL must be set")
    # SQLite or other non-Postgres URLs are returned as-is
    if db_url.startswith("sqlite"):
        return db_url

    # For Postgres URLs, normalize and strip sslmode (asyncpg handles SSL via connect_args)
    parsed = urlparse(db_url)
    query_parts = [p for p in parsed.query.split("&") if not p.startswith("sslmode=") and p]
    query = "&".join(query_parts)
    clean_url = urlunparse(
        (
            parsed.scheme,
            parsed.netloc,
            parsed.path,
            parsed.params,
            query,
            parsed.fragment,
        )
    )

    # Convert to asyncpg driver
    if clean_url.startswith("postgresql://"):
        clean_url = clean_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif clean_url.startswith("postgres://"):
        clean_url = clean_url.replace("postgres://", "postgresql+asyncpg://", 1)

    return clean_url


class Database:
    """Owns the async engine and session factory for one application instance."""

    def __init__(self, settings: Settings):
        self.url = get_db_url(settings)
        self._settings = settings
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker] = None

    def _engine_options(self) -> dict:
        timeout = self._settings.DATABASE_TIMEOUT_SECONDS

        if self.url.startswith("sqlite"):
            # aiosqlite: seconds to wait on a locked database
            return {"connect_args": {"timeout": timeout}}

        connect_args: dict = {"timeout": timeout, "command_timeout": timeout}
        if self._settings.DATABASE_SSL:
            # SSL context for managed Postgres (no certificate verification)
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
            connect_args["ssl"] = ssl_context

        return {
            "pool_size": self._settings.DATABASE_POOL_SIZE,
            "max_overflow": 0,
            "pool_timeout": timeout,
            "pool_pre_ping": True,
            "connect_args": connect_args,
        }

    async def connect(self) -> None:
        """Create the engine and make sure all tables exist."""
        app_logger.info("Initializing database connection")

        self._engine = create_async_engine(self.url, echo=False, **self._engine_options())
        self._session_maker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        # Import models so they register with SQLModel.metadata
        from app.models import document  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

        app_logger.info("Database initialized successfully")

    async def dispose(self) -> None:
        """Close the database engine."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None
            app_logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session bound to this database."""
        if not self._session_maker:
            raise RuntimeError("Database not initialized")

        async with self._session_maker() as session:
            yield session

    async def ping(self) -> tuple[bool, str]:
        """Run a lightweight health query against the database."""
        if not self._engine or not self._session_maker:
            return False, "Database not initialized"

        try:
            async with self._session_maker() as session:
                result = await session.execute(text("SELECT 1"))
                row = result.scalar()
                if row == 1:
                    return True, "Database connection healthy"
                return False, f"Unexpected response: {row}"
        except Exception as e:
            app_logger.warning(f"Database ping failed: {e}")
            return False, "Database query failed"
