import os
import subprocess
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.dependencies import get_database
from app.api.documents.router import router as documents_router
from app.config.logger import (
    app_logger,
    configure_logging,
    log_request_end,
    log_request_error,
    log_request_start,
)
from app.config.settings import Settings, settings as default_settings
from app.core.errors import DocumentError
from app.db.db import Database
from app.db.metadata_store import MetadataStore
from app.services.blob_store import LocalBlobStore
from app.services.document_service import DocumentService
from app.utils.responses import error_response


_git_sha_cache: Optional[str] = None


def get_git_sha() -> str:
    """Get the current Git commit SHA (cached to avoid blocking)."""
    global _git_sha_cache
    if _git_sha_cache is not None:
        return _git_sha_cache

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=1.0,
        )
        _git_sha_cache = result.stdout.strip()[:8]
        return _git_sha_cache
    except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
        _git_sha_cache = "local-dev"
        return _git_sha_cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the stores and document service on startup, release them on shutdown."""
    settings: Settings = app.state.settings
    configure_logging(settings)
    app_logger.info(f"{settings.APP_NAME} starting up")

    try:
        database = Database(settings)
    except RuntimeError as e:
        app_logger.critical(f"Cannot start: {e}")
        raise

    try:
        await database.connect()

        blobs = LocalBlobStore(
            root=settings.UPLOADS_DIR,
            max_bytes=settings.MAX_UPLOAD_SIZE,
            chunk_size=settings.UPLOAD_CHUNK_SIZE,
            timeout=settings.STORAGE_TIMEOUT_SECONDS,
            size_label=settings.max_upload_size_label,
        )
        blobs.ensure_root()

        app.state.database = database
        app.state.document_service = DocumentService(
            metadata=MetadataStore(database),
            blobs=blobs,
            max_upload_size=settings.MAX_UPLOAD_SIZE,
            size_label=settings.max_upload_size_label,
        )
        app_logger.info("Application initialized successfully")

        yield
    finally:
        app.state.document_service = None
        app.state.database = None
        await database.dispose()
        app_logger.info(f"{settings.APP_NAME} shutdown complete")


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{"message": ...}``."""

    @app.exception_handler(DocumentError)
    async def document_error_handler(request: Request, exc: DocumentError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return error_response(400, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        app_logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return error_response(500, "Internal server error")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Application factory."""
    settings = settings or default_settings

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests with timing information using Loguru."""
        start_time = datetime.now()
        log_request_start(request)

        try:
            response = await call_next(request)
            process_time = (datetime.now() - start_time).total_seconds()
            log_request_end(request, response.status_code, process_time)
            return response
        except Exception as e:
            process_time = (datetime.now() - start_time).total_seconds()
            log_request_error(request, e, process_time)
            raise

    @app.get("/", tags=["health"])
    async def root():
        """Root endpoint with basic API information."""
        return {
            "message": f"Welcome to {settings.APP_NAME} API",
            "version": settings.APP_VERSION,
            "status": "operational",
            "docs": "/docs",
            "redoc": "/redoc",
        }

    @app.get("/status", tags=["health"])
    async def status():
        """Status endpoint with build information for CI/CD monitoring."""
        build_number = os.getenv("BUILD_NUMBER", "local-dev")
        git_sha = os.getenv("GIT_SHA", os.getenv("GITHUB_SHA", get_git_sha()))
        environment = os.getenv("ENVIRONMENT", os.getenv("ENV", "development"))

        return {
            "status": "ok",
            "build": build_number,
            "sha": git_sha,
            "env": environment,
        }

    @app.get("/health/db", tags=["health"])
    async def health_db(database: Optional[Database] = Depends(get_database)):
        """Database health endpoint."""
        if database is None:
            is_ok, message = False, "Database not initialized"
        else:
            is_ok, message = await database.ping()
        if not is_ok:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "db": "unavailable", "message": message},
            )
        return {"status": "ok", "db": "available", "message": message}

    register_exception_handlers(app)
    app.include_router(documents_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    app_logger.info(f"Starting {default_settings.APP_NAME} server")

    uvicorn.run(
        app,
        host=default_settings.HOST,
        port=default_settings.PORT,
        log_config=None,  # Use our custom logger
    )
