"""
Logger configuration for the Document Portal using Loguru.

Console output always; rotating files for application, error, request and
performance logs when ``LOG_TO_FILE`` is enabled. Sinks are installed at
application startup, not at import.
"""

import sys
from pathlib import Path

from fastapi import Request
from loguru import logger

from app.config.settings import Settings

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
TAGGED_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"

# file name, level, rotation, retention, message tag filter
FILE_SINKS = [
    ("app.log", "DEBUG", "10 MB", "7 days", None),
    ("errors.log", "ERROR", "5 MB", "30 days", None),
    ("requests.log", "INFO", "20 MB", "14 days", "REQUEST"),
    ("performance.log", "INFO", "10 MB", "7 days", "PERFORMANCE"),
]


def _tag_filter(tag: str):
    return lambda record: tag in record["message"]


class LoguruConfig:
    """Loguru configuration class for the application."""

    def __init__(self, logs_dir: str = "logs", log_to_file: bool = True):
        self.logs_dir = Path(logs_dir)
        self.log_to_file = log_to_file

    def setup_logger(self, log_level: str = "INFO") -> None:
        """Replace all Loguru handlers with the application's sinks."""
        logger.remove()

        logger.add(
            sys.stdout,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
            level=log_level,
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

        if not self.log_to_file:
            return

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        for file_name, level, rotation, retention, tag in FILE_SINKS:
            logger.add(
                self.logs_dir / file_name,
                format=TAGGED_FORMAT if tag else FILE_FORMAT,
                level=level,
                rotation=rotation,
                retention=retention,
                compression="zip",
                encoding="utf-8",
                backtrace=tag is None,
                diagnose=False,
                filter=_tag_filter(tag) if tag else None,
            )


def configure_logging(settings: Settings) -> None:
    """Install the log sinks described by ``settings``."""
    LoguruConfig(
        logs_dir=settings.LOGS_DIR,
        log_to_file=settings.LOG_TO_FILE,
    ).setup_logger(settings.LOG_LEVEL)


def _client(request: Request) -> str:
    return request.client.host if request.client else "-"


def log_request_start(request: Request) -> None:
    logger.info(
        "REQUEST START: {method} {path} from {client}",
        method=request.method,
        path=request.url.path,
        client=_client(request),
    )


def log_request_end(request: Request, status_code: int, process_time: float) -> None:
    logger.info(
        "REQUEST END: {method} {path} - {status_code} ({process_time:.4f}s)",
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        process_time=process_time,
    )


def log_request_error(request: Request, error: Exception, process_time: float) -> None:
    logger.error(
        "REQUEST ERROR: {method} {path} - {error_type}: {error} ({process_time:.4f}s)",
        method=request.method,
        path=request.url.path,
        error_type=type(error).__name__,
        error=str(error),
        process_time=process_time,
    )


def log_performance(operation: str, duration: float, **kwargs) -> None:
    """Log performance metrics using Loguru."""
    logger.info(
        "PERFORMANCE: {operation} completed in {duration:.4f}s",
        operation=operation,
        duration=duration,
        **kwargs,
    )


# Export logger for use in other modules
app_logger = logger
