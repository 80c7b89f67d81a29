"""
Web server bootstrap for the PR monitor API.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load .env so GITHUB_TOKEN is available when the server is started directly
# (e.g. uvicorn prmonitor.web.server:create_server_app).
load_dotenv()
load_dotenv(Path.cwd() / ".env")

import uvicorn
from loguru import logger

from ..config import PRMonitorConfig
from .api import create_app


class InterceptHandler(logging.Handler):
    """Intercept standard logging messages toward Loguru sinks."""
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(config: PRMonitorConfig | None = None) -> None:
    """Configure loguru to capture stdlib logging and write to console and file."""
    config = config or PRMonitorConfig.load()
    log_file = config.log_path
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stderr,
        level=config.logging.level,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> - <level>{message}</level>",
    )
    logger.add(
        str(log_file),
        level="DEBUG",
        rotation="10 MB",
        retention="1 week",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi"):
        logging_logger = logging.getLogger(logger_name)
        logging_logger.handlers = [InterceptHandler()]
        logging_logger.propagate = False

    # urllib3 retries are noise at INFO
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def create_server_app() -> object:
    config = PRMonitorConfig.load()
    setup_logging(config)
    logger.info("Starting prmonitor API server...")
    return create_app()


def run_server(host: str | None = None, port: int | None = None) -> None:
    config = PRMonitorConfig.load()
    uvicorn.run(
        "prmonitor.web.server:create_server_app",
        host=host or config.web.host,
        port=port or config.web.port,
        log_level="info",
        factory=True,
    )
