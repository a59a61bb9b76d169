"""
Global Logger Manager using loguru.

Configuration via environment (.env is loaded by the config boundary):
- LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- LOG_MODE: Environment mode (development, production)
- LOG_DIR: Log directory for production (default: logs)
- LOG_ROTATION: Rotation size (e.g., "10 MB", "1 GB", "1 day")
- LOG_RETENTION: Retention time (e.g., "7 days", "1 month")
- LOG_COMPRESSION: Compression format (e.g., "zip", "gz", "tar")
"""

import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_MODE = "development"
DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_ROTATION = "10 MB"
DEFAULT_LOG_RETENTION = "7 days"
DEFAULT_LOG_COMPRESSION = "zip"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
    "{extra[name]}:{function}:{line} - {message}"
)


class LoggerManager:
    """Global singleton logger manager."""

    _instance: Optional["LoggerManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "LoggerManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if LoggerManager._initialized:
            return
        LoggerManager._initialized = True

        self.log_level = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
        self.log_mode = os.getenv("LOG_MODE", DEFAULT_LOG_MODE).lower()
        self.log_dir = Path(os.getenv("LOG_DIR", DEFAULT_LOG_DIR))
        self.log_rotation = os.getenv("LOG_ROTATION", DEFAULT_LOG_ROTATION)
        self.log_retention = os.getenv("LOG_RETENTION", DEFAULT_LOG_RETENTION)
        self.log_compression = os.getenv("LOG_COMPRESSION", DEFAULT_LOG_COMPRESSION)

        self._configure()

    def _configure(self) -> None:
        # Drop loguru's default handler and anything we added before
        logger.remove()

        if self.log_mode == "production":
            self._configure_production()
        else:
            self._configure_development()

    def _configure_development(self) -> None:
        """Console output for development."""
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=self.log_level,
            colorize=True,
            backtrace=True,
            diagnose=True,
        )

    def _configure_production(self) -> None:
        """File output with rotation; errors also go to their own file."""
        self.log_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            self.log_dir / "analyst_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level=self.log_level,
            rotation=self.log_rotation,
            retention=self.log_retention,
            compression=self.log_compression,
            encoding="utf-8",
            enqueue=True,
        )
        logger.add(
            self.log_dir / "error_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level="ERROR",
            rotation=self.log_rotation,
            retention=self.log_retention,
            compression=self.log_compression,
            encoding="utf-8",
            enqueue=True,
        )

    def get_logger(self, name: Optional[str] = None):
        """
        Get a logger bound to ``name`` ("root" when omitted).

        Example:
            log = LoggerManager().get_logger(__name__)
            log.info("Agent started")
        """
        return logger.bind(name=name or "root")

    def set_level(self, level: str) -> None:
        """Change log level at runtime by rebuilding the handlers."""
        self.log_level = level.upper()
        self._configure()


def get_logger(name: Optional[str] = None):
    """
    Get a logger instance. This is the recommended way to use the logger.

    Example:
        from analyst.utils.logger import get_logger

        log = get_logger(__name__)
        log.info("Tool finished")
    """
    return LoggerManager().get_logger(name)


def set_log_level(level: str) -> None:
    """Change log level at runtime (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""
    LoggerManager().set_level(level)


__all__ = ["LoggerManager", "get_logger", "set_log_level", "logger"]
