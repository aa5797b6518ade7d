"""
Logging configuration for the sowing_plc library.

Library modules only ever call ``logging.getLogger(__name__)``. Applications
call :meth:`PlcLoggingConfig.initialize` once at startup to attach handlers:
- Console handler (optionally colorized)
- Rotating file handler (standard or JSON lines)
- Optional rate limiting for repeated messages, e.g. late responses from a
  flapping PLC

Example:
    >>> from sowing_plc.helper.logging_config import PlcLoggingConfig, get_logger
    >>> PlcLoggingConfig.initialize(log_level="DEBUG", enable_file=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("Sorter started")
"""
import json
import logging
import logging.config
import logging.handlers
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = "sowing_plc"
LOG_LEVEL_ENV = "SOWING_PLC_LOG_LEVEL"


class JsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON objects for easy parsing by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


class ColoredFormatter(logging.Formatter):
    """
    Colored console formatter for better readability.

    Uses ANSI color codes to highlight different log levels.
    """

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{self.BOLD}{levelname}{self.RESET}"

        formatted = super().format(record)

        # Reset levelname to avoid side effects on other handlers
        record.levelname = levelname

        return formatted


class RateLimitFilter(logging.Filter):
    """
    Filter that rate-limits repeated log messages.

    Suppresses identical messages (same module, level and format string)
    within a time window.
    """

    def __init__(self, rate: float = 1.0):
        """
        Initialize rate limit filter.

        Args:
            rate: Minimum seconds between identical messages.
        """
        super().__init__()
        self.rate = rate
        self.last_log: Dict[tuple, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter log record based on rate limit."""
        key = (record.module, record.levelno, record.msg)
        now = time.monotonic()

        if key in self.last_log and now - self.last_log[key] < self.rate:
            return False

        self.last_log[key] = now
        return True


class PlcLoggingConfig:
    """
    Centralized logging configuration for the sowing_plc library.
    """

    _initialized = False
    _log_directory = Path("log/sowing_plc")

    @classmethod
    def initialize(
        cls,
        log_level: Optional[str] = None,
        log_directory: Optional[Path] = None,
        log_config: Optional[Dict[str, Any]] = None,
        enable_console: bool = True,
        enable_file: bool = True,
        enable_colors: bool = True,
        enable_json: bool = False,
        rate_limit: Optional[float] = None,
    ) -> None:
        """
        Initialize the logging configuration.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                      Falls back to the SOWING_PLC_LOG_LEVEL environment variable.
            log_directory: Directory where log files will be stored.
            log_config: Optional custom dictConfig, replaces the default.
            enable_console: Whether to enable console logging.
            enable_file: Whether to enable file logging.
            enable_colors: Whether to use colored output (console only).
            enable_json: Whether to use JSON formatting (file only).
            rate_limit: Minimum seconds between duplicate messages (None = disabled).
        """
        if cls._initialized:
            logging.getLogger(__name__).debug("Logging already initialized, skipping")
            return

        if log_level is None:
            log_level = os.getenv(LOG_LEVEL_ENV, "INFO")
        log_level = log_level.upper()

        if log_directory is not None:
            cls._log_directory = Path(log_directory)

        if log_config is None:
            if enable_file:
                cls._log_directory.mkdir(parents=True, exist_ok=True)
            log_config = cls._build_default_config(
                log_level=log_level,
                log_directory=cls._log_directory,
                enable_console=enable_console,
                enable_file=enable_file,
                enable_colors=enable_colors,
                enable_json=enable_json,
                rate_limit=rate_limit,
            )

        logging.config.dictConfig(log_config)
        cls._initialized = True

        logging.getLogger(ROOT_LOGGER_NAME).info(
            "✅ Logging initialized (level=%s, dir=%s, colors=%s, json=%s)",
            log_level, cls._log_directory, enable_colors, enable_json,
        )

    @classmethod
    def _build_default_config(
        cls,
        log_level: str,
        log_directory: Path,
        enable_console: bool,
        enable_file: bool,
        enable_colors: bool,
        enable_json: bool,
        rate_limit: Optional[float],
    ) -> Dict[str, Any]:
        """
        Build default logging configuration.

        Returns:
            Logging configuration dictionary.
        """
        formatters = {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)-8s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)-8s - [%(filename)s:%(lineno)d] - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "colored": {
                "()": "sowing_plc.helper.logging_config.ColoredFormatter",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "json": {
                "()": "sowing_plc.helper.logging_config.JsonFormatter",
            }
        }

        filters: Dict[str, Any] = {}
        if rate_limit is not None:
            filters["rate_limit"] = {
                "()": "sowing_plc.helper.logging_config.RateLimitFilter",
                "rate": rate_limit
            }

        handlers: Dict[str, Any] = {}
        active_handlers = []

        if enable_console:
            console_handler: Dict[str, Any] = {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "colored" if enable_colors else "standard",
                "stream": "ext://sys.stdout"
            }
            if rate_limit is not None:
                console_handler["filters"] = ["rate_limit"]
            handlers["console"] = console_handler
            active_handlers.append("console")

        if enable_file:
            file_handler: Dict[str, Any] = {
                "class": "logging.handlers.RotatingFileHandler",
                "level": log_level,
                "formatter": "json" if enable_json else "detailed",
                "filename": str(log_directory / "sowing_plc.log"),
                "maxBytes": 10485760,  # 10MB
                "backupCount": 10,
                "encoding": "utf8"
            }
            if rate_limit is not None:
                file_handler["filters"] = ["rate_limit"]
            handlers["file"] = file_handler
            active_handlers.append("file")

        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": formatters,
            "filters": filters,
            "handlers": handlers,
            "loggers": {
                ROOT_LOGGER_NAME: {
                    "level": log_level,
                    "handlers": active_handlers,
                    "propagate": False
                },
            },
        }

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger instance, initializing logging on first use.
        """
        if not cls._initialized:
            cls.initialize()

        return logging.getLogger(name)

    @classmethod
    def set_level(cls, level: str, logger_name: Optional[str] = None) -> None:
        """
        Dynamically change logging level.

        Args:
            level: New logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            logger_name: Specific logger to update, or None for the library root logger.
        """
        logger = logging.getLogger(logger_name or ROOT_LOGGER_NAME)
        numeric_level = getattr(logging, level.upper(), logging.INFO)
        logger.setLevel(numeric_level)

        for handler in logger.handlers:
            handler.setLevel(numeric_level)

        logger.info("Log level changed to %s for %s", level, logger.name)

    @classmethod
    def reset(cls) -> None:
        """
        Reset the logging configuration.

        This is mainly useful for testing.
        """
        cls._initialized = False
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        root.setLevel(logging.NOTSET)
        root.propagate = True


def get_logger(name: str) -> logging.Logger:
    """
    Convenience function to get a logger.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Application started")
    """
    return PlcLoggingConfig.get_logger(name)


@contextmanager
def temporary_log_level(level: str, logger_name: Optional[str] = None):
    """
    Context manager for temporarily changing log level.

    Example:
        >>> with temporary_log_level("DEBUG", "sowing_plc.com.industrial.modbus"):
        ...     await client.read_holding_registers(0x10, 4)
    """
    logger = logging.getLogger(logger_name or ROOT_LOGGER_NAME)
    original_level = logger.level

    try:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        yield logger
    finally:
        logger.setLevel(original_level)
