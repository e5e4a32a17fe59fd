"""
Logging setup for Hydra migration.

Console output goes through Rich; file output can be rotated and can be
switched to one JSON document per line for log shippers.
"""

import json
import logging
import logging.handlers
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "hydra_migration"

_RESERVED_RECORD_KEYS = frozenset([
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'taskName',
    'exc_info', 'exc_text', 'stack_info', 'message', 'log_entry',
])


class LogCategory(str, Enum):
    """Categories for structured logging."""
    SYSTEM = "system"
    CHECKPOINT = "checkpoint"
    ARCHIVE = "archive"
    TRANSFER = "transfer"
    RESTORE = "restore"
    PROVIDER = "provider"
    DRIVER = "driver"


@dataclass
class LogEntry:
    """Structured log entry with metadata."""
    timestamp: datetime = field(default_factory=datetime.now)
    level: str = "INFO"
    category: LogCategory = LogCategory.SYSTEM
    message: str = ""
    operation: Optional[str] = None
    step: Optional[str] = None
    duration: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        data['category'] = self.category.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredFormatter(logging.Formatter):
    """Formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = getattr(record, 'log_entry', None)

        if not isinstance(log_entry, LogEntry):
            log_entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created),
                level=record.levelname,
                message=record.getMessage(),
                metadata={
                    'logger': record.name,
                    'function': record.funcName,
                    'line': record.lineno,
                }
            )
            for key, value in record.__dict__.items():
                if key not in _RESERVED_RECORD_KEYS:
                    log_entry.metadata[key] = value

        if record.exc_info:
            log_entry.metadata['exception'] = self.formatException(record.exc_info)

        return log_entry.to_json()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    rich_console: bool = True,
    structured_logging: bool = False,
    log_rotation: bool = True,
    max_log_size: int = 50 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        rich_console: Whether to use the Rich console handler
        structured_logging: Whether to emit JSON lines
        log_rotation: Whether to rotate the log file
        max_log_size: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    plain_formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if rich_console and not structured_logging:
        console_handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True
        )
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(StructuredFormatter() if structured_logging else plain_formatter)

    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        if log_rotation:
            file_handler: logging.Handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_log_size,
                backupCount=backup_count
            )
        else:
            file_handler = logging.FileHandler(log_file)

        file_handler.setFormatter(StructuredFormatter() if structured_logging else plain_formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the package logger."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class OperationLogger:
    """Logs the steps of a single checkpoint, migrate or restore operation."""

    def __init__(self, operation: str, category: LogCategory, logger: Optional[logging.Logger] = None):
        self.operation = operation
        self.category = category
        self.logger = logger or get_logger(operation)
        self.durations: Dict[str, float] = {}

    def _log(self, level: int, message: str, step: Optional[str] = None,
             duration: Optional[float] = None, metadata: Optional[Dict[str, Any]] = None):
        entry = LogEntry(
            level=logging.getLevelName(level),
            category=self.category,
            message=message,
            operation=self.operation,
            step=step,
            duration=duration,
            metadata=metadata or {}
        )
        self.logger.log(level, message, extra={'log_entry': entry})

    def info(self, message: str, step: Optional[str] = None, **metadata: Any):
        self._log(logging.INFO, message, step, metadata=metadata)

    def warning(self, message: str, step: Optional[str] = None, **metadata: Any):
        self._log(logging.WARNING, message, step, metadata=metadata)

    def step_start(self, step_name: str):
        self._log(logging.DEBUG, f"Starting step: {step_name}", step_name,
                  metadata={'step_status': 'started'})

    def step_complete(self, step_name: str, duration: float):
        self.durations[step_name] = duration
        self._log(logging.INFO, f"Completed step: {step_name} (took {duration:.2f}s)", step_name,
                  duration=duration, metadata={'step_status': 'completed'})

    def step_failed(self, step_name: str, error: str):
        self._log(logging.ERROR, f"Failed step: {step_name} - {error}", step_name,
                  metadata={'step_status': 'failed', 'error_details': error})

    @contextmanager
    def step(self, step_name: str) -> Iterator[None]:
        """Time a step and log its start, completion or failure."""
        self.step_start(step_name)
        started = time.monotonic()
        try:
            yield
        except Exception as e:
            self.step_failed(step_name, str(e))
            raise
        self.step_complete(step_name, time.monotonic() - started)
