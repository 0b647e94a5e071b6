"""
Logging for ExplorerLLM Ops.

Console output goes through Rich; an optional rotating log file receives
structured JSON entries. PipelineLogger wraps a module logger with the
step-oriented helpers the orchestrator uses so that every step emits an
info, warning or error line.
"""

import json
import logging
import logging.handlers
import sys
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "explorerllm_ops"

_RESERVED_RECORD_KEYS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage',
    'exc_info', 'exc_text', 'stack_info', 'taskName', 'message',
}


class LogLevel(str, Enum):
    """Log levels for structured logging."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogCategory(str, Enum):
    """Categories for structured logging."""
    SYSTEM = "system"
    PIPELINE = "pipeline"
    VALIDATION = "validation"
    SERVICE = "service"
    TRANSFER = "transfer"
    RETENTION = "retention"
    CLI = "cli"


@dataclass
class LogEntry:
    """Structured log entry with metadata."""
    timestamp: datetime = field(default_factory=datetime.now)
    level: LogLevel = LogLevel.INFO
    category: LogCategory = LogCategory.SYSTEM
    message: str = ""
    pipeline: Optional[str] = None
    step: Optional[str] = None
    duration: Optional[float] = None
    error_code: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert log entry to dictionary."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        """Convert log entry to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class StructuredFormatter(logging.Formatter):
    """Formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = getattr(record, 'log_entry', None)

        if log_entry and isinstance(log_entry, LogEntry):
            return log_entry.to_json()

        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created),
            level=LogLevel(record.levelname),
            message=record.getMessage(),
            metadata={
                'logger': record.name,
                'module': record.module,
                'function': record.funcName,
                'line': record.lineno,
            }
        )

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry.metadata[key] = value

        return log_entry.to_json()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    rich_console: bool = True,
    console: Optional[Console] = None,
    max_log_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up logging for the command-line tool.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating JSON log file
        rich_console: Whether to use the Rich console handler
        console: Rich console to log to (a stderr console by default)
        max_log_size: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()
    logger.propagate = False

    if rich_console:
        console_handler = RichHandler(
            console=console or Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False
        )
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=backup_count
        )
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module."""
    if name.startswith(f"{ROOT_LOGGER_NAME}.") or name == ROOT_LOGGER_NAME:
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class PipelineLogger:
    """Step-oriented logger used by the pipelines."""

    def __init__(self, pipeline: str, logger: Optional[logging.Logger] = None):
        self.pipeline = pipeline
        self.logger = logger or get_logger(f"pipeline.{pipeline}")

    def _log(
        self,
        level: LogLevel,
        message: str,
        category: LogCategory = LogCategory.PIPELINE,
        step: Optional[str] = None,
        duration: Optional[float] = None,
        error_code: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        log_entry = LogEntry(
            level=level,
            category=category,
            message=message,
            pipeline=self.pipeline,
            step=step,
            duration=duration,
            error_code=error_code,
            metadata=metadata or {}
        )
        getattr(self.logger, level.value.lower())(message, extra={'log_entry': log_entry})

    def debug(self, message: str, category: LogCategory = LogCategory.PIPELINE, **kwargs):
        self._log(LogLevel.DEBUG, message, category, **kwargs)

    def info(self, message: str, category: LogCategory = LogCategory.PIPELINE, **kwargs):
        self._log(LogLevel.INFO, message, category, **kwargs)

    def warning(self, message: str, category: LogCategory = LogCategory.PIPELINE, **kwargs):
        self._log(LogLevel.WARNING, message, category, **kwargs)

    def error(self, message: str, category: LogCategory = LogCategory.PIPELINE, **kwargs):
        self._log(LogLevel.ERROR, message, category, **kwargs)

    def step_start(self, step_name: str):
        """Log step start."""
        self.info(f"Starting step: {step_name}", step=step_name,
                  metadata={'step_status': 'started'})

    def step_complete(self, step_name: str, duration: float):
        """Log step completion."""
        self.info(
            f"Completed step: {step_name} (took {duration:.2f}s)",
            step=step_name,
            duration=duration,
            metadata={'step_status': 'completed'}
        )

    def step_failed(self, step_name: str, error: str, error_code: Optional[str] = None):
        """Log step failure."""
        self.error(
            f"Failed step: {step_name} - {error}",
            step=step_name,
            error_code=error_code,
            metadata={'step_status': 'failed'}
        )

    def dry_run(self, action: str, step: Optional[str] = None):
        """Log an action suppressed by dry-run mode."""
        self.info(f"[DRY RUN] Would {action}", step=step,
                  metadata={'dry_run': True})
