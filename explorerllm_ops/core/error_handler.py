"""
Error categorisation and remediation guidance for ExplorerLLM Ops.

The pipelines never retry or roll back automatically, so the handler's job
is to turn an exception into something an operator can act on: a category,
a severity and a list of remediation steps.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from .exceptions import (
    ExplorerLLMOpsError,
    ConfigurationError,
    ValidationError,
    MissingDependencyError,
    InvalidBackupSetError,
    ServicesRunningError,
    ConnectivityError,
    CommandFailedError,
    TransferError,
    PipelineStateError,
    HealthCheckWarning,
)


class ErrorCategory(str, Enum):
    """Categories of errors for handling and reporting."""
    CONFIGURATION = "configuration"
    DEPENDENCY = "dependency"
    BACKUP_SET = "backup_set"
    SERVICE_STATE = "service_state"
    CONNECTIVITY = "connectivity"
    COMMAND = "command"
    TRANSFER = "transfer"
    VALIDATION = "validation"
    HEALTH = "health"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for an error occurrence."""
    timestamp: datetime = field(default_factory=datetime.now)
    pipeline: Optional[str] = None
    step: Optional[str] = None
    state: Optional[str] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ErrorInfo:
    """Categorised error information."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    context: ErrorContext
    remediation_steps: List[str]
    traceback_str: str
    is_fatal: bool = True


class ErrorHandler:
    """
    Categorises pipeline errors and attaches remediation steps.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._error_mappings = self._build_error_mappings()
        self._remediation_guides = self._build_remediation_guides()

    def _build_error_mappings(self) -> Dict[Type[Exception], Dict[str, Any]]:
        """Build mapping of exception types to categories and severities."""
        # Subclasses come first: lookup falls back to isinstance in order.
        return {
            MissingDependencyError: {
                "category": ErrorCategory.DEPENDENCY,
                "severity": ErrorSeverity.HIGH,
                "fatal": True,
            },
            InvalidBackupSetError: {
                "category": ErrorCategory.BACKUP_SET,
                "severity": ErrorSeverity.HIGH,
                "fatal": True,
            },
            ServicesRunningError: {
                "category": ErrorCategory.SERVICE_STATE,
                "severity": ErrorSeverity.MEDIUM,
                "fatal": True,
            },
            ConfigurationError: {
                "category": ErrorCategory.CONFIGURATION,
                "severity": ErrorSeverity.HIGH,
                "fatal": True,
            },
            ValidationError: {
                "category": ErrorCategory.VALIDATION,
                "severity": ErrorSeverity.MEDIUM,
                "fatal": True,
            },
            ConnectivityError: {
                "category": ErrorCategory.CONNECTIVITY,
                "severity": ErrorSeverity.HIGH,
                "fatal": True,
            },
            CommandFailedError: {
                "category": ErrorCategory.COMMAND,
                "severity": ErrorSeverity.CRITICAL,
                "fatal": True,
            },
            TransferError: {
                "category": ErrorCategory.TRANSFER,
                "severity": ErrorSeverity.CRITICAL,
                "fatal": True,
            },
            PipelineStateError: {
                "category": ErrorCategory.INTERNAL,
                "severity": ErrorSeverity.CRITICAL,
                "fatal": True,
            },
            HealthCheckWarning: {
                "category": ErrorCategory.HEALTH,
                "severity": ErrorSeverity.LOW,
                "fatal": False,
            },
            FileNotFoundError: {
                "category": ErrorCategory.CONFIGURATION,
                "severity": ErrorSeverity.MEDIUM,
                "fatal": True,
            },
            OSError: {
                "category": ErrorCategory.TRANSFER,
                "severity": ErrorSeverity.HIGH,
                "fatal": True,
            },
        }

    def _build_remediation_guides(self) -> Dict[ErrorCategory, List[str]]:
        """Build generic remediation guides for each error category."""
        return {
            ErrorCategory.CONFIGURATION: [
                "Check the --config file and EXPLORERLLM_* environment variables",
                "Run the command from the directory holding docker-compose.yml or pass --project-dir",
            ],
            ErrorCategory.DEPENDENCY: [
                "Install Docker: curl -fsSL https://get.docker.com | sh",
                "Install Docker Compose: sudo apt-get install -y docker-compose",
                "Make sure the tool is on PATH for the current user",
            ],
            ErrorCategory.BACKUP_SET: [
                "Point the command at a directory created by 'explorerllm-ops backup'",
                "The directory must hold exactly one webui archive and one models archive",
                "Check backup_manifest.txt for the expected file names",
            ],
            ErrorCategory.SERVICE_STATE: [
                "Stop services first: docker-compose stop",
                "Or re-run with --force to stop them automatically",
            ],
            ErrorCategory.CONNECTIVITY: [
                "Check that the host is reachable: ssh USER@HOST",
                "Verify the remote user (-u / REMOTE_USER) and key (-k / SSH_KEY)",
                "Check firewall rules for port 22",
            ],
            ErrorCategory.COMMAND: [
                "Inspect the command output above",
                "Check service status with: docker-compose ps",
                "Check logs with: docker-compose logs",
            ],
            ErrorCategory.TRANSFER: [
                "Check available disk space on both ends",
                "Verify the backup directory is writable",
                "Re-run the pipeline once the cause is fixed; partial archives are never reused",
            ],
            ErrorCategory.VALIDATION: [
                "Review the validation message above and fix the reported condition",
            ],
            ErrorCategory.HEALTH: [
                "Check status with: docker-compose ps",
                "Check logs with: docker-compose logs",
                "Check models with: docker exec ollama ollama list",
            ],
            ErrorCategory.INTERNAL: [
                "Re-run with --verbose and report the log output",
            ],
            ErrorCategory.UNKNOWN: [
                "Re-run with --verbose for additional context",
            ],
        }

    def categorize_error(self, error: Exception, context: Optional[ErrorContext] = None) -> ErrorInfo:
        """
        Categorize an error and collect remediation steps for it.

        Remediation attached to the exception itself comes first, followed by
        the generic guide for its category.
        """
        mapping = self._error_mappings.get(type(error))

        if not mapping:
            for exc_type, exc_mapping in self._error_mappings.items():
                if isinstance(error, exc_type):
                    mapping = exc_mapping
                    break

        if not mapping:
            mapping = {
                "category": ErrorCategory.UNKNOWN,
                "severity": ErrorSeverity.MEDIUM,
                "fatal": True,
            }

        category = mapping["category"]
        remediation: List[str] = []
        if isinstance(error, ExplorerLLMOpsError):
            remediation.extend(error.remediation)
        for step in self._remediation_guides.get(category, []):
            if step not in remediation:
                remediation.append(step)

        return ErrorInfo(
            error=error,
            category=category,
            severity=mapping["severity"],
            context=context or ErrorContext(),
            remediation_steps=remediation,
            traceback_str=traceback.format_exc(),
            is_fatal=mapping["fatal"],
        )

    def handle_error(self, error: Exception, context: Optional[ErrorContext] = None) -> ErrorInfo:
        """Categorize and log an error."""
        error_info = self.categorize_error(error, context)
        self._log_error(error_info)
        return error_info

    def _log_error(self, error_info: ErrorInfo) -> None:
        """Log error information with the level matching its severity."""
        log_data = {
            "error_type": type(error_info.error).__name__,
            "category": error_info.category.value,
            "severity": error_info.severity.value,
            "pipeline": error_info.context.pipeline,
            "step": error_info.context.step,
            "state": error_info.context.state,
        }
        message = str(error_info.error)

        if error_info.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(message, extra=log_data)
        elif error_info.severity == ErrorSeverity.HIGH:
            self.logger.error(message, extra=log_data)
        elif error_info.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(message, extra=log_data)
        else:
            self.logger.info(message, extra=log_data)

        if error_info.severity in [ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]:
            self.logger.debug("Error traceback", extra={"traceback": error_info.traceback_str})
