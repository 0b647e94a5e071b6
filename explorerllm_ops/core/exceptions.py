"""
Custom exceptions for ExplorerLLM Ops.

This module defines the exception classes raised by the backup, restore
and migration pipelines. Every fatal condition maps to one of these types
so the orchestrator and the CLI can react to it explicitly.
"""

from typing import Any, Dict, List, Optional, Sequence


class ExplorerLLMOpsError(Exception):
    """Base exception class for ExplorerLLM Ops errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        remediation: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.remediation = remediation or []
        # PipelineContext of the run that raised, attached by the orchestrator
        self.context: Optional[Any] = None


class ConfigurationError(ExplorerLLMOpsError):
    """Raised when settings or invocation arguments are invalid."""
    pass


class ValidationError(ExplorerLLMOpsError):
    """Raised when a pre-flight validation fails."""

    def __init__(
        self,
        message: str,
        failed_checks: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.failed_checks = failed_checks or []


class MissingDependencyError(ValidationError):
    """Raised when a required external tool is not available."""

    def __init__(self, tool: str, message: Optional[str] = None, **kwargs):
        kwargs.setdefault("details", {"tool": tool})
        super().__init__(
            message or f"Required tool not found in PATH: {tool}",
            failed_checks=[tool],
            **kwargs
        )
        self.tool = tool


class InvalidBackupSetError(ValidationError):
    """Raised when a backup directory does not hold a usable backup set."""
    pass


class ServicesRunningError(ValidationError):
    """Raised when a restore would overwrite volumes that are in use."""
    pass


class ConnectivityError(ExplorerLLMOpsError):
    """Raised when a remote host cannot be reached."""

    def __init__(self, host: str, message: Optional[str] = None, **kwargs):
        kwargs.setdefault("details", {"host": host})
        super().__init__(message or f"Cannot connect to host: {host}", **kwargs)
        self.host = host


class CommandFailedError(ExplorerLLMOpsError):
    """Raised when a wrapped external command exits with a non-zero status."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: int,
        stderr: str = "",
        stdout: str = "",
        host: Optional[str] = None,
        **kwargs
    ):
        where = f" on {host}" if host else ""
        message = f"Command failed{where} with exit code {exit_code}: {' '.join(command)}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        kwargs.setdefault("details", {
            "command": list(command),
            "exit_code": exit_code,
            "host": host,
        })
        super().__init__(message, **kwargs)
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout
        self.host = host


class TransferError(ExplorerLLMOpsError):
    """Raised when an archive or directory transfer cannot be confirmed."""
    pass


class PipelineStateError(ExplorerLLMOpsError):
    """Raised on an illegal pipeline state transition."""
    pass


class HealthCheckWarning(ExplorerLLMOpsError):
    """
    Raised by post-start health checks.

    Never fatal: the orchestrator records it on the pipeline context and
    reports it to the operator.
    """
    pass
