"""
Tests for the exception hierarchy and the error handler.
"""

import logging

import pytest

from explorerllm_ops.core.error_handler import (
    ErrorCategory,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
)
from explorerllm_ops.core.exceptions import (
    CommandFailedError,
    ConfigurationError,
    ConnectivityError,
    ExplorerLLMOpsError,
    HealthCheckWarning,
    InvalidBackupSetError,
    MissingDependencyError,
    ServicesRunningError,
    TransferError,
    ValidationError,
)


class TestExceptions:
    """Test the exception types."""

    def test_base_error_defaults(self):
        """Code defaults to the class name and collections to empty."""
        error = ExplorerLLMOpsError("boom")
        assert error.message == "boom"
        assert error.code == "ExplorerLLMOpsError"
        assert error.details == {}
        assert error.remediation == []
        assert error.context is None

    def test_validation_subclasses(self):
        """Guard and backup set errors are validation errors."""
        assert issubclass(MissingDependencyError, ValidationError)
        assert issubclass(InvalidBackupSetError, ValidationError)
        assert issubclass(ServicesRunningError, ValidationError)

    def test_missing_dependency_names_tool(self):
        error = MissingDependencyError("rsync")
        assert error.tool == "rsync"
        assert "rsync" in error.message
        assert error.failed_checks == ["rsync"]
        assert error.details == {"tool": "rsync"}

    def test_command_failed_carries_output(self):
        """The message includes the command and its stderr."""
        error = CommandFailedError(
            ["docker-compose", "stop"], 1, stderr="permission denied\n", host="web1"
        )
        assert error.exit_code == 1
        assert error.command == ["docker-compose", "stop"]
        assert error.host == "web1"
        assert "docker-compose stop" in error.message
        assert "on web1" in error.message
        assert "permission denied" in error.message

    def test_connectivity_error_default_message(self):
        error = ConnectivityError("db.example.com")
        assert error.host == "db.example.com"
        assert "db.example.com" in error.message


class TestErrorHandler:
    """Test error categorisation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.handler = ErrorHandler()

    @pytest.mark.parametrize("error, category", [
        (MissingDependencyError("docker"), ErrorCategory.DEPENDENCY),
        (InvalidBackupSetError("no archives"), ErrorCategory.BACKUP_SET),
        (ServicesRunningError("running"), ErrorCategory.SERVICE_STATE),
        (ConfigurationError("bad"), ErrorCategory.CONFIGURATION),
        (ConnectivityError("host"), ErrorCategory.CONNECTIVITY),
        (CommandFailedError(["tar"], 2), ErrorCategory.COMMAND),
        (TransferError("mismatch"), ErrorCategory.TRANSFER),
        (HealthCheckWarning("slow"), ErrorCategory.HEALTH),
        (PermissionError("denied"), ErrorCategory.TRANSFER),
        (RuntimeError("?"), ErrorCategory.UNKNOWN),
    ])
    def test_categorize(self, error, category):
        """Each error type maps to its category."""
        assert self.handler.categorize_error(error).category == category

    def test_health_warning_is_not_fatal(self):
        info = self.handler.categorize_error(HealthCheckWarning("not ready"))
        assert info.is_fatal is False
        assert info.severity == ErrorSeverity.LOW

    def test_own_remediation_comes_first(self):
        """Remediation attached to the error precedes the category guide."""
        error = ServicesRunningError("running", remediation=["Stop services first or use --force"])
        info = self.handler.categorize_error(error)
        assert info.remediation_steps[0] == "Stop services first or use --force"
        assert len(info.remediation_steps) > 1

    def test_context_is_kept(self):
        context = ErrorContext(pipeline="restore", step="Restore data volumes")
        info = self.handler.categorize_error(TransferError("x"), context)
        assert info.context.pipeline == "restore"
        assert info.context.step == "Restore data volumes"

    def test_handle_error_logs(self, caplog):
        """Critical errors are logged at critical level."""
        logger = logging.getLogger("test.error_handler")
        handler = ErrorHandler(logger)
        with caplog.at_level(logging.DEBUG, logger="test.error_handler"):
            handler.handle_error(CommandFailedError(["docker", "run"], 125))
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)
