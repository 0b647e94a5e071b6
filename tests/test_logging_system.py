"""
Unit tests for the logging system.
"""

import json
import logging
from datetime import datetime

import pytest

from explorerllm_ops.utils.logging import (
    LogCategory,
    LogEntry,
    LogLevel,
    PipelineLogger,
    StructuredFormatter,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_package_logger():
    logger = logging.getLogger("explorerllm_ops")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


class TestLogEntry:
    """Test cases for LogEntry dataclass."""

    def test_defaults(self):
        entry = LogEntry(message="Test message")
        assert entry.level == LogLevel.INFO
        assert entry.category == LogCategory.SYSTEM
        assert entry.pipeline is None
        assert entry.metadata == {}

    def test_to_json(self):
        entry = LogEntry(
            timestamp=datetime(2024, 1, 4, 14, 20, 0),
            level=LogLevel.ERROR,
            category=LogCategory.TRANSFER,
            message="rsync failed",
            pipeline="migrate",
            step="Transfer backup",
            error_code="CommandFailedError",
        )
        data = json.loads(entry.to_json())
        assert data["timestamp"] == "2024-01-04T14:20:00"
        assert data["level"] == "ERROR"
        assert data["category"] == "transfer"
        assert data["step"] == "Transfer backup"


class TestStructuredFormatter:

    def test_plain_record(self):
        record = logging.LogRecord("explorerllm_ops.test", logging.WARNING, __file__, 10,
                                   "disk %s", ("full",), None)
        record.host = "new"
        data = json.loads(StructuredFormatter().format(record))
        assert data["message"] == "disk full"
        assert data["level"] == "WARNING"
        assert data["metadata"]["host"] == "new"
        assert data["metadata"]["logger"] == "explorerllm_ops.test"

    def test_record_with_log_entry(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "ignored", (), None)
        record.log_entry = LogEntry(message="from entry", pipeline="backup")
        data = json.loads(StructuredFormatter().format(record))
        assert data["message"] == "from entry"
        assert data["pipeline"] == "backup"


class TestSetupLogging:

    def test_log_file_receives_json(self, tmp_path):
        log_file = tmp_path / "logs" / "ops.log"
        setup_logging(level="DEBUG", log_file=str(log_file), rich_console=False)

        PipelineLogger("backup").step_start("Snapshot volumes")
        for handler in logging.getLogger("explorerllm_ops").handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert entry["message"] == "Starting step: Snapshot volumes"
        assert entry["pipeline"] == "backup"
        assert entry["metadata"]["step_status"] == "started"

    def test_level(self):
        logger = setup_logging(level="warning", rich_console=False)
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1

    def test_get_logger_namespacing(self):
        assert get_logger("transfer").name == "explorerllm_ops.transfer"
        assert get_logger("explorerllm_ops.cli").name == "explorerllm_ops.cli"


class TestPipelineLogger:

    @pytest.fixture
    def captured(self, caplog):
        logger = logging.getLogger("explorerllm_ops")
        logger.propagate = True
        caplog.set_level(logging.DEBUG, logger="explorerllm_ops")
        return caplog

    def test_step_lifecycle(self, captured):
        log = PipelineLogger("restore")
        log.step_start("Restore data volumes")
        log.step_complete("Restore data volumes", 1.25)
        log.step_failed("Start services", "exit code 1", "CommandFailedError")

        messages = [r.getMessage() for r in captured.records]
        assert messages == [
            "Starting step: Restore data volumes",
            "Completed step: Restore data volumes (took 1.25s)",
            "Failed step: Start services - exit code 1",
        ]
        failed = captured.records[-1]
        assert failed.levelno == logging.ERROR
        assert failed.log_entry.error_code == "CommandFailedError"

    def test_dry_run_message(self, captured):
        PipelineLogger("backup").dry_run("stop services")
        record = captured.records[-1]
        assert record.getMessage() == "[DRY RUN] Would stop services"
        assert record.log_entry.metadata["dry_run"] is True
