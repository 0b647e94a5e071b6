"""
Utility modules for ExplorerLLM Ops.
"""

from explorerllm_ops.utils.logging import (
    LogCategory,
    LogEntry,
    LogLevel,
    PipelineLogger,
    StructuredFormatter,
    get_logger,
    setup_logging,
)
from explorerllm_ops.utils.helpers import (
    format_bytes,
    format_duration,
    generate_timestamp,
    load_config_file,
    parse_timestamp,
)

__all__ = [
    "LogCategory",
    "LogEntry",
    "LogLevel",
    "PipelineLogger",
    "StructuredFormatter",
    "get_logger",
    "setup_logging",
    "format_bytes",
    "format_duration",
    "generate_timestamp",
    "load_config_file",
    "parse_timestamp",
]
