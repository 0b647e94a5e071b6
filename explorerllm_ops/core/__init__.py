"""
Core module for ExplorerLLM Ops.

This module contains the exception hierarchy and error handling
used throughout the application.
"""

from explorerllm_ops.core.exceptions import (
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

__all__ = [
    "ExplorerLLMOpsError",
    "ConfigurationError",
    "ValidationError",
    "MissingDependencyError",
    "InvalidBackupSetError",
    "ServicesRunningError",
    "ConnectivityError",
    "CommandFailedError",
    "TransferError",
    "PipelineStateError",
    "HealthCheckWarning",
]
