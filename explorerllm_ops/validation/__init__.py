"""
Pre-flight validation for ExplorerLLM Ops pipelines.
"""

from explorerllm_ops.validation.backup_set import BackupSetValidator
from explorerllm_ops.validation.connectivity import (
    ConnectivityCheck,
    ConnectivityValidator,
    ValidationResult,
)
from explorerllm_ops.validation.dependency import DependencyValidator, local_tools

__all__ = [
    "BackupSetValidator",
    "ConnectivityCheck",
    "ConnectivityValidator",
    "ValidationResult",
    "DependencyValidator",
    "local_tools",
]
