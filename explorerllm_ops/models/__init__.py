"""
Data models for ExplorerLLM Ops.

This module contains the Pydantic models used for configuration and for
the runtime state of pipeline runs.
"""

from explorerllm_ops.models.config import (
    OpsSettings,
    PipelineOptions,
    RemoteTarget,
)
from explorerllm_ops.models.session import (
    ALLOWED_TRANSITIONS,
    ArtifactRole,
    BackupSet,
    PipelineContext,
    PipelineState,
    ServiceState,
    StateTransition,
    StepRecord,
    StepStatus,
)

__all__ = [
    # Configuration models
    "OpsSettings",
    "PipelineOptions",
    "RemoteTarget",
    # Runtime models
    "ALLOWED_TRANSITIONS",
    "ArtifactRole",
    "BackupSet",
    "PipelineContext",
    "PipelineState",
    "ServiceState",
    "StateTransition",
    "StepRecord",
    "StepStatus",
]
