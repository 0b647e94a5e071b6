"""
Pipeline orchestration for ExplorerLLM Ops.
"""

from explorerllm_ops.orchestrator.orchestrator import BackupRestoreOrchestrator

__all__ = ["BackupRestoreOrchestrator"]
