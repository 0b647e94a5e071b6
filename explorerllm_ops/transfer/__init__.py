"""
Data movement for ExplorerLLM Ops: volume archives and backup set transfer.
"""

from explorerllm_ops.transfer.archive import ArchiveTransport, SyncResult
from explorerllm_ops.transfer.filesystem import (
    HostFilesystem,
    LocalFilesystem,
    RemoteFilesystem,
    filesystem_for,
)

__all__ = [
    "ArchiveTransport",
    "SyncResult",
    "HostFilesystem",
    "LocalFilesystem",
    "RemoteFilesystem",
    "filesystem_for",
]
