"""
Backup set manifest and retention.
"""

from explorerllm_ops.backup.manifest import MANIFEST_FILENAME, BackupManifest
from explorerllm_ops.backup.retention import RetentionCandidate, RetentionManager, RetentionPolicy

__all__ = [
    "MANIFEST_FILENAME",
    "BackupManifest",
    "RetentionCandidate",
    "RetentionManager",
    "RetentionPolicy",
]
