"""
Retention pruning of old backup sets.

Backup sets are ``<project>_<timestamp>`` directories; loose
``*<project>*.tar.gz`` archives in the backup root are pruned as well.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from explorerllm_ops.runner.process import DryRunGuard
from explorerllm_ops.transfer.filesystem import HostFilesystem, LocalFilesystem
from explorerllm_ops.utils.helpers import parse_timestamp
from explorerllm_ops.utils.logging import LogCategory, PipelineLogger

_TIMESTAMP_IN_NAME = re.compile(r"(\d{8}_\d{6})")


@dataclass
class RetentionCandidate:
    """An entry of the backup root subject to retention."""
    path: Path
    created_at: datetime
    is_directory: bool


class RetentionPolicy:
    """Age-based retention window."""

    def __init__(self, max_age_days: int):
        self.max_age_days = max_age_days

    def should_retain(self, candidate: RetentionCandidate, now: datetime) -> bool:
        """Determine if a backup should be retained based on policy."""
        backup_age = now - candidate.created_at
        return backup_age.days <= self.max_age_days


class RetentionManager:
    """Finds and removes backup sets older than the retention window."""

    def __init__(
        self,
        project_name: str,
        policy: RetentionPolicy,
        filesystem: Optional[HostFilesystem] = None,
        guard: Optional[DryRunGuard] = None,
        log: Optional[PipelineLogger] = None,
        now: Callable[[], datetime] = datetime.now
    ):
        self.project_name = project_name
        self.policy = policy
        self.fs = filesystem or LocalFilesystem()
        self.guard = guard or DryRunGuard()
        self.log = log or PipelineLogger("retention")
        self._now = now

    def _matches(self, name: str) -> Optional[bool]:
        """True for a set directory name, False for an archive, None otherwise."""
        if name.endswith(".tar.gz"):
            return False if self.project_name in name else None
        if name.startswith(f"{self.project_name}_"):
            return True
        return None

    def _created_at(self, path: Path) -> Optional[datetime]:
        match = _TIMESTAMP_IN_NAME.search(path.name)
        if match:
            parsed = parse_timestamp(match.group(1))
            if parsed:
                return parsed
        return self.fs.modified(path)

    def candidates(self, backup_root: Path) -> List[RetentionCandidate]:
        if not self.fs.is_dir(backup_root):
            return []

        found = []
        for name in self.fs.list_dir(backup_root):
            kind = self._matches(name)
            if kind is None:
                continue
            path = Path(backup_root) / name
            if kind and not self.fs.is_dir(path):
                continue
            created_at = self._created_at(path)
            if created_at is None:
                continue
            found.append(RetentionCandidate(path=path, created_at=created_at, is_directory=kind))
        return found

    def prune(self, backup_root: Path, keep: Optional[Path] = None) -> List[Path]:
        """
        Remove expired backups under backup_root.

        Removal failures are logged and skipped. ``keep`` is never removed.

        Returns:
            Paths removed (or, in dry-run mode, that would be removed)
        """
        now = self._now()
        expired = []
        for candidate in self.candidates(backup_root):
            if keep is not None and candidate.path == Path(keep):
                continue
            if self.policy.should_retain(candidate, now):
                continue

            if not self.guard.permits(f"remove expired backup {candidate.path}"):
                expired.append(candidate.path)
                continue
            try:
                if candidate.is_directory:
                    self.fs.remove_tree(candidate.path)
                else:
                    self.fs.remove(candidate.path)
            except OSError as e:
                self.log.warning(f"Could not remove expired backup {candidate.path}: {e}", LogCategory.RETENTION)
                continue
            self.log.info(f"Removed expired backup {candidate.path}", LogCategory.RETENTION)
            expired.append(candidate.path)

        if not expired:
            self.log.debug(f"No backups older than {self.policy.max_age_days} days", LogCategory.RETENTION)
        return expired
