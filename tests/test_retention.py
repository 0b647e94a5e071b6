"""
Tests for retention pruning.
"""

import os
from datetime import datetime, timedelta

from explorerllm_ops.backup.retention import RetentionManager, RetentionPolicy
from explorerllm_ops.runner.process import DryRunGuard
from explorerllm_ops.utils.helpers import generate_timestamp

NOW = datetime(2024, 1, 4, 14, 20, 0)


class TestRetentionManager:
    """Test RetentionManager."""

    def _manager(self, dry_run=False, days=30):
        return RetentionManager(
            "explorerllm", RetentionPolicy(days), guard=DryRunGuard(dry_run=dry_run), now=lambda: NOW
        )

    def _set(self, root, age_days):
        path = root / f"explorerllm_{generate_timestamp(NOW - timedelta(days=age_days))}"
        path.mkdir(parents=True)
        (path / "models.tar.gz").write_bytes(b"x")
        return path

    def test_today_kept_forty_days_removed(self, tmp_path):
        today = self._set(tmp_path, 0)
        old = self._set(tmp_path, 40)

        removed = self._manager().prune(tmp_path)

        assert removed == [old]
        assert today.exists()
        assert not old.exists()

    def test_window_boundary(self, tmp_path):
        """A set exactly at the window is kept; one day more is removed."""
        at_window = self._set(tmp_path, 30)
        beyond = self._set(tmp_path, 31)
        self._manager().prune(tmp_path)
        assert at_window.exists()
        assert not beyond.exists()

    def test_loose_archives(self, tmp_path):
        old_archive = tmp_path / f"explorerllm_{generate_timestamp(NOW - timedelta(days=60))}.tar.gz"
        old_archive.write_bytes(b"x")
        unrelated = tmp_path / "other_20200101_000000.tar.gz"
        unrelated.write_bytes(b"x")

        self._manager().prune(tmp_path)
        assert not old_archive.exists()
        assert unrelated.exists()

    def test_mtime_used_without_timestamp(self, tmp_path):
        path = tmp_path / "explorerllm_manual"
        path.mkdir()
        stamp = (NOW - timedelta(days=90)).timestamp()
        os.utime(path, (stamp, stamp))

        assert self._manager().prune(tmp_path) == [path]

    def test_keep_is_never_removed(self, tmp_path):
        old = self._set(tmp_path, 100)
        assert self._manager().prune(tmp_path, keep=old) == []
        assert old.exists()

    def test_dry_run_reports_without_removing(self, tmp_path):
        old = self._set(tmp_path, 40)
        assert self._manager(dry_run=True).prune(tmp_path) == [old]
        assert old.exists()

    def test_missing_root(self, tmp_path):
        assert self._manager().prune(tmp_path / "absent") == []
