"""
Archive transport for ExplorerLLM Ops.

Moves data between docker volumes and compressed archives, copies the
compose file, and relays a backup set directory between two remote hosts.
Volume access uses a throwaway helper container that mounts the volume at
/data and the archive directory at /backup.
"""

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import List, Optional, Union

from explorerllm_ops.core.exceptions import CommandFailedError, TransferError
from explorerllm_ops.models.config import OpsSettings, RemoteTarget
from explorerllm_ops.runner.process import DryRunGuard, ProcessRunner, ssh_transport_command
from explorerllm_ops.transfer.filesystem import HostFilesystem, LocalFilesystem, PathLike
from explorerllm_ops.utils.logging import LogCategory, PipelineLogger

PARTIAL_SUFFIX = ".partial"

# rsync --itemize-changes markers for content that differs
_CONTENT_CHANGE_MARKERS = ("<", ">", "c", "*")


@dataclass
class SyncResult:
    """Outcome of a relayed remote sync."""
    source: str
    destination: str
    confirmed: bool = False
    source_removed: bool = False
    differences: List[str] = field(default_factory=list)


class ArchiveTransport:
    """Snapshot and restore docker volumes, and move backup sets."""

    def __init__(
        self,
        runner: ProcessRunner,
        settings: OpsSettings,
        guard: Optional[DryRunGuard] = None,
        target: Optional[RemoteTarget] = None,
        filesystem: Optional[HostFilesystem] = None,
        log: Optional[PipelineLogger] = None
    ):
        self.runner = runner
        self.settings = settings
        self.guard = guard or DryRunGuard()
        self.target = target
        self.fs = filesystem or LocalFilesystem()
        self.log = log or PipelineLogger("transfer")

    def _helper(self, volume: str, archive_dir: PathLike, *command: str) -> List[str]:
        return [
            "docker", "run", "--rm",
            "-v", f"{volume}:/data",
            "-v", f"{archive_dir}:/backup",
            self.settings.helper_image,
            *command,
        ]

    def snapshot(self, volume: str, destination_dir: PathLike, archive_name: str) -> Optional[Path]:
        """
        Archive the contents of a volume into destination_dir/archive_name.

        The archive is written under a temporary name and renamed once tar
        has finished, so a failed snapshot never leaves a file that looks
        complete.

        Returns:
            Path of the archive, or None in dry-run mode

        Raises:
            CommandFailedError: If the helper container fails
            TransferError: If the archive is missing afterwards
        """
        final = Path(destination_dir) / archive_name
        if not self.guard.permits(f"snapshot volume {volume} to {final}"):
            return None

        partial = f"{archive_name}{PARTIAL_SUFFIX}"
        script = f"tar czf /backup/{partial} /data && mv /backup/{partial} /backup/{archive_name}"
        self.log.info(f"Backing up volume {volume}...", LogCategory.TRANSFER)
        try:
            self.runner.run(self._helper(volume, destination_dir, "sh", "-c", script), target=self.target)
        except CommandFailedError:
            self._discard(Path(destination_dir) / partial)
            raise

        if not self.fs.exists(final):
            raise TransferError(
                f"Snapshot of volume {volume} did not produce {final}",
                details={"volume": volume, "archive": str(final)}
            )
        self.log.info(f"Volume {volume} saved to {final}", LogCategory.TRANSFER)
        return final

    def _discard(self, path: Path):
        try:
            self.fs.remove(path)
        except (OSError, CommandFailedError) as e:
            self.log.warning(f"Could not remove partial archive {path}: {e}", LogCategory.TRANSFER)

    def apply(self, archive: PathLike, volume: str) -> bool:
        """
        Extract an archive into a volume.

        The archive stores paths under data/, so extracting at / lands the
        contents in the volume mounted at /data.
        """
        archive = Path(archive)
        if not self.guard.permits(f"restore {archive.name} into volume {volume}"):
            return False

        self.log.info(f"Restoring {archive.name} into volume {volume}...", LogCategory.TRANSFER)
        self.runner.run(
            self._helper(volume, archive.parent, "tar", "xzf", f"/backup/{archive.name}", "-C", "/"),
            target=self.target,
        )
        return True

    def copy_config(self, source: PathLike, destination: PathLike, preserve_suffix: Optional[str] = None) -> bool:
        """
        Copy a compose file, keeping any existing destination file as
        ``<destination>.backup.<suffix>``.
        """
        if not self.guard.permits(f"copy {source} to {destination}"):
            return False

        if preserve_suffix and self.fs.exists(destination):
            kept = f"{destination}.backup.{preserve_suffix}"
            self.fs.move(destination, kept)
            self.log.info(f"Existing configuration kept as {kept}", LogCategory.TRANSFER)

        self.fs.copy_file(source, destination)
        return True

    def remote_sync(
        self,
        source: RemoteTarget,
        source_path: Union[str, PurePosixPath],
        destination: RemoteTarget,
        destination_path: Union[str, PurePosixPath],
        remove_source: bool = False,
        staging_dir: Optional[Path] = None
    ) -> SyncResult:
        """
        Copy a directory from one remote host to another.

        rsync cannot connect two remote endpoints, so the directory is
        pulled into a local staging directory and pushed from there. The
        transfer is confirmed with a checksum dry-run against the
        destination; only a confirmed transfer may remove the source.

        Raises:
            CommandFailedError: If an rsync invocation fails
            TransferError: If the destination does not match after the push
        """
        result = SyncResult(
            source=f"{source.address}:{source_path}",
            destination=f"{destination.address}:{destination_path}",
        )
        if not self.guard.permits(f"copy {result.source} to {result.destination}"):
            return result

        owns_staging = staging_dir is None
        staging = staging_dir or Path(tempfile.mkdtemp(prefix="explorerllm_transfer_"))
        try:
            self.log.info(f"Downloading {result.source}...", LogCategory.TRANSFER)
            self.runner.run([
                "rsync", "-az", "-e", ssh_transport_command(source, self.runner.ssh_executable),
                f"{source.address}:{source_path}/", f"{staging}/",
            ])

            self.log.info(f"Uploading to {result.destination}...", LogCategory.TRANSFER)
            push_ssh = ssh_transport_command(destination, self.runner.ssh_executable)
            remote_dest = f"{destination.address}:{destination_path}/"
            self.runner.run(["rsync", "-az", "-e", push_ssh, f"{staging}/", remote_dest])

            check = self.runner.run(["rsync", "-naci", "-e", push_ssh, f"{staging}/", remote_dest])
            result.differences = [
                line for line in check.lines if line.startswith(_CONTENT_CHANGE_MARKERS)
            ]
        finally:
            if owns_staging:
                shutil.rmtree(staging, ignore_errors=True)

        if result.differences:
            raise TransferError(
                f"Transfer to {result.destination} could not be confirmed",
                details={"differences": result.differences},
                remediation=["Re-run the migration", "Check free disk space on the destination"]
            )
        result.confirmed = True
        self.log.info(f"Transfer to {result.destination} confirmed", LogCategory.TRANSFER)

        if remove_source:
            self.runner.run(["rm", "-rf", str(source_path)], target=source)
            result.source_removed = True
        return result
