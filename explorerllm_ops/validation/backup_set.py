"""
Backup set discovery and validation.

A directory is a usable backup set when it holds exactly one webui archive
and exactly one models archive. Roles come from the manifest when it
declares them; directories written by older tooling are matched on file
names instead.
"""

import re
from pathlib import Path
from typing import List, Optional, Tuple

from explorerllm_ops.backup.manifest import MANIFEST_FILENAME, BackupManifest
from explorerllm_ops.core.exceptions import InvalidBackupSetError
from explorerllm_ops.models.session import ArtifactRole, BackupSet
from explorerllm_ops.transfer.filesystem import HostFilesystem
from explorerllm_ops.utils.logging import LogCategory, PipelineLogger

_TIMESTAMP = re.compile(r"(\d{8}_\d{6})")


class BackupSetValidator:
    """Discovers the backup set stored in a directory."""

    def __init__(self, filesystem: HostFilesystem, compose_file: str = "docker-compose.yml",
                 log: Optional[PipelineLogger] = None):
        self.fs = filesystem
        self.compose_file = compose_file
        self.log = log or PipelineLogger("validation")

    def discover(self, directory: Path) -> Tuple[BackupSet, List[str]]:
        """
        Discover and validate the backup set in a directory.

        Returns:
            The backup set and a list of non-fatal warnings

        Raises:
            InvalidBackupSetError: If the directory is missing or does not
                hold exactly one archive per role
        """
        directory = Path(directory)
        if not self.fs.is_dir(directory):
            raise InvalidBackupSetError(
                f"Backup directory not found: {directory}",
                failed_checks=["directory"],
                remediation=["Check the backup directory path"]
            )

        names = self.fs.list_dir(directory)
        manifest_text = None
        manifest = None
        if MANIFEST_FILENAME in names:
            manifest_text = self.fs.read_text(directory / MANIFEST_FILENAME)
            manifest = BackupManifest.parse(manifest_text)

        if manifest and manifest.artifact(ArtifactRole.WEBUI) and manifest.artifact(ArtifactRole.MODELS):
            webui, models, config = self._from_manifest(directory, names, manifest)
        else:
            webui, models = self._from_names(directory, names)
            config = self.compose_file if self.compose_file in names else None

        warnings = []
        if config is None:
            warnings.append(f"No {self.compose_file} in backup; current configuration will be kept")

        backup_set = BackupSet(
            id=self._backup_id(directory, manifest, webui),
            directory=directory,
            webui_archive=webui,
            models_archive=models,
            config_file=config,
            manifest_text=manifest_text,
        )
        self.log.info(
            f"Backup set {backup_set.id}: {', '.join(backup_set.files)}",
            LogCategory.VALIDATION
        )
        return backup_set, warnings

    def _from_manifest(self, directory: Path, names: List[str], manifest: BackupManifest):
        declared = {role: manifest.artifact(role) for role in ArtifactRole}
        missing = [
            f"{role.value}: {name}" for role, name in declared.items()
            if name and role != ArtifactRole.CONFIG and name not in names
        ]
        if missing:
            raise InvalidBackupSetError(
                f"Files declared in {MANIFEST_FILENAME} are missing from {directory}: {', '.join(missing)}",
                failed_checks=missing
            )
        config = declared[ArtifactRole.CONFIG]
        if config and config not in names:
            config = None
        return declared[ArtifactRole.WEBUI], declared[ArtifactRole.MODELS], config

    def _from_names(self, directory: Path, names: List[str]) -> Tuple[str, str]:
        archives = [name for name in names if name.endswith(".tar.gz")]
        webui = [name for name in archives if "webui" in name]
        models = [name for name in archives if "models" in name and "webui" not in name]

        failed = []
        if len(webui) != 1:
            failed.append(f"webui archive ({len(webui)} found)")
        if len(models) != 1:
            failed.append(f"models archive ({len(models)} found)")
        if failed:
            raise InvalidBackupSetError(
                f"Backup in {directory} needs exactly one webui and one models archive: "
                f"{'; '.join(failed)}",
                failed_checks=failed,
                details={"webui": webui, "models": models},
                remediation=[f"Add a {MANIFEST_FILENAME} declaring the artifact roles"]
            )
        return webui[0], models[0]

    @staticmethod
    def _backup_id(directory: Path, manifest: Optional[BackupManifest], webui: str) -> str:
        if manifest and manifest.backup_id:
            return manifest.backup_id
        for name in (directory.name, webui):
            match = _TIMESTAMP.search(name)
            if match:
                return match.group(1)
        return directory.name
