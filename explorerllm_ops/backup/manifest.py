"""
Backup manifest rendering and parsing.

``backup_manifest.txt`` stays readable by a person restoring by hand, and
its ``Artifacts:`` section declares which file plays which role so a
restore never has to guess from file names.
"""

import re
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from explorerllm_ops.models.session import ArtifactRole

MANIFEST_FILENAME = "backup_manifest.txt"

_ROLE_DESCRIPTIONS = {
    ArtifactRole.WEBUI: "WebUI data (users, chat history, settings)",
    ArtifactRole.MODELS: "Ollama models",
    ArtifactRole.CONFIG: "Docker Compose configuration",
}

_ARTIFACT_LINE = re.compile(r"^-\s*(?P<role>\w+):\s*(?P<file>\S+)")


class BackupManifest(BaseModel):
    """Parsed form of a backup manifest."""
    backup_id: Optional[str] = None
    created: Optional[datetime] = None
    project_dir: Optional[str] = None
    compose_project: Optional[str] = None
    artifacts: Dict[ArtifactRole, str] = Field(default_factory=dict)
    volumes: List[str] = Field(default_factory=list)
    restore_command: Optional[str] = None

    def artifact(self, role: ArtifactRole) -> Optional[str]:
        return self.artifacts.get(role)

    def render(self) -> str:
        """Render the manifest text."""
        lines = [
            "ExplorerLLM Backup Manifest",
            "===========================",
            f"Backup ID: {self.backup_id or ''}",
            f"Date: {self.created.strftime('%Y-%m-%d %H:%M:%S') if self.created else ''}",
            f"Project Directory: {self.project_dir or ''}",
            f"Docker Compose Project: {self.compose_project or ''}",
            "",
            "Artifacts:",
        ]
        for role in ArtifactRole:
            if role in self.artifacts:
                lines.append(f"- {role.value}: {self.artifacts[role]}    # {_ROLE_DESCRIPTIONS[role]}")

        lines += ["", "Volumes backed up:"]
        lines += [f"- {volume}" for volume in self.volumes]

        if self.restore_command:
            lines += ["", "Restore command:", self.restore_command]
        return "\n".join(lines) + "\n"

    @classmethod
    def parse(cls, text: str) -> "BackupManifest":
        """
        Parse manifest text.

        Unknown roles and unreadable header values are ignored; a manifest
        without an Artifacts section parses with no artifacts.
        """
        data: Dict[str, object] = {}
        artifacts: Dict[ArtifactRole, str] = {}
        volumes: List[str] = []
        section = None
        lines = text.splitlines()

        for index, raw in enumerate(lines):
            line = raw.strip()
            if not line:
                section = None
                continue

            if line == "Artifacts:":
                section = "artifacts"
            elif line == "Volumes backed up:":
                section = "volumes"
            elif line == "Restore command:":
                following = [l.strip() for l in lines[index + 1:] if l.strip()]
                data["restore_command"] = following[0] if following else None
                break
            elif section == "artifacts":
                match = _ARTIFACT_LINE.match(line)
                if match:
                    try:
                        artifacts[ArtifactRole(match.group("role"))] = match.group("file")
                    except ValueError:
                        continue
            elif section == "volumes" and line.startswith("-"):
                volumes.append(line.lstrip("- ").strip())
            elif ":" in line:
                key, _, value = line.partition(":")
                value = value.strip()
                if key == "Backup ID" and value:
                    data["backup_id"] = value
                elif key == "Date" and value:
                    try:
                        data["created"] = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
                    except ValueError:
                        data["created"] = None
                elif key == "Project Directory" and value:
                    data["project_dir"] = value
                elif key == "Docker Compose Project" and value:
                    data["compose_project"] = value

        return cls(artifacts=artifacts, volumes=volumes, **data)
