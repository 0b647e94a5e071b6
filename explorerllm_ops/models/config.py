"""
Configuration models for ExplorerLLM Ops.

This module defines the Pydantic models describing the deployment being
operated on (OpsSettings), the per-invocation switches (PipelineOptions)
and the migration endpoints (RemoteTarget).
"""

import os
import shlex
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from explorerllm_ops.core.exceptions import ConfigurationError
from explorerllm_ops.utils.helpers import load_config_file

# Environment variable -> settings field
ENVIRONMENT_MAPPING: Dict[str, str] = {
    "EXPLORERLLM_PROJECT_NAME": "project_name",
    "EXPLORERLLM_PROJECT_DIR": "project_dir",
    "EXPLORERLLM_COMPOSE_PROJECT": "compose_project",
    "EXPLORERLLM_COMPOSE_COMMAND": "compose_command",
    "EXPLORERLLM_HELPER_IMAGE": "helper_image",
    "EXPLORERLLM_BACKUP_DIR": "backup_dir",
    "EXPLORERLLM_START_TIMEOUT": "start_timeout",
    "EXPLORERLLM_POLL_INTERVAL": "poll_interval",
    "BACKUP_RETENTION_DAYS": "retention_days",
}


class OpsSettings(BaseModel):
    """Settings describing the compose deployment and pipeline tunables."""
    model_config = ConfigDict(frozen=True)

    project_name: str = "explorerllm"
    project_dir: Path = Field(default_factory=Path.cwd)
    compose_project: Optional[str] = None
    compose_command: List[str] = Field(default_factory=lambda: ["docker-compose"])
    compose_file: str = "docker-compose.yml"
    webui_volume_suffix: str = "ollama_webui_data"
    models_volume_suffix: str = "ollama_data"
    helper_image: str = "ubuntu:latest"
    backup_dir: Path = Path("/backups")
    retention_days: int = Field(default=30, ge=0)
    start_timeout: float = Field(default=60.0, ge=0)
    poll_interval: float = Field(default=5.0, gt=0)
    ollama_service: str = "ollama"
    staging_dir_name: str = "migration_backup"
    webui_port: int = Field(default=3000, ge=1, le=65535)

    @field_validator('compose_command', mode='before')
    @classmethod
    def split_compose_command(cls, v):
        if isinstance(v, str):
            v = shlex.split(v)
        if not v:
            raise ValueError('Compose command must not be empty')
        return v

    @field_validator('project_name')
    @classmethod
    def project_name_must_be_simple(cls, v):
        if not v or "/" in v or v.strip() != v:
            raise ValueError('Project name must be a non-empty name without slashes or spaces')
        return v

    @property
    def compose_project_name(self) -> str:
        """Compose project name; docker-compose defaults it to the directory name."""
        return self.compose_project or self.project_dir.name

    @property
    def webui_volume(self) -> str:
        return f"{self.compose_project_name}_{self.webui_volume_suffix}"

    @property
    def models_volume(self) -> str:
        return f"{self.compose_project_name}_{self.models_volume_suffix}"

    @property
    def compose_path(self) -> Path:
        return self.project_dir / self.compose_file

    @property
    def compose_executable(self) -> str:
        return self.compose_command[0]

    def for_project_dir(self, project_dir: Union[str, Path]) -> "OpsSettings":
        """Return a copy pointing at another project directory."""
        return self.model_copy(update={"project_dir": Path(project_dir), "compose_project": None})

    @classmethod
    def load(
        cls,
        config_file: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any
    ) -> "OpsSettings":
        """
        Build settings from defaults, a YAML/JSON file, the environment and
        explicit overrides, in increasing order of precedence.

        Raises:
            ConfigurationError: If the file cannot be read or a value is invalid
        """
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}

        if config_file:
            try:
                data.update(load_config_file(config_file))
            except (OSError, ValueError) as e:
                raise ConfigurationError(f"Cannot load configuration file {config_file}: {e}")

        for env_name, field_name in ENVIRONMENT_MAPPING.items():
            value = environ.get(env_name)
            if value not in (None, ""):
                data[field_name] = value

        data.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**data)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                remediation=["Check the --config file and environment variables"]
            )


class PipelineOptions(BaseModel):
    """Switches chosen by the caller for a single pipeline run."""
    model_config = ConfigDict(frozen=True)

    force_restore: bool = False
    dry_run: bool = False
    skip_config: bool = False
    skip_docker: bool = False
    skip_backup: bool = False


class RemoteTarget(BaseModel):
    """One endpoint of a migration."""
    model_config = ConfigDict(frozen=True)

    host: str
    user: str = Field(default_factory=lambda: os.getenv("USER", "root"))
    ssh_key_path: Optional[str] = None
    base_path: Optional[str] = None
    port: int = Field(default=22, ge=1, le=65535)

    @field_validator('host')
    @classmethod
    def host_must_not_be_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('Host must not be empty')
        return v.strip()

    @field_validator('base_path')
    @classmethod
    def base_path_must_be_absolute(cls, v):
        if v and not v.startswith('/'):
            raise ValueError(f'Remote path must be absolute: {v}')
        return v

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}"

    @property
    def root(self) -> str:
        """Remote base path, defaulting to the user's home directory."""
        return self.base_path or f"/home/{self.user}"

    def __str__(self) -> str:
        return self.address
