"""
Runtime models for ExplorerLLM Ops.

This module defines the pipeline state machine, the backup set produced by
a backup run, and the PipelineContext value threaded through every
transition of a pipeline run.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from explorerllm_ops.core.exceptions import PipelineStateError
from explorerllm_ops.models.config import OpsSettings, PipelineOptions


class ServiceState(str, Enum):
    """State of the compose service group, derived on every query."""
    STOPPED = "stopped"
    RUNNING = "running"
    UNKNOWN = "unknown"


class PipelineState(str, Enum):
    """Pipeline states."""
    INIT = "init"
    VALIDATED = "validated"
    SERVICES_QUIESCED = "services_quiesced"
    DATA_TRANSFERRED = "data_transferred"
    CONFIG_APPLIED = "config_applied"
    SERVICES_RESUMED = "services_resumed"
    VERIFIED = "verified"
    DONE = "done"
    FAILED = "failed"


# Backup moves data before config; restore applies config first because the
# restored compose file defines the volumes the data is extracted into.
ALLOWED_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.INIT: frozenset({PipelineState.VALIDATED}),
    PipelineState.VALIDATED: frozenset({
        PipelineState.SERVICES_QUIESCED,
        PipelineState.VERIFIED,
    }),
    PipelineState.SERVICES_QUIESCED: frozenset({
        PipelineState.DATA_TRANSFERRED,
        PipelineState.CONFIG_APPLIED,
    }),
    PipelineState.DATA_TRANSFERRED: frozenset({
        PipelineState.CONFIG_APPLIED,
        PipelineState.SERVICES_RESUMED,
    }),
    PipelineState.CONFIG_APPLIED: frozenset({
        PipelineState.DATA_TRANSFERRED,
        PipelineState.SERVICES_RESUMED,
    }),
    PipelineState.SERVICES_RESUMED: frozenset({PipelineState.VERIFIED}),
    PipelineState.VERIFIED: frozenset({PipelineState.DONE}),
    PipelineState.DONE: frozenset(),
    PipelineState.FAILED: frozenset(),
}


class StepStatus(str, Enum):
    """Pipeline step status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StateTransition(BaseModel):
    """A recorded state change."""
    from_state: PipelineState
    to_state: PipelineState
    timestamp: datetime = Field(default_factory=datetime.now)


class StepRecord(BaseModel):
    """Outcome of a single pipeline step."""
    name: str
    status: StepStatus = StepStatus.RUNNING
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    duration: Optional[float] = None
    error: Optional[str] = None

    def finish(self, status: StepStatus, error: Optional[str] = None):
        """Mark step as finished."""
        self.status = status
        self.error = error
        self.end_time = datetime.now()
        self.duration = (self.end_time - self.start_time).total_seconds()


class ArtifactRole(str, Enum):
    """Roles of the files in a backup set."""
    WEBUI = "webui"
    MODELS = "models"
    CONFIG = "config"


class BackupSet(BaseModel):
    """
    A backup set: one directory holding the two volume archives, an optional
    compose file and a manifest. Immutable once written.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    directory: Path
    webui_archive: str
    models_archive: str
    config_file: Optional[str] = None
    manifest_text: Optional[str] = None

    @field_validator('webui_archive', 'models_archive')
    @classmethod
    def archive_required(cls, v):
        if not v or not v.strip():
            raise ValueError('A backup set needs both a webui and a models archive')
        return v

    @property
    def webui_path(self) -> Path:
        return self.directory / self.webui_archive

    @property
    def models_path(self) -> Path:
        return self.directory / self.models_archive

    @property
    def config_path(self) -> Optional[Path]:
        return self.directory / self.config_file if self.config_file else None

    @property
    def files(self) -> List[str]:
        names = [self.webui_archive, self.models_archive]
        if self.config_file:
            names.append(self.config_file)
        return names


class PipelineContext(BaseModel):
    """
    Explicit state of one pipeline run.

    Created by the orchestrator at the start of a pipeline and passed to
    every step; nothing about a run lives outside this object.
    """
    pipeline: str
    options: PipelineOptions = Field(default_factory=PipelineOptions)
    settings: OpsSettings = Field(default_factory=OpsSettings)
    state: PipelineState = PipelineState.INIT
    history: List[StateTransition] = Field(default_factory=list)
    steps: List[StepRecord] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    planned_actions: List[str] = Field(default_factory=list)
    backup_set: Optional[BackupSet] = None
    services_were_running: Optional[bool] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    summary: Dict[str, Any] = Field(default_factory=dict)

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.DONE

    def transition(self, to_state: PipelineState):
        """
        Move to another state.

        Raises:
            PipelineStateError: If the transition is not allowed
        """
        if to_state == PipelineState.FAILED:
            if self.state in (PipelineState.DONE, PipelineState.FAILED):
                raise PipelineStateError(f"Cannot fail a finished pipeline in state {self.state.value}")
        elif to_state not in ALLOWED_TRANSITIONS[self.state]:
            raise PipelineStateError(
                f"Illegal transition {self.state.value} -> {to_state.value} in {self.pipeline} pipeline"
            )

        self.history.append(StateTransition(from_state=self.state, to_state=to_state))
        self.state = to_state
        if to_state in (PipelineState.DONE, PipelineState.FAILED):
            self.finished_at = datetime.now()

    def fail(self, error: Exception):
        """Record a fatal error and move to the terminal Failed state."""
        self.error = str(error)
        if self.state not in (PipelineState.DONE, PipelineState.FAILED):
            self.transition(PipelineState.FAILED)

    def add_warning(self, message: str):
        self.warnings.append(message)

    def plan(self, action: str):
        """Record an action that dry-run mode suppressed."""
        self.planned_actions.append(action)

    @property
    def visited_states(self) -> List[PipelineState]:
        return [PipelineState.INIT] + [t.to_state for t in self.history]
