"""
Service control for the compose deployment.

Wraps docker-compose for querying, stopping and starting the service group,
and polls for readiness instead of sleeping for a fixed time.
"""

import re
import time
from typing import Callable, List, Optional

from explorerllm_ops.core.exceptions import HealthCheckWarning
from explorerllm_ops.models.config import OpsSettings, RemoteTarget
from explorerllm_ops.models.session import ServiceState
from explorerllm_ops.runner.process import CommandResult, DryRunGuard, ProcessRunner
from explorerllm_ops.utils.logging import LogCategory, PipelineLogger

_UP_PATTERN = re.compile(r"\b(Up|running)\b")


class ServiceController:
    """Controls the compose services of one project directory."""

    def __init__(
        self,
        runner: ProcessRunner,
        settings: OpsSettings,
        guard: Optional[DryRunGuard] = None,
        target: Optional[RemoteTarget] = None,
        log: Optional[PipelineLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        self.runner = runner
        self.settings = settings
        self.guard = guard or DryRunGuard()
        self.target = target
        self.log = log or PipelineLogger("services")
        self._sleep = sleep
        self._clock = clock

    @property
    def where(self) -> str:
        return f" on {self.target.host}" if self.target else ""

    def _compose(self, *args: str, check: bool = True) -> CommandResult:
        return self.runner.run(
            [*self.settings.compose_command, *args],
            target=self.target,
            cwd=self.settings.project_dir,
            check=check,
        )

    def status(self) -> ServiceState:
        """Query the service group; Running if any service reports Up."""
        result = self._compose("ps", check=False)
        if not result.ok:
            return ServiceState.UNKNOWN
        for line in result.lines:
            if _UP_PATTERN.search(line):
                return ServiceState.RUNNING
        return ServiceState.STOPPED

    def stop(self) -> bool:
        if not self.guard.permits(f"stop services{self.where}"):
            return False
        self.log.info(f"Stopping services{self.where}...", LogCategory.SERVICE)
        self._compose("stop")
        return True

    def start(self) -> bool:
        """Start existing service containers."""
        if not self.guard.permits(f"start services{self.where}"):
            return False
        self.log.info(f"Starting services{self.where}...", LogCategory.SERVICE)
        self._compose("start")
        return True

    def up(self) -> bool:
        """Create and start the service group in the background."""
        if not self.guard.permits(f"start services with '{self.settings.compose_executable} up -d'{self.where}"):
            return False
        self.log.info(f"Starting services{self.where}...", LogCategory.SERVICE)
        self._compose("up", "-d")
        return True

    def create_volumes(self) -> bool:
        """Create containers and named volumes without starting anything."""
        if not self.guard.permits(f"create volumes{self.where}"):
            return False
        self.log.info(f"Creating volumes{self.where}...", LogCategory.SERVICE)
        self._compose("up", "--no-start")
        return True

    def wait_until_running(self, timeout: Optional[float] = None) -> ServiceState:
        """
        Poll until the service group reports Running.

        Raises:
            HealthCheckWarning: If the services are not Running in time
        """
        timeout = self.settings.start_timeout if timeout is None else timeout
        deadline = self._clock() + timeout
        state = self.status()
        while state != ServiceState.RUNNING:
            if self._clock() >= deadline:
                raise HealthCheckWarning(
                    f"Services{self.where} not running after {timeout:.0f}s (state: {state.value})",
                    remediation=[f"Check the logs with '{self.settings.compose_executable} logs'"]
                )
            self._sleep(self.settings.poll_interval)
            state = self.status()
        self.log.info(f"Services{self.where} are running", LogCategory.SERVICE)
        return state

    def running_services(self) -> List[str]:
        result = self._compose("ps", "--services", "--filter", "status=running", check=False)
        return result.lines if result.ok else []

    def model_count(self) -> Optional[int]:
        """Number of models reported by ``ollama list``, or None if unavailable."""
        container = self._compose("ps", "-q", self.settings.ollama_service, check=False)
        if not container.ok or not container.lines:
            return None
        listing = self.runner.run(
            ["docker", "exec", container.lines[0].strip(), "ollama", "list"],
            target=self.target,
            check=False,
        )
        if not listing.ok:
            return None
        # Header line plus one line per model
        return max(len(listing.lines) - 1, 0)
