"""
Checks for the external tools the pipelines shell out to.
"""

import shlex
import shutil
from typing import Iterable, List, Optional

from explorerllm_ops.core.exceptions import MissingDependencyError
from explorerllm_ops.models.config import OpsSettings, RemoteTarget
from explorerllm_ops.runner.process import ProcessRunner

_INSTALL_HINTS = {
    "docker": "Install Docker: https://docs.docker.com/get-docker/",
    "docker-compose": "Install docker-compose, or set compose_command to 'docker compose'",
    "rsync": "Install rsync with your package manager",
    "ssh": "Install an OpenSSH client",
}


def local_tools(settings: OpsSettings) -> List[str]:
    """Tools needed on this host for backup, restore and verify."""
    tools = ["docker", settings.compose_executable]
    return list(dict.fromkeys(tools))


class DependencyValidator:
    """Verifies that required executables are available."""

    def __init__(self, runner: ProcessRunner):
        self.runner = runner

    def is_available(self, tool: str, target: Optional[RemoteTarget] = None) -> bool:
        if target is None:
            return shutil.which(tool) is not None
        result = self.runner.run(["sh", "-c", f"command -v {shlex.quote(tool)}"], target=target, check=False)
        return result.ok

    def require(self, tools: Iterable[str], target: Optional[RemoteTarget] = None):
        """
        Raises:
            MissingDependencyError: For the first tool that is missing
        """
        for tool in tools:
            if not self.is_available(tool, target):
                where = f" on {target.host}" if target else ""
                raise MissingDependencyError(
                    tool,
                    f"Required tool not found{where}: {tool}",
                    remediation=[_INSTALL_HINTS.get(tool, f"Install {tool}")]
                )
