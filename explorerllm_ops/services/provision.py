"""
Docker provisioning on a migration destination.
"""

from typing import Optional

from explorerllm_ops.models.config import RemoteTarget
from explorerllm_ops.runner.process import DryRunGuard, ProcessRunner
from explorerllm_ops.utils.logging import LogCategory, PipelineLogger

INSTALL_SCRIPT = (
    "curl -fsSL https://get.docker.com -o get-docker.sh"
    " && sudo sh get-docker.sh"
    " && sudo usermod -aG docker {user}"
    " && sudo apt-get update"
    " && sudo apt-get install -y docker-compose"
    " && rm -f get-docker.sh"
)


class DockerProvisioner:
    """Installs Docker and docker-compose on a remote host when missing."""

    def __init__(self, runner: ProcessRunner, guard: Optional[DryRunGuard] = None,
                 log: Optional[PipelineLogger] = None):
        self.runner = runner
        self.guard = guard or DryRunGuard()
        self.log = log or PipelineLogger("provision")

    def is_installed(self, target: RemoteTarget) -> bool:
        result = self.runner.run(["sh", "-c", "command -v docker"], target=target, check=False)
        return result.ok and bool(result.stdout.strip())

    def ensure_docker(self, target: RemoteTarget) -> bool:
        """
        Install Docker on the target unless it is already present.

        Returns:
            True if an installation was performed
        """
        if self.is_installed(target):
            self.log.info(f"Docker already installed on {target.host}", LogCategory.SERVICE)
            return False

        if not self.guard.permits(f"install Docker on {target.host}"):
            return False

        self.log.info(f"Installing Docker on {target.host}...", LogCategory.SERVICE)
        self.runner.run(["sh", "-c", INSTALL_SCRIPT.format(user=target.user)], target=target)
        return True
