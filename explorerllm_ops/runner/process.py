"""
Process runner for ExplorerLLM Ops.

Every external command (docker, docker-compose, rsync, ssh) goes through
ProcessRunner. Local commands run directly; remote commands are wrapped in
an ssh invocation for the given RemoteTarget. A non-zero exit becomes a
CommandFailedError unless the caller opts out with check=False.
"""

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from explorerllm_ops.core.exceptions import CommandFailedError, MissingDependencyError
from explorerllm_ops.models.config import RemoteTarget
from explorerllm_ops.utils.logging import PipelineLogger

logger = logging.getLogger(__name__)

# Migration targets are often freshly provisioned; host keys are not pinned.
SSH_BASE_OPTIONS = [
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
    "-o", "LogLevel=ERROR",
]


def build_ssh_options(target: RemoteTarget) -> List[str]:
    """Build the ssh option list for a target."""
    options = list(SSH_BASE_OPTIONS)
    if target.port != 22:
        options += ["-p", str(target.port)]
    if target.ssh_key_path:
        options += ["-i", target.ssh_key_path]
    return options


def ssh_transport_command(target: RemoteTarget, ssh_executable: str = "ssh") -> str:
    """Remote shell command suitable for ``rsync -e``."""
    return shlex.join([ssh_executable, *build_ssh_options(target)])


@dataclass
class CommandResult:
    """Outcome of one external command."""
    command: List[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    host: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def lines(self) -> List[str]:
        return [line for line in self.stdout.splitlines() if line.strip()]


class ProcessRunner:
    """Runs external commands locally or on a remote host over ssh."""

    def __init__(self, ssh_executable: str = "ssh", timeout: Optional[float] = None):
        self.ssh_executable = ssh_executable
        self.timeout = timeout

    def build_command(
        self,
        args: Sequence[str],
        target: Optional[RemoteTarget] = None,
        cwd: Optional[Union[str, Path]] = None
    ) -> List[str]:
        """Return the argv actually executed for ``args``."""
        args = [str(a) for a in args]
        if target is None:
            return args

        remote = shlex.join(args)
        if cwd is not None:
            remote = f"cd {shlex.quote(str(cwd))} && {remote}"
        return [self.ssh_executable, *build_ssh_options(target), target.address, remote]

    def run(
        self,
        args: Sequence[str],
        target: Optional[RemoteTarget] = None,
        cwd: Optional[Union[str, Path]] = None,
        input_text: Optional[str] = None,
        check: bool = True
    ) -> CommandResult:
        """
        Run a command and capture its output.

        Args:
            args: Command and arguments
            target: Remote host to run on, or None for the local host
            cwd: Working directory (on the target when remote)
            input_text: Text fed to the command's stdin
            check: Raise CommandFailedError on a non-zero exit

        Returns:
            CommandResult with exit code and captured output

        Raises:
            MissingDependencyError: If the executable does not exist
            CommandFailedError: If check is set and the command fails
        """
        command = self.build_command(args, target, cwd)
        host = target.host if target else None
        logger.debug("Running%s: %s", f" on {host}" if host else "", shlex.join(command))

        local_cwd = None if target is not None else cwd
        exit_code, stdout, stderr = self._execute(command, local_cwd, input_text)
        result = CommandResult(
            command=command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            host=host,
        )

        if check and not result.ok:
            raise CommandFailedError(
                [str(a) for a in args],
                exit_code,
                stderr=stderr,
                stdout=stdout,
                host=host,
            )
        return result

    def _execute(
        self,
        command: List[str],
        cwd: Optional[Union[str, Path]],
        input_text: Optional[str]
    ) -> Tuple[int, str, str]:
        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd) if cwd is not None else None,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise MissingDependencyError(command[0])
        except subprocess.TimeoutExpired as e:
            raise CommandFailedError(
                command,
                -1,
                stderr=f"Timed out after {e.timeout} seconds",
            )
        return completed.returncode, completed.stdout or "", completed.stderr or ""


@dataclass
class DryRunGuard:
    """
    Gate for state-changing actions.

    In dry-run mode ``permits`` logs the action, reports it to ``on_skip``
    and returns False; otherwise it returns True and the caller proceeds.
    """
    dry_run: bool = False
    log: Optional[PipelineLogger] = None
    on_skip: Optional[Callable[[str], None]] = None
    skipped: List[str] = field(default_factory=list)

    def permits(self, action: str) -> bool:
        if not self.dry_run:
            return True
        self.skipped.append(action)
        if self.log:
            self.log.dry_run(action)
        if self.on_skip:
            self.on_skip(action)
        return False
