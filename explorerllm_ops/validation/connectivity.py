"""
SSH connectivity validation for migration endpoints.
"""

import logging
import socket
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import paramiko

from explorerllm_ops.core.exceptions import ConnectivityError
from explorerllm_ops.models.config import RemoteTarget

logger = logging.getLogger(__name__)

DEFAULT_SSH_CONFIG = "~/.ssh/config"


class ValidationResult(Enum):
    """Validation result status"""
    SUCCESS = "success"
    FAILED = "failed"
    WARNING = "warning"


@dataclass
class ConnectivityCheck:
    """Result of a connectivity check"""
    host: str
    result: ValidationResult
    message: str
    remediation: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result != ValidationResult.FAILED


class ConnectivityValidator:
    """
    Checks that a remote host accepts SSH logins and runs commands.

    Host aliases, HostName, Port, IdentityFile, ProxyCommand and ProxyJump
    from the user's ssh config are applied, as the ssh client used for the
    transfers would apply them. An explicit key or non-default port wins.
    """

    def __init__(self, timeout: float = 10.0, ssh_config_path: str = DEFAULT_SSH_CONFIG):
        self.timeout = timeout
        self.ssh_config_path = ssh_config_path

    def _host_config(self, host: str) -> Dict[str, Any]:
        path = Path(self.ssh_config_path).expanduser()
        if not path.is_file():
            return {}
        return paramiko.SSHConfig.from_path(str(path)).lookup(host)

    def connect_kwargs(self, target: RemoteTarget) -> Dict[str, Any]:
        """Arguments for SSHClient.connect, with ssh config applied."""
        kwargs = {
            "hostname": target.host,
            "port": target.port,
            "username": target.user,
            "key_filename": target.ssh_key_path,
            "timeout": self.timeout,
        }
        host_config = self._host_config(target.host)
        if not host_config:
            return kwargs

        kwargs["hostname"] = host_config.get("hostname", target.host)
        if target.port == 22 and "port" in host_config:
            kwargs["port"] = int(host_config["port"])
        if not target.ssh_key_path and "identityfile" in host_config:
            kwargs["key_filename"] = host_config["identityfile"]

        proxy = host_config.get("proxycommand")
        if not proxy and "proxyjump" in host_config:
            proxy = f"ssh -W {kwargs['hostname']}:{kwargs['port']} {host_config['proxyjump']}"
        if proxy and proxy.lower() != "none":
            kwargs["sock"] = paramiko.ProxyCommand(proxy)
        return kwargs

    def check(self, target: RemoteTarget) -> ConnectivityCheck:
        """Check SSH connectivity using paramiko"""
        ssh_client = paramiko.SSHClient()
        ssh_client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            ssh_client.connect(**self.connect_kwargs(target))

            # Test the connection with a simple command
            stdin, stdout, stderr = ssh_client.exec_command('echo "ok"')
            output = stdout.read().decode().strip()

            if output == "ok":
                return ConnectivityCheck(
                    host=target.host,
                    result=ValidationResult.SUCCESS,
                    message=f"Successfully connected via SSH to {target.address}"
                )
            return ConnectivityCheck(
                host=target.host,
                result=ValidationResult.WARNING,
                message="SSH connection established but command execution may have issues"
            )

        except paramiko.AuthenticationException:
            return ConnectivityCheck(
                host=target.host,
                result=ValidationResult.FAILED,
                message=f"SSH authentication failed for {target.address}",
                remediation="Check the SSH user and key file (-u / -k)"
            )
        except (paramiko.SSHException, socket.error) as e:
            return ConnectivityCheck(
                host=target.host,
                result=ValidationResult.FAILED,
                message=f"SSH connection to {target.address} failed: {e}",
                remediation="Check that the host is reachable and runs an SSH server"
            )
        finally:
            ssh_client.close()

    def require(self, target: RemoteTarget) -> ConnectivityCheck:
        """
        Check a target and raise if it is unreachable.

        Raises:
            ConnectivityError: If the check failed
        """
        check = self.check(target)
        if not check.ok:
            raise ConnectivityError(
                target.host,
                check.message,
                remediation=[check.remediation] if check.remediation else None
            )
        if check.result == ValidationResult.WARNING:
            logger.warning(check.message)
        else:
            logger.debug(check.message)
        return check
