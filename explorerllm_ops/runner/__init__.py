"""
External command execution for ExplorerLLM Ops.
"""

from explorerllm_ops.runner.process import (
    CommandResult,
    DryRunGuard,
    ProcessRunner,
    build_ssh_options,
    ssh_transport_command,
)

__all__ = [
    "CommandResult",
    "DryRunGuard",
    "ProcessRunner",
    "build_ssh_options",
    "ssh_transport_command",
]
