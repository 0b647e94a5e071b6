"""
Command-line interface for ExplorerLLM Ops.
"""

from explorerllm_ops.cli.main import main

__all__ = ["main"]
