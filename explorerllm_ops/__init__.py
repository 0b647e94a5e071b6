"""
ExplorerLLM Ops

Backup, restore, verification and host-to-host migration for the
ExplorerLLM docker-compose deployment of Ollama and OpenWebUI.
"""

__version__ = "1.0.0"
__author__ = "ExplorerLLM Team"
