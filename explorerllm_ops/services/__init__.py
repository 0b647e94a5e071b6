"""
Compose service control and Docker provisioning.
"""

from explorerllm_ops.services.controller import ServiceController
from explorerllm_ops.services.provision import DockerProvisioner

__all__ = ["ServiceController", "DockerProvisioner"]
