"""Container registry resource and endpoint clients."""

from __future__ import annotations

from azure_containers.registry.acr import ContainerRegistry
from azure_containers.registry.docker_registry import DockerRegistry

__all__ = ["ContainerRegistry", "DockerRegistry"]
