"""Provision and operate Azure container registries, managed Kubernetes clusters and container instances."""

from __future__ import annotations

from azure_containers.aks.cluster import KubernetesCluster
from azure_containers.aks.service import KubernetesService
from azure_containers.arm import ArmClient
from azure_containers.config import ToolConfig, discover_tools, load_targets
from azure_containers.instance import ContainerInstance
from azure_containers.managers import ResourceGroup
from azure_containers.models import (
    AgentPoolSpec,
    ClusterSpec,
    ContainerGroupSpec,
    ContainerPort,
    RegistryCredentials,
    RegistrySpec,
    ServicePrincipal,
    container_ports,
)
from azure_containers.registry import ContainerRegistry, DockerRegistry

__all__ = [
    "AgentPoolSpec",
    "ArmClient",
    "ClusterSpec",
    "ContainerGroupSpec",
    "ContainerInstance",
    "ContainerPort",
    "ContainerRegistry",
    "DockerRegistry",
    "KubernetesCluster",
    "KubernetesService",
    "RegistryCredentials",
    "RegistrySpec",
    "ResourceGroup",
    "ServicePrincipal",
    "ToolConfig",
    "container_ports",
    "discover_tools",
    "load_targets",
]
