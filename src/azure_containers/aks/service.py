"""Managed Kubernetes cluster ARM resource handle."""

from __future__ import annotations

import base64
import os
from datetime import timedelta
from pathlib import Path
from typing import Any

import structlog

from azure_containers.aks.agent_pool import AgentPool, check_pool_topology
from azure_containers.aks.cluster import KubernetesCluster
from azure_containers.arm import DEFAULT_API_VERSIONS, ArmClient, ArmResource
from azure_containers.config import (
    PollConfig,
    ToolConfig,
    default_kubeconfig_path,
    default_tools,
    user_kubeconfig_path,
)
from azure_containers.errors import CredentialError, SpecValidationError
from azure_containers.graph import GraphClient
from azure_containers.models import AgentPoolSpec
from azure_containers.validation import normalize_role

log = structlog.get_logger()

# Sentinel for "use the per-cluster cache path"; None means the user's ~/.kube/config.
DEFAULT_CONFIG: Any = object()


def _write_private(path: Path, content: bytes) -> None:
    """Write a credentials file readable by its owner only, tightening an existing file too."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as fh:
        fh.write(content)
    path.chmod(0o600)


class KubernetesService(ArmResource):
    """The cluster as an Azure resource: credentials, agent pools and password rotation."""

    provider = "Microsoft.ContainerService"
    resource_type = "managedClusters"

    def __init__(
        self,
        arm: ArmClient,
        resource_group: str,
        name: str,
        *,
        tools: ToolConfig | None = None,
        graph: GraphClient | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(arm, resource_group, name, **kwargs)
        self._tools = tools or default_tools()
        self._graph = graph

    @property
    def node_resource_group(self) -> str | None:
        return self.properties.get("nodeResourceGroup")

    @property
    def agent_pool_profiles(self) -> list[dict[str, Any]]:
        return list(self.properties.get("agentPoolProfiles") or [])

    def _get_graph(self) -> GraphClient:
        if self._graph is None:
            self._graph = GraphClient(self._arm.get_credential())
        return self._graph

    def get_cluster(self, config: str | Path | None = DEFAULT_CONFIG, role: str = "user") -> KubernetesCluster:
        """Fetch a kubeconfig for the cluster, store it locally and return a command client.

        Args:
            config: Where to write the kubeconfig. Defaults to a per-cluster file in the
                cache directory; ``None`` writes to ``~/.kube/config``.
            role: ``"user"`` or ``"admin"`` credentials.

        An existing file at the target path is overwritten with a warning.
        """
        role = normalize_role(role)
        if config is DEFAULT_CONFIG:
            path = default_kubeconfig_path(self.name)
        elif config is None:
            path = user_kubeconfig_path()
        else:
            path = Path(config)

        profile = self.do_operation(f"listCluster{role}Credential", method="POST")
        kubeconfigs = profile.get("kubeconfigs") or []
        if not kubeconfigs:
            msg = f"No kubeconfig returned for cluster '{self.name}'"
            raise CredentialError(msg)
        content = base64.b64decode(kubeconfigs[0]["value"])

        if path.exists():
            log.warning("overwriting_cluster_information", cluster=self.name, path=str(path))
        else:
            log.info("storing_cluster_information", cluster=self.name, path=str(path))
        path.parent.mkdir(parents=True, exist_ok=True)
        _write_private(path, content)

        return KubernetesCluster(None if config is None else path, self._tools)

    def list_cluster_resources(self) -> list[dict[str, Any]]:
        """Resources in the cluster's auto-managed node resource group."""
        node_rg = self.node_resource_group or self.sync().node_resource_group
        if not node_rg:
            msg = f"Cluster '{self.name}' has no node resource group yet"
            raise SpecValidationError(msg)
        return self._arm.list_all(
            f"resourceGroups/{node_rg}/resources",
            DEFAULT_API_VERSIONS["Microsoft.Resources/resources"],
        )

    # --- password rotation ---

    def update_aad_password(self, name: str | None = None, duration: timedelta | None = None) -> str:
        """Mint a new password for the AAD integration server app and apply it to the cluster.

        Returns the new secret; it cannot be retrieved again afterwards.

        Raises:
            CredentialError: If the cluster does not use legacy AAD integration.
        """
        self.sync()
        profile = dict(self.properties.get("aadProfile") or {})
        app_id = profile.get("serverAppID")
        if not app_id:
            msg = f"Cluster '{self.name}' does not use an AAD integration server application"
            raise CredentialError(msg)

        secret = self._get_graph().add_password(app_id, name=name, duration=duration)
        profile["serverAppSecret"] = secret
        self.do_operation("resetAADProfile", method="POST", body=profile)
        log.info("cluster_password_rotated", cluster=self.name, profile="aad", app_id=app_id)
        return secret

    def update_service_password(self, name: str | None = None, duration: timedelta | None = None) -> str:
        """Mint a new password for the cluster's service principal and apply it to the cluster.

        Returns the new secret; it cannot be retrieved again afterwards.

        Raises:
            CredentialError: If the cluster uses a managed identity instead of a service principal.
        """
        self.sync()
        client_id = (self.properties.get("servicePrincipalProfile") or {}).get("clientId")
        if not client_id or client_id == "msi":
            msg = f"Cluster '{self.name}' uses a managed identity, not a service principal"
            raise CredentialError(msg)

        secret = self._get_graph().add_password(client_id, name=name, duration=duration)
        self.do_operation("resetServicePrincipalProfile", method="POST", body={"clientId": client_id, "secret": secret})
        log.info("cluster_password_rotated", cluster=self.name, profile="service_principal", app_id=client_id)
        return secret

    # --- agent pools ---

    def _pool(self, name: str, **kwargs: Any) -> AgentPool:
        return AgentPool(self._arm, self.resource_group, self.name, name, **kwargs)

    def create_agent_pool(self, spec: AgentPoolSpec, wait: bool = False, poll: PollConfig | None = None) -> AgentPool:
        """Add a pool to an existing cluster. Pools added after creation must use a scale set.

        Raises:
            SpecValidationError: Before any ARM call if the pool breaks the topology rules.
        """
        if not spec.use_scaleset:
            msg = f"Agent pool {spec.name!r} must use a VM scale set; only the first pool may use an availability set."
            raise SpecValidationError(msg)
        check_pool_topology([spec], existing=self.sync().agent_pool_profiles)

        pool = self._pool(spec.name)
        pool._apply(pool.do_operation(method="PUT", body=spec.to_arm_subresource()))
        log.info("agent_pool_created", cluster=self.name, pool=spec.name, count=spec.count)
        if wait:
            pool.wait(poll)
        return pool

    def get_agent_pool(self, name: str) -> AgentPool:
        pool = self._pool(name)
        pool.sync()
        return pool

    def list_agent_pools(self) -> list[AgentPool]:
        path = f"{self.path}/agentPools"
        api_version = DEFAULT_API_VERSIONS["Microsoft.ContainerService/managedClusters/agentPools"]
        return [self._pool(item["name"], data=item) for item in self._arm.list_all(path, api_version)]

    def delete_agent_pool(self, name: str, confirm: bool = True, wait: bool = False) -> bool:
        return self._pool(name).delete(confirm=confirm, wait=wait)
