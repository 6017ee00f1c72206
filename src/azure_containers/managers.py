"""Per-resource-kind managers bound to one resource group.

Each manager offers create/get/list/delete for one kind of resource. Listing can
be scoped to the resource group or to the whole subscription.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

import structlog

from azure_containers.aks.agent_pool import check_pool_topology
from azure_containers.aks.service import KubernetesService
from azure_containers.arm import DEFAULT_API_VERSIONS, ArmClient, ArmResource
from azure_containers.config import PollConfig, ResourceGroupConfig, ToolConfig, default_tools
from azure_containers.errors import CredentialError
from azure_containers.graph import GraphClient
from azure_containers.instance import ContainerInstance, build_container_group_body
from azure_containers.models import ClusterSpec, ContainerGroupSpec, RegistrySpec
from azure_containers.registry.acr import ContainerRegistry
from azure_containers.validation import validate_label, validate_registry_name

log = structlog.get_logger()

R = TypeVar("R", bound=ArmResource)


@dataclass(frozen=True)
class ResourceGroup:
    """Coordinates of a resource group plus the collaborators its managers share."""

    arm: ArmClient
    name: str
    location: str
    tools: ToolConfig = field(default_factory=default_tools)
    poll: PollConfig | None = None
    graph: GraphClient | None = None

    @classmethod
    def from_target(
        cls,
        targets: Mapping[str, ResourceGroupConfig],
        alias: str,
        arm: ArmClient | None = None,
        **kwargs: Any,
    ) -> ResourceGroup:
        """Build from one alias of a loaded targets file (see ``load_targets``).

        A default ArmClient is created for the target's subscription unless one is passed.
        """
        if alias not in targets:
            msg = f"Unknown target '{alias}'. Valid targets: {', '.join(sorted(targets))}"
            raise ValueError(msg)
        target = targets[alias]
        if arm is None:
            arm = ArmClient(target.subscription_id)
        return cls(arm, target.resource_group, target.location, **kwargs)

    @property
    def registries(self) -> RegistryManager:
        return RegistryManager(self)

    @property
    def kubernetes(self) -> KubernetesServiceManager:
        return KubernetesServiceManager(self)

    @property
    def instances(self) -> ContainerInstanceManager:
        return ContainerInstanceManager(self)


class ContainerResourceManager(Generic[R]):
    """Create, get, list and delete one kind of resource in a resource group."""

    resource_cls: ClassVar[type[ArmResource]]
    kind: ClassVar[str]

    def __init__(self, group: ResourceGroup) -> None:
        self.group = group

    @property
    def _arm(self) -> ArmClient:
        return self.group.arm

    def _handle_kwargs(self) -> dict[str, Any]:
        return {}

    def _handle(self, name: str, **kwargs: Any) -> R:
        return self.resource_cls(self._arm, self.group.name, name, **self._handle_kwargs(), **kwargs)  # type: ignore[return-value]

    def _build_body(self, name: str, location: str, spec: Any) -> dict[str, Any]:
        raise NotImplementedError

    def _create(self, name: str, spec: Any, location: str | None, wait: bool) -> R:
        location = location or self.group.location
        body = self._build_body(name, location, spec)
        log.info(f"creating_{self.kind}", name=name, resource_group=self.group.name, location=location)

        resource = self._handle(name)
        resource._apply(resource.do_operation(method="PUT", body=body))
        if wait:
            resource.wait(self.group.poll)
        return resource

    def get(self, name: str) -> R:
        resource = self._handle(name)
        resource.sync()
        return resource

    def list(self, subscription_wide: bool = False) -> list[R]:
        """All resources of this kind in the resource group, or in the subscription."""
        rtype = f"{self.resource_cls.provider}/{self.resource_cls.resource_type}"
        path = f"providers/{rtype}"
        if not subscription_wide:
            path = f"resourceGroups/{self.group.name}/{path}"
        items = self._arm.list_all(path, DEFAULT_API_VERSIONS[rtype])
        return [self.resource_cls.from_resource(self._arm, item, **self._handle_kwargs()) for item in items]

    def delete(self, name: str, confirm: bool = True, wait: bool = False) -> bool:
        """Delete by name. Returns False if the confirmation prompt was declined."""
        return self._handle(name).delete(confirm=confirm, wait=wait, poll=self.group.poll)


class RegistryManager(ContainerResourceManager[ContainerRegistry]):
    resource_cls = ContainerRegistry
    kind = "container_registry"

    def _handle_kwargs(self) -> dict[str, Any]:
        return {"tools": self.group.tools}

    def _build_body(self, name: str, location: str, spec: RegistrySpec) -> dict[str, Any]:
        validate_registry_name(name)
        return spec.to_arm(location)

    def create(
        self,
        name: str,
        spec: RegistrySpec | None = None,
        *,
        location: str | None = None,
        wait: bool = False,
    ) -> ContainerRegistry:
        return self._create(name, spec or RegistrySpec(), location, wait)


def build_cluster_body(name: str, location: str, spec: ClusterSpec, arm: ArmClient) -> dict[str, Any]:
    """Translate a ClusterSpec into the ARM ``managedClusters`` PUT body.

    Identity resolution, in order: system-assigned managed identity, ``spec.service_principal``,
    a ``servicePrincipalProfile`` in ``spec.properties``, and
    finally the service principal the ARM client authenticated with.

    Raises:
        CredentialError: If a service principal is required and none is available.
        SpecValidationError: If the agent pools break the topology rules.
    """
    check_pool_topology(spec.agent_pools)

    props: dict[str, Any] = {
        "dnsPrefix": spec.dns_prefix or name,
        "agentPoolProfiles": [p.to_arm() for p in spec.agent_pools],
        "enableRBAC": spec.enable_rbac,
    }
    if spec.kubernetes_version:
        props["kubernetesVersion"] = spec.kubernetes_version
    if spec.login_user and spec.login_passkey:
        props["linuxProfile"] = {
            "adminUsername": spec.login_user,
            "ssh": {"publicKeys": [{"keyData": spec.login_passkey}]},
        }
    props.update(spec.properties)

    body: dict[str, Any] = {"location": location, "properties": props}
    if spec.tags:
        body["tags"] = spec.tags

    if spec.managed_identity:
        body["identity"] = {"type": "SystemAssigned"}
    elif spec.service_principal is not None:
        props["servicePrincipalProfile"] = {
            "clientId": spec.service_principal.client_id,
            "secret": spec.service_principal.secret,
        }
    elif "servicePrincipalProfile" not in props:
        sp = arm.service_principal
        if sp is None:
            msg = (
                "managed_identity=False needs a service principal: set ClusterSpec.service_principal or "
                "authenticate the ARM client with ArmClient.from_service_principal()."
            )
            raise CredentialError(msg)
        log.info("reusing_arm_service_principal", cluster=name, client_id=sp.client_id)
        props["servicePrincipalProfile"] = {"clientId": sp.client_id, "secret": sp.client_secret}
    return body


class KubernetesServiceManager(ContainerResourceManager[KubernetesService]):
    resource_cls = KubernetesService
    kind = "kubernetes_cluster"

    def _handle_kwargs(self) -> dict[str, Any]:
        return {"tools": self.group.tools, "graph": self.group.graph}

    def _build_body(self, name: str, location: str, spec: ClusterSpec) -> dict[str, Any]:
        return build_cluster_body(name, location, spec, self._arm)

    def create(
        self,
        name: str,
        spec: ClusterSpec,
        *,
        location: str | None = None,
        wait: bool = False,
    ) -> KubernetesService:
        return self._create(name, spec, location, wait)

    def list_kubernetes_versions(self, location: str | None = None) -> list[str]:
        """Kubernetes patch versions offered in a region, oldest first."""
        location = location or self.group.location
        path = f"providers/Microsoft.ContainerService/locations/{location}/kubernetesVersions"
        result = self._arm.call(path, DEFAULT_API_VERSIONS["Microsoft.ContainerService/managedClusters"])
        versions: list[str] = []
        for entry in result.get("values") or []:
            patches = entry.get("patchVersions") or {}
            versions.extend(patches or [entry["version"]])
        return sorted(versions, key=_version_key)

    def list_vm_sizes(self, location: str | None = None, name_only: bool = False) -> list[Any]:
        """VM sizes available in a region, as ARM dicts or just their names."""
        location = location or self.group.location
        path = f"providers/Microsoft.Compute/locations/{location}/vmSizes"
        sizes = self._arm.call(path, DEFAULT_API_VERSIONS["Microsoft.Compute/locations"]).get("value") or []
        if name_only:
            return [s["name"] for s in sizes]
        return list(sizes)


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(p) if p.isdigit() else 0 for p in version.split("."))


class ContainerInstanceManager(ContainerResourceManager[ContainerInstance]):
    resource_cls = ContainerInstance
    kind = "container_instance"

    def _build_body(self, name: str, location: str, spec: ContainerGroupSpec) -> dict[str, Any]:
        validate_label(name, kind="container group name")
        return build_container_group_body(name, location, spec)

    def create(
        self,
        name: str,
        spec: ContainerGroupSpec,
        *,
        location: str | None = None,
        wait: bool = False,
    ) -> ContainerInstance:
        return self._create(name, spec, location, wait)
