"""Pydantic v2 configuration models for registries, clusters, agent pools and container groups."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from azure_containers.validation import validate_label, validate_node_pool

SCALESET = "VirtualMachineScaleSets"
AVAILABILITY_SET = "AvailabilitySet"

# Agent pool fields that only mean something on a scale set
_SCALESET_ONLY_KEYS = frozenset(
    {"enableAutoScaling", "minCount", "maxCount", "scaleSetPriority", "scaleSetEvictionPolicy", "spotMaxPrice"}
)


# --- Registry ---


class RegistrySpec(BaseModel):
    """Settings for a new container registry."""

    admin_user_enabled: bool = True
    sku: Literal["Basic", "Standard", "Premium"] = "Standard"
    properties: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, str] = Field(default_factory=dict)

    def to_arm(self, location: str) -> dict[str, Any]:
        body: dict[str, Any] = {
            "location": location,
            "sku": {"name": self.sku},
            "properties": {"adminUserEnabled": self.admin_user_enabled, **self.properties},
        }
        if self.tags:
            body["tags"] = self.tags
        return body


class RegistryCredentials(BaseModel):
    """Explicit server/username/password triple for pulling from a private registry."""

    model_config = ConfigDict(frozen=True)

    server: str
    username: str
    password: str = Field(repr=False)


# --- Kubernetes ---


class AgentPoolSpec(BaseModel):
    """One homogeneous group of cluster nodes.

    Autoscale bounds and spot priority only apply to scale-set pools and are
    dropped from the ARM payload otherwise.
    """

    name: str
    count: int = Field(ge=0)
    vm_size: str = "Standard_DS2_v2"
    os: Literal["Linux", "Windows"] = "Linux"
    disk_size_gb: int = Field(default=0, ge=0)
    use_scaleset: bool = True
    spot: bool = False
    autoscale: tuple[int, int] | None = None
    mode: Literal["System", "User"] | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        validate_node_pool(value)
        return value

    @field_validator("autoscale")
    @classmethod
    def _order_bounds(cls, value: tuple[int, int] | None) -> tuple[int, int] | None:
        if value is None:
            return None
        low, high = sorted(value)
        if low < 0:
            msg = f"Autoscale bounds must be non-negative, got {value}"
            raise ValueError(msg)
        return (low, high)

    @property
    def topology(self) -> str:
        return SCALESET if self.use_scaleset else AVAILABILITY_SET

    def to_arm(self) -> dict[str, Any]:
        """ARM ``agentPoolProfiles`` entry for this pool."""
        parms: dict[str, Any] = {
            "name": self.name,
            "count": self.count,
            "vmSize": self.vm_size,
            "osType": self.os,
            "osDiskSizeGB": self.disk_size_gb,
            "type": self.topology,
        }
        if self.mode:
            parms["mode"] = self.mode

        extras = dict(self.extra)
        if self.use_scaleset:
            if self.autoscale is not None:
                parms["enableAutoScaling"] = True
                parms["minCount"], parms["maxCount"] = self.autoscale
            if self.spot:
                parms["scaleSetPriority"] = "Spot"
                parms["scaleSetEvictionPolicy"] = "Delete"
        else:
            extras = {k: v for k, v in extras.items() if k not in _SCALESET_ONLY_KEYS}

        return {**extras, **parms}

    def to_arm_subresource(self) -> dict[str, Any]:
        """Body for creating this pool as an ``agentPools`` sub-resource."""
        props = self.to_arm()
        del props["name"]
        return {"properties": props}


class ServicePrincipal(BaseModel):
    """Service principal used by a cluster to manage its Azure resources."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    secret: str = Field(repr=False)


class ClusterSpec(BaseModel):
    """Settings for a new managed Kubernetes cluster.

    Identity: a system-assigned managed identity is used by default. Setting
    ``managed_identity=False`` uses ``service_principal``, or when that is not
    given, the service principal the ARM client authenticated with.
    """

    agent_pools: list[AgentPoolSpec] = Field(min_length=1)
    dns_prefix: str | None = None
    kubernetes_version: str | None = None
    enable_rbac: bool = True
    login_user: str | None = None
    login_passkey: str | None = None
    managed_identity: bool = True
    service_principal: ServicePrincipal | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_identity(self) -> ClusterSpec:
        if self.managed_identity and self.service_principal is not None:
            msg = "Specify either managed_identity=True or a service_principal, not both."
            raise ValueError(msg)
        return self


# --- Container instances ---


class ContainerPort(BaseModel):
    model_config = ConfigDict(frozen=True)

    port: int = Field(default=80, ge=1, le=65535)
    protocol: Literal["TCP", "UDP"] = "TCP"

    def to_arm(self) -> dict[str, Any]:
        return {"port": self.port, "protocol": self.protocol}


def container_ports(*ports: int, protocol: Literal["TCP", "UDP"] = "TCP") -> list[ContainerPort]:
    """Build a port list, e.g. ``container_ports(8080, 8443)``."""
    return [ContainerPort(port=p, protocol=protocol) for p in ports]


class ContainerGroupSpec(BaseModel):
    """Settings for a single-container instance group.

    ``registry_creds`` accepts ContainerRegistry handles, DockerRegistry endpoints
    or RegistryCredentials; they are normalized when the ARM body is built.
    A public group gets the DNS label ``dns_name``, or the group name when unset.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    image: str
    container_name: str | None = None
    cores: float = Field(default=1, gt=0)
    memory_gb: float = Field(default=8, gt=0)
    os: Literal["Linux", "Windows"] = "Linux"
    command: list[str] = Field(default_factory=list)
    env_vars: dict[str, str] = Field(default_factory=dict)
    secure_env_vars: dict[str, str] = Field(default_factory=dict, repr=False)
    ports: list[ContainerPort] = Field(default_factory=lambda: [ContainerPort()])
    dns_name: str | None = None
    public_ip: bool = True
    restart: Literal["Always", "OnFailure", "Never"] = "Always"
    registry_creds: list[Any] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("dns_name", "container_name")
    @classmethod
    def _check_label(cls, value: str | None) -> str | None:
        validate_label(value)
        return value

    @field_validator("ports")
    @classmethod
    def _distinct_ports(cls, value: list[ContainerPort]) -> list[ContainerPort]:
        seen: set[tuple[int, str]] = set()
        for p in value:
            key = (p.port, p.protocol)
            if key in seen:
                msg = f"Duplicate port {p.port}/{p.protocol}"
                raise ValueError(msg)
            seen.add(key)
        return value
