"""Agent pool sub-resource handle and pool topology rules."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from azure_containers.arm import ArmClient, ArmResource
from azure_containers.errors import SpecValidationError
from azure_containers.models import AVAILABILITY_SET, SCALESET, AgentPoolSpec


def check_pool_topology(pools: Sequence[AgentPoolSpec], existing: Sequence[dict[str, Any]] = ()) -> None:
    """Enforce the agent pool topology rules.

    Only the first pool of a cluster may use an availability set, and a cluster
    whose first pool is an availability set holds no other pools. Pool names are
    unique within a cluster.

    Args:
        pools: Pools about to be created, in order.
        existing: ``agentPoolProfiles`` already present on the cluster.

    Raises:
        SpecValidationError: If any rule is violated.
    """
    names = [str(p.get("name")) for p in existing]
    for pool in pools:
        if pool.name in names:
            msg = f"Duplicate agent pool name: {pool.name!r}"
            raise SpecValidationError(msg)
        names.append(pool.name)

    topologies = [str(p.get("type") or SCALESET) for p in existing] + [p.topology for p in pools]
    if len(topologies) <= 1:
        return
    if topologies[0] == AVAILABILITY_SET:
        msg = "A cluster whose first agent pool uses an availability set cannot have additional pools."
        raise SpecValidationError(msg)
    for pool in pools[1:] if not existing else pools:
        if not pool.use_scaleset:
            msg = f"Agent pool {pool.name!r} must use a VM scale set; only the first pool may use an availability set."
            raise SpecValidationError(msg)


class AgentPool(ArmResource):
    """One ``agentPools`` sub-resource of a managed cluster."""

    provider = "Microsoft.ContainerService"
    resource_type = "managedClusters/agentPools"

    def __init__(
        self,
        arm: ArmClient,
        resource_group: str,
        cluster_name: str,
        name: str,
        **kwargs: Any,
    ) -> None:
        self.cluster_name = cluster_name
        super().__init__(arm, resource_group, name, **kwargs)

    @property
    def path(self) -> str:
        return (
            f"resourceGroups/{self.resource_group}/providers/{self.provider}"
            f"/managedClusters/{self.cluster_name}/agentPools/{self.name}"
        )

    @property
    def count(self) -> int | None:
        return self.properties.get("count")

    @property
    def topology(self) -> str | None:
        return self.properties.get("type")
