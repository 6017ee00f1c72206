"""Tests for managers.py: create/get/list/delete per resource kind and cluster body identity."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock, patch

import pytest
from structlog.testing import capture_logs

from azure_containers.aks.service import KubernetesService
from azure_containers.arm import ArmClient
from azure_containers.config import PollConfig, ResourceGroupConfig, ToolConfig
from azure_containers.errors import CredentialError, SpecValidationError
from azure_containers.instance import ContainerInstance
from azure_containers.managers import ResourceGroup, build_cluster_body
from azure_containers.models import (
    AgentPoolSpec,
    ClusterSpec,
    ContainerGroupSpec,
    RegistrySpec,
    ServicePrincipal,
)
from azure_containers.process import run_tool
from azure_containers.registry import ContainerRegistry

SUB = "11111111-2222-3333-4444-555555555555"
RG_PREFIX = f"https://management.azure.com/subscriptions/{SUB}/resourceGroups/rg"


@pytest.fixture
def group(arm: ArmClient, tools: ToolConfig, fast_poll: PollConfig) -> ResourceGroup:
    return ResourceGroup(arm, "rg", "eastus", tools=tools, poll=fast_poll)


def _pools(*specs: AgentPoolSpec) -> list[AgentPoolSpec]:
    return list(specs) or [AgentPoolSpec(name="pool1", count=3)]


def _resource(kind: str, name: str, state: str = "Succeeded") -> dict:
    return {
        "id": f"/subscriptions/{SUB}/resourceGroups/rg/providers/{kind}/{name}",
        "name": name,
        "location": "eastus",
        "properties": {"provisioningState": state},
    }


class TestRegistryManager:
    def test_create_puts_body_and_waits(
        self,
        group: ResourceGroup,
        session: MagicMock,
        make_response: Callable[..., MagicMock],
        no_sleep: MagicMock,
    ) -> None:
        kind = "Microsoft.ContainerRegistry/registries"
        session.request.side_effect = [
            make_response(body=_resource(kind, "myreg01", "Creating")),
            make_response(body=_resource(kind, "myreg01", "Succeeded")),
        ]

        with capture_logs() as logs:
            registry = group.registries.create("myreg01", RegistrySpec(sku="Premium"), wait=True)

        assert isinstance(registry, ContainerRegistry)
        assert registry.provisioning_state == "Succeeded"
        put = session.request.call_args_list[0]
        assert put.args == ("PUT", f"{RG_PREFIX}/providers/{kind}/myreg01")
        assert put.kwargs["json"] == {
            "location": "eastus",
            "sku": {"name": "Premium"},
            "properties": {"adminUserEnabled": True},
        }
        assert logs[0]["event"] == "creating_container_registry"

    def test_create_without_wait_does_not_poll(
        self, group: ResourceGroup, session: MagicMock, make_response: Callable[..., MagicMock]
    ) -> None:
        session.request.return_value = make_response(body=_resource("x/y", "myreg01", "Creating"))
        registry = group.registries.create("myreg01", location="westus2")
        assert registry.provisioning_state == "Creating"
        assert session.request.call_count == 1
        assert session.request.call_args.kwargs["json"]["location"] == "westus2"

    def test_invalid_name_fails_before_request(self, group: ResourceGroup, session: MagicMock) -> None:
        with pytest.raises(ValueError, match="Invalid registry name"):
            group.registries.create("my-reg")
        session.request.assert_not_called()

    def test_list_resource_group_and_subscription(
        self, group: ResourceGroup, session: MagicMock, make_response: Callable[..., MagicMock], tools: ToolConfig
    ) -> None:
        kind = "Microsoft.ContainerRegistry/registries"
        next_link = "https://management.azure.com/next-page"
        session.request.side_effect = [
            make_response(body={"value": [_resource(kind, "one")], "nextLink": next_link}),
            make_response(body={"value": [_resource(kind, "two")]}),
            make_response(body={"value": [_resource(kind, "three")]}),
        ]

        in_group = group.registries.list()
        in_sub = group.registries.list(subscription_wide=True)

        assert [r.name for r in in_group] == ["one", "two"]
        assert [r.name for r in in_sub] == ["three"]
        assert all(r.resource_group == "rg" for r in in_group)
        urls = [c.args[1] for c in session.request.call_args_list]
        assert urls[0] == f"{RG_PREFIX}/providers/{kind}"
        assert urls[2] == f"https://management.azure.com/subscriptions/{SUB}/providers/{kind}"

    def test_get(self, group: ResourceGroup, session: MagicMock, make_response: Callable[..., MagicMock]) -> None:
        body = _resource("Microsoft.ContainerRegistry/registries", "myreg01")
        body["properties"]["loginServer"] = "myreg01.azurecr.io"
        session.request.return_value = make_response(body=body)
        registry = group.registries.get("myreg01")
        assert registry.login_server == "myreg01.azurecr.io"

    def test_delete_declined(self, group: ResourceGroup, session: MagicMock) -> None:
        with patch("azure_containers.arm.confirm_action", return_value=False):
            assert group.registries.delete("myreg01") is False
        session.request.assert_not_called()


class TestBuildClusterBody:
    def test_managed_identity_default(self, arm: ArmClient) -> None:
        spec = ClusterSpec(agent_pools=_pools(), kubernetes_version="1.29.7", tags={"env": "dev"})
        body = build_cluster_body("aks1", "eastus", spec, arm)
        assert body["identity"] == {"type": "SystemAssigned"}
        assert body["tags"] == {"env": "dev"}
        props = body["properties"]
        assert props["dnsPrefix"] == "aks1"
        assert props["kubernetesVersion"] == "1.29.7"
        assert props["enableRBAC"] is True
        assert props["agentPoolProfiles"][0]["name"] == "pool1"
        assert "servicePrincipalProfile" not in props

    def test_explicit_service_principal(self, arm: ArmClient) -> None:
        spec = ClusterSpec(
            agent_pools=_pools(),
            managed_identity=False,
            service_principal=ServicePrincipal(client_id="sp-app", secret="sp-secret"),
        )
        body = build_cluster_body("aks1", "eastus", spec, arm)
        assert "identity" not in body
        assert body["properties"]["servicePrincipalProfile"] == {"clientId": "sp-app", "secret": "sp-secret"}

    def test_reuses_arm_service_principal(self, session: MagicMock) -> None:
        with patch("azure_containers.arm.ClientSecretCredential"):
            arm = ArmClient.from_service_principal("tenant", "arm-app", "arm-secret", SUB, session=session)
        spec = ClusterSpec(agent_pools=_pools(), managed_identity=False)

        with capture_logs() as logs:
            body = build_cluster_body("aks1", "eastus", spec, arm)

        assert body["properties"]["servicePrincipalProfile"] == {"clientId": "arm-app", "secret": "arm-secret"}
        assert logs[-1]["event"] == "reusing_arm_service_principal"
        assert "arm-secret" not in str(logs)

    def test_missing_service_principal(self, arm: ArmClient, session: MagicMock) -> None:
        spec = ClusterSpec(agent_pools=_pools(), managed_identity=False)
        with pytest.raises(CredentialError, match="needs a service principal"):
            build_cluster_body("aks1", "eastus", spec, arm)
        session.request.assert_not_called()

    def test_profile_in_properties_is_respected(self, arm: ArmClient) -> None:
        profile = {"clientId": "props-app", "secret": "props-secret"}
        spec = ClusterSpec(agent_pools=_pools(), managed_identity=False, properties={"servicePrincipalProfile": profile})
        body = build_cluster_body("aks1", "eastus", spec, arm)
        assert body["properties"]["servicePrincipalProfile"] == profile

    def test_linux_profile_and_properties(self, arm: ArmClient) -> None:
        spec = ClusterSpec(
            agent_pools=_pools(),
            dns_prefix="myaks",
            login_user="azureuser",
            login_passkey="ssh-rsa AAAA...",
            properties={"networkProfile": {"networkPlugin": "azure"}},
        )
        props = build_cluster_body("aks1", "eastus", spec, arm)["properties"]
        assert props["dnsPrefix"] == "myaks"
        assert props["linuxProfile"] == {
            "adminUsername": "azureuser",
            "ssh": {"publicKeys": [{"keyData": "ssh-rsa AAAA..."}]},
        }
        assert props["networkProfile"] == {"networkPlugin": "azure"}
        assert "kubernetesVersion" not in props

    def test_second_fixed_vm_pool_rejected(self, arm: ArmClient) -> None:
        spec = ClusterSpec(
            agent_pools=[AgentPoolSpec(name="pool1", count=3), AgentPoolSpec(name="pool2", count=2, use_scaleset=False)]
        )
        with pytest.raises(SpecValidationError, match="pool2"):
            build_cluster_body("aks1", "eastus", spec, arm)


class TestKubernetesServiceManager:
    def test_create_rejects_bad_topology_before_any_call(self, group: ResourceGroup, session: MagicMock) -> None:
        spec = ClusterSpec(
            agent_pools=[AgentPoolSpec(name="pool1", count=3), AgentPoolSpec(name="pool2", count=1, use_scaleset=False)]
        )
        with pytest.raises(SpecValidationError):
            group.kubernetes.create("aks1", spec)
        session.request.assert_not_called()

    def test_create_returns_service_with_tools(
        self,
        group: ResourceGroup,
        session: MagicMock,
        make_response: Callable[..., MagicMock],
        tools: ToolConfig,
    ) -> None:
        session.request.return_value = make_response(
            body=_resource("Microsoft.ContainerService/managedClusters", "aks1", "Creating")
        )
        service = group.kubernetes.create("aks1", ClusterSpec(agent_pools=_pools()))
        assert isinstance(service, KubernetesService)
        assert service._tools is tools
        put = session.request.call_args
        assert put.args[0] == "PUT"
        assert put.kwargs["params"] == {"api-version": "2024-05-01"}

    def test_list_kubernetes_versions(
        self, group: ResourceGroup, session: MagicMock, make_response: Callable[..., MagicMock]
    ) -> None:
        session.request.return_value = make_response(
            body={
                "values": [
                    {"version": "1.30", "patchVersions": {"1.30.3": {}, "1.30.10": {}}},
                    {"version": "1.29", "patchVersions": {"1.29.7": {}}},
                ]
            }
        )
        versions = group.kubernetes.list_kubernetes_versions()
        assert versions == ["1.29.7", "1.30.3", "1.30.10"]
        assert session.request.call_args.args[1].endswith(
            "/providers/Microsoft.ContainerService/locations/eastus/kubernetesVersions"
        )

    def test_list_vm_sizes(self, group: ResourceGroup, session: MagicMock, make_response: Callable[..., MagicMock]) -> None:
        session.request.return_value = make_response(
            body={"value": [{"name": "Standard_DS2_v2", "numberOfCores": 2}, {"name": "Standard_D4s_v3", "numberOfCores": 4}]}
        )
        assert group.kubernetes.list_vm_sizes("westus2", name_only=True) == ["Standard_DS2_v2", "Standard_D4s_v3"]
        assert session.request.call_args.args[1].endswith("/providers/Microsoft.Compute/locations/westus2/vmSizes")


class TestContainerInstanceManager:
    def test_create(self, group: ResourceGroup, session: MagicMock, make_response: Callable[..., MagicMock]) -> None:
        session.request.return_value = make_response(
            body=_resource("Microsoft.ContainerInstance/containerGroups", "web", "Pending")
        )
        instance = group.instances.create("web", ContainerGroupSpec(image="nginx"))
        assert isinstance(instance, ContainerInstance)
        body = session.request.call_args.kwargs["json"]
        assert body["properties"]["containers"][0]["properties"]["image"] == "nginx"
        assert body["location"] == "eastus"

    def test_invalid_group_name(self, group: ResourceGroup, session: MagicMock) -> None:
        with pytest.raises(ValueError, match="container group name"):
            group.instances.create("Web_App", ContainerGroupSpec(image="nginx"))
        session.request.assert_not_called()

    def test_delete_with_wait(
        self,
        group: ResourceGroup,
        session: MagicMock,
        make_response: Callable[..., MagicMock],
        no_sleep: MagicMock,
    ) -> None:
        session.request.side_effect = [make_response(status_code=200), make_response(status_code=404, body={})]
        assert group.instances.delete("web", confirm=False, wait=True) is True
        assert [c.args[0] for c in session.request.call_args_list] == ["DELETE", "GET"]


class TestResourceGroupFromTarget:
    @pytest.fixture
    def targets(self) -> dict[str, ResourceGroupConfig]:
        return {"dev": ResourceGroupConfig(subscription_id=SUB, resource_group="rg-dev", location="westeurope")}

    def test_builds_group_for_target(self, targets: dict[str, ResourceGroupConfig], tools: ToolConfig) -> None:
        with patch("azure_containers.managers.ArmClient") as arm_cls:
            group = ResourceGroup.from_target(targets, "dev", tools=tools)
        arm_cls.assert_called_once_with(SUB)
        assert group.name == "rg-dev"
        assert group.location == "westeurope"
        assert group.tools is tools

    def test_passed_arm_client_is_kept(
        self, targets: dict[str, ResourceGroupConfig], arm: ArmClient, tools: ToolConfig
    ) -> None:
        assert ResourceGroup.from_target(targets, "dev", arm=arm, tools=tools).arm is arm

    def test_unknown_target_lists_valid_aliases(self, targets: dict[str, ResourceGroupConfig]) -> None:
        with pytest.raises(ValueError, match="Unknown target 'prod'. Valid targets: dev"):
            ResourceGroup.from_target(targets, "prod")


class TestDefaultTools:
    def test_tools_are_discovered_on_path(self, arm: ArmClient, tools_on_path: MagicMock, mock_run: MagicMock) -> None:
        first = ResourceGroup(arm, "rg", "eastus")
        second = ResourceGroup(arm, "rg2", "eastus")

        run_tool(first.tools, "kubectl", ["version"], echo=False)

        assert mock_run.call_args.args[0] == ["/opt/bin/kubectl", "version"]
        assert second.tools is first.tools
        assert tools_on_path.call_count == 3

    def test_resource_handles_share_the_discovery(self, arm: ArmClient, tools_on_path: MagicMock) -> None:
        service = KubernetesService(arm, "rg", "aks1")
        registry = ContainerRegistry(arm, "rg", "myreg")
        assert service._tools.helm == "/opt/bin/helm"
        assert registry._tools is service._tools
