"""Container instance group ARM resource handle and request body builder."""

from __future__ import annotations

from typing import Any

import structlog

from azure_containers.arm import ArmResource
from azure_containers.credentials import credentials_list
from azure_containers.models import ContainerGroupSpec

log = structlog.get_logger()


def build_container_group_body(name: str, location: str, spec: ContainerGroupSpec) -> dict[str, Any]:
    """Translate a ContainerGroupSpec into the ARM ``containerGroups`` PUT body.

    Secure environment variables are sent as ``secureValue`` so ARM never echoes
    them back. When ``public_ip`` is set the container ports are also exposed on
    the group's public address.
    """
    ports = [p.to_arm() for p in spec.ports]
    env = [{"name": k, "value": v} for k, v in spec.env_vars.items()]
    env += [{"name": k, "secureValue": v} for k, v in spec.secure_env_vars.items()]

    container_props: dict[str, Any] = {
        "image": spec.image,
        "ports": ports,
        "resources": {"requests": {"cpu": spec.cores, "memoryInGB": spec.memory_gb}},
    }
    if env:
        container_props["environmentVariables"] = env
    if spec.command:
        container_props["command"] = list(spec.command)

    props: dict[str, Any] = {
        "containers": [{"name": spec.container_name or name, "properties": container_props}],
        "restartPolicy": spec.restart,
        "osType": spec.os,
    }
    if spec.registry_creds:
        props["imageRegistryCredentials"] = credentials_list(spec.registry_creds)
    if spec.public_ip:
        props["ipAddress"] = {
            "type": "Public",
            "ports": [p.to_arm() for p in spec.ports],
            "dnsNameLabel": spec.dns_name or name,
        }

    body: dict[str, Any] = {"location": location, "properties": props}
    if spec.tags:
        body["tags"] = spec.tags
    return body


class ContainerInstance(ArmResource):
    provider = "Microsoft.ContainerInstance"
    resource_type = "containerGroups"

    @property
    def ip_address(self) -> str | None:
        return (self.properties.get("ipAddress") or {}).get("ip")

    @property
    def fqdn(self) -> str | None:
        return (self.properties.get("ipAddress") or {}).get("fqdn")

    def _action(self, action: str) -> None:
        log.info("container_group_action", resource=self.name, action=action)
        self.do_operation(action, method="POST")

    def start(self) -> None:
        self._action("start")

    def stop(self) -> None:
        self._action("stop")

    def restart(self) -> None:
        self._action("restart")
