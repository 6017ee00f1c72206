"""Container registry ARM resource handle."""

from __future__ import annotations

from typing import Any

import structlog

from azure_containers.arm import ArmClient, ArmResource
from azure_containers.config import ToolConfig, default_tools
from azure_containers.errors import CredentialError
from azure_containers.registry.docker_registry import DockerRegistry

log = structlog.get_logger()


class ContainerRegistry(ArmResource):
    """The registry as an Azure resource: credentials, usage, and its endpoint."""

    provider = "Microsoft.ContainerRegistry"
    resource_type = "registries"

    def __init__(
        self,
        arm: ArmClient,
        resource_group: str,
        name: str,
        *,
        tools: ToolConfig | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(arm, resource_group, name, **kwargs)
        self._tools = tools or default_tools()

    @property
    def login_server(self) -> str:
        return str(self.properties.get("loginServer") or f"{self.name.lower()}.azurecr.io")

    @property
    def admin_user_enabled(self) -> bool | None:
        return self.properties.get("adminUserEnabled")

    def list_credentials(self) -> dict[str, Any]:
        """Admin username and named passwords.

        Raises:
            CredentialError: If the registry is known to have the admin user disabled.
        """
        if self.admin_user_enabled is False:
            msg = f"Admin user is not enabled for registry '{self.name}'"
            raise CredentialError(msg)
        creds = self.do_operation("listCredentials", method="POST")
        passwords = {p["name"]: p["value"] for p in creds.get("passwords") or []}
        return {"username": creds["username"], "passwords": passwords}

    def list_policies(self) -> dict[str, Any]:
        return dict(self.sync().properties.get("policies") or {})

    def list_usages(self) -> list[dict[str, Any]]:
        return list(self.do_operation("listUsages").get("value") or [])

    def get_docker_registry(
        self,
        *,
        as_admin: bool = False,
        username: str | None = None,
        password: str | None = None,
        login: bool = True,
        **kwargs: Any,
    ) -> DockerRegistry:
        """Return the registry endpoint.

        By default the ARM client's AAD credential is exchanged for registry tokens.
        With ``as_admin=True`` the admin credentials are fetched from ARM, unless
        both a username and password are supplied.
        """
        if as_admin or (username is not None and password is not None):
            if username is None or password is None:
                creds = self.list_credentials()
                username = username or creds["username"]
                password = password or next(iter(creds["passwords"].values()))
            return DockerRegistry(
                self.login_server, self._tools, username=username, password=password, login=login, **kwargs
            )

        return DockerRegistry(self.login_server, self._tools, credential=self._arm.get_credential(), login=login, **kwargs)
