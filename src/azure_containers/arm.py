"""Resource Manager REST client and the generic resource handle."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar

import click
import requests
import structlog
from azure.core.credentials import TokenCredential
from azure.identity import ClientSecretCredential, DefaultAzureCredential

from azure_containers.config import PollConfig, get_poll_config
from azure_containers.errors import ArmError, ProvisioningFailedError, ProvisioningTimeoutError

log = structlog.get_logger()

ARM_ENDPOINT = "https://management.azure.com"
ARM_SCOPE = "https://management.azure.com/.default"

# Used when the provider is not queried for its latest stable version.
DEFAULT_API_VERSIONS: dict[str, str] = {
    "Microsoft.ContainerRegistry/registries": "2023-07-01",
    "Microsoft.ContainerService/managedClusters": "2024-05-01",
    "Microsoft.ContainerService/managedClusters/agentPools": "2024-05-01",
    "Microsoft.ContainerInstance/containerGroups": "2023-05-01",
    "Microsoft.Compute/locations": "2024-07-01",
    "Microsoft.Resources/resources": "2021-04-01",
}

SUCCEEDED = "Succeeded"
FAILED_STATES = frozenset({"Error", "Failed"})


def confirm_action(message: str) -> bool:
    """Ask the user to confirm a destructive operation. Defaults to no."""
    return click.confirm(message, default=False)


@dataclass(frozen=True)
class ServicePrincipalCredentials:
    """Client id and secret of the service principal used to authenticate to ARM."""

    tenant_id: str
    client_id: str
    client_secret: str = field(repr=False)


class ArmClient:
    """Authenticated access to the Resource Manager control plane for one subscription."""

    def __init__(
        self,
        subscription_id: str,
        credential: TokenCredential | None = None,
        *,
        session: requests.Session | None = None,
        service_principal: ServicePrincipalCredentials | None = None,
        timeout: float = 60,
    ) -> None:
        self.subscription_id = subscription_id
        self.service_principal = service_principal
        self.timeout = timeout
        self._credential = credential
        self._session = session
        self._lock = threading.RLock()

    @classmethod
    def from_service_principal(
        cls,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        subscription_id: str,
        **kwargs: Any,
    ) -> ArmClient:
        """Authenticate with a client secret, remembering it for clusters that reuse it."""
        sp = ServicePrincipalCredentials(tenant_id, client_id, client_secret)
        credential = ClientSecretCredential(tenant_id, client_id, client_secret)
        return cls(subscription_id, credential, service_principal=sp, **kwargs)

    def get_credential(self) -> TokenCredential:
        with self._lock:
            if self._credential is None:
                self._credential = DefaultAzureCredential()
            return self._credential

    def _get_session(self) -> requests.Session:
        with self._lock:
            if self._session is None:
                self._session = requests.Session()
            return self._session

    def get_token(self, scope: str = ARM_SCOPE) -> str:
        return self.get_credential().get_token(scope).token

    def subscription_url(self, path: str = "") -> str:
        base = f"{ARM_ENDPOINT}/subscriptions/{self.subscription_id}"
        return f"{base}/{path.lstrip('/')}" if path else base

    def request(
        self,
        method: str,
        url: str,
        *,
        api_version: str | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Issue a signed request and return the decoded JSON body (empty dict if none).

        Raises:
            ArmError: On any non-2xx status.
        """
        params = {"api-version": api_version} if api_version else None
        headers = {"Authorization": f"Bearer {self.get_token()}"}
        log.debug("arm_request", method=method, url=url, api_version=api_version)

        response = self._get_session().request(
            method,
            url,
            params=params,
            json=body,
            headers=headers,
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            try:
                detail: Any = response.json()
            except ValueError:
                detail = response.text
            log.error("arm_request_failed", method=method, url=url, status=response.status_code)
            raise ArmError(response.status_code, detail, url)

        if not response.content:
            return {}
        return response.json()

    def call(
        self,
        path: str,
        api_version: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call an operation relative to the subscription, e.g. ``resourceGroups/rg/providers/...``."""
        return self.request(method, self.subscription_url(path), api_version=api_version, body=body)

    def call_url(self, url: str, method: str = "GET", body: dict[str, Any] | None = None) -> dict[str, Any]:
        """Call an absolute URL that already carries its query string, such as a ``nextLink``."""
        return self.request(method, url, body=body)

    def list_all(self, path: str, api_version: str) -> list[dict[str, Any]]:
        """GET a list operation and follow ``nextLink`` until the listing is exhausted."""
        page = self.call(path, api_version)
        items: list[dict[str, Any]] = list(page.get("value") or [])
        while page.get("nextLink"):
            page = self.call_url(page["nextLink"])
            items.extend(page.get("value") or [])
        return items

    def get_provider_api_version(self, provider: str, resource_type: str, *, stable_only: bool = True) -> str:
        """Return the newest API version the provider advertises for a resource type."""
        info = self.call(f"providers/{provider}", api_version="2021-04-01")
        for entry in info.get("resourceTypes") or []:
            if str(entry.get("resourceType", "")).lower() != resource_type.lower():
                continue
            versions = sorted(entry.get("apiVersions") or [], reverse=True)
            if stable_only:
                versions = [v for v in versions if "preview" not in v] or versions
            if versions:
                return versions[0]
        msg = f"Provider {provider} does not offer resource type {resource_type!r}"
        raise ValueError(msg)


def parse_resource_id(resource_id: str) -> dict[str, str]:
    """Split an ARM resource id into subscription, resource group, provider, type and name."""
    parts = [p for p in resource_id.split("/") if p]
    lowered = [p.lower() for p in parts]
    try:
        rg = parts[lowered.index("resourcegroups") + 1]
        prov_idx = lowered.index("providers")
    except (ValueError, IndexError) as exc:
        msg = f"Not a resource group scoped resource id: {resource_id!r}"
        raise ValueError(msg) from exc
    return {
        "subscription_id": parts[lowered.index("subscriptions") + 1],
        "resource_group": rg,
        "provider": parts[prov_idx + 1],
        "type": "/".join(parts[prov_idx + 2 : -1 : 2]),
        "name": parts[-1],
    }


class ArmResource:
    """Thin handle on one ARM resource. Every read re-fetches from ARM."""

    provider: ClassVar[str] = ""
    resource_type: ClassVar[str] = ""

    def __init__(
        self,
        arm: ArmClient,
        resource_group: str,
        name: str,
        *,
        api_version: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        self._arm = arm
        self.resource_group = resource_group
        self.name = name
        self.api_version = api_version or DEFAULT_API_VERSIONS[self.type]
        self._apply(data or {})

    @property
    def type(self) -> str:
        return f"{self.provider}/{self.resource_type}"

    @property
    def path(self) -> str:
        return f"resourceGroups/{self.resource_group}/providers/{self.type}/{self.name}"

    @property
    def provisioning_state(self) -> str | None:
        return self.properties.get("provisioningState")

    def _apply(self, data: dict[str, Any]) -> None:
        self.id: str | None = data.get("id")
        self.location: str | None = data.get("location")
        self.properties: dict[str, Any] = data.get("properties") or {}
        self.sku: dict[str, Any] | None = data.get("sku")
        self.identity: dict[str, Any] | None = data.get("identity")
        self.tags: dict[str, str] = data.get("tags") or {}

    @classmethod
    def from_resource(cls, arm: ArmClient, data: dict[str, Any], **kwargs: Any) -> Any:
        """Build a handle from one entry of an ARM list response."""
        parsed = parse_resource_id(data["id"])
        return cls(arm, parsed["resource_group"], parsed["name"], data=data, **kwargs)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} rg={self.resource_group!r} state={self.provisioning_state!r}>"

    def sync(self) -> ArmResource:
        """Re-fetch the resource from ARM."""
        self._apply(self._arm.call(self.path, self.api_version))
        return self

    def do_operation(
        self,
        operation: str = "",
        method: str = "GET",
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        path = f"{self.path}/{operation}" if operation else self.path
        return self._arm.call(path, self.api_version, method=method, body=body)

    def update(self, body: dict[str, Any]) -> ArmResource:
        """PATCH the resource and apply the returned representation."""
        self._apply(self.do_operation(method="PATCH", body=body))
        return self

    def wait(self, poll: PollConfig | None = None) -> ArmResource:
        """Poll ``provisioningState`` until it is terminal.

        Returns immediately if the last known state is already ``Succeeded``.

        Raises:
            ProvisioningFailedError: The state became ``Error`` or ``Failed``.
            ProvisioningTimeoutError: ``poll.max_attempts`` polls passed without a terminal state.
        """
        if self.provisioning_state == SUCCEEDED:
            return self
        poll = poll or get_poll_config()
        for attempt in range(poll.max_attempts):
            if attempt:
                time.sleep(poll.interval)
            self.sync()
            state = self.provisioning_state
            if state == SUCCEEDED:
                log.info("provisioning_succeeded", resource=self.name, type=self.type, polls=attempt + 1)
                return self
            if state in FAILED_STATES:
                log.error("provisioning_failed", resource=self.name, type=self.type, state=state)
                raise ProvisioningFailedError(self.name, str(state))
        raise ProvisioningTimeoutError(self.name, poll.max_attempts, self.provisioning_state)

    def delete(self, confirm: bool = True, wait: bool = False, poll: PollConfig | None = None) -> bool:
        """Delete the resource, optionally after confirmation and optionally blocking until gone.

        Returns False if the user declined the confirmation prompt.
        """
        if confirm and not confirm_action(f"Do you really want to delete the {self.type} resource '{self.name}'?"):
            log.info("deletion_cancelled", resource=self.name, type=self.type)
            return False

        log.info("deleting_resource", resource=self.name, type=self.type, resource_group=self.resource_group)
        self.do_operation(method="DELETE")
        if wait:
            self._wait_for_deletion(poll or get_poll_config())
        return True

    def _wait_for_deletion(self, poll: PollConfig) -> None:
        for attempt in range(poll.max_attempts):
            if attempt:
                time.sleep(poll.interval)
            try:
                self.sync()
            except ArmError as exc:
                if exc.status_code == 404:
                    return
                raise
            if self.provisioning_state in FAILED_STATES:
                raise ProvisioningFailedError(self.name, str(self.provisioning_state))
        raise ProvisioningTimeoutError(self.name, poll.max_attempts, self.provisioning_state)
