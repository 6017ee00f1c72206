"""Exchange an AAD token for registry refresh and operation-scoped access tokens."""

from __future__ import annotations

from typing import Any

import requests
import structlog
from azure.core.credentials import TokenCredential

from azure_containers.arm import ARM_SCOPE
from azure_containers.errors import RegistryError

log = structlog.get_logger()

# Username docker expects when the password is a registry refresh token
REFRESH_TOKEN_USERNAME = "00000000-0000-0000-0000-000000000000"

CATALOG_SCOPE = "registry:catalog:*"


def repository_scope(repository: str, *actions: str) -> str:
    """Permission string such as ``repository:hello:pull,push``."""
    return f"repository:{repository}:{','.join(actions or ('pull',))}"


class RegistryTokenExchange:
    """Drives the registry's ``oauth2/exchange`` and ``oauth2/token`` endpoints."""

    def __init__(
        self,
        server: str,
        credential: TokenCredential,
        *,
        tenant_id: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 60,
    ) -> None:
        self.server = server
        self.tenant_id = tenant_id
        self.timeout = timeout
        self._credential = credential
        self._session = session or requests.Session()

    def _post(self, endpoint: str, data: dict[str, str]) -> dict[str, Any]:
        url = f"https://{self.server}/oauth2/{endpoint}"
        response = self._session.post(url, data=data, timeout=self.timeout)
        if response.status_code >= 400:
            log.error("registry_token_exchange_failed", server=self.server, endpoint=endpoint, status=response.status_code)
            raise RegistryError(response.status_code, response.text, url)
        return response.json()

    def refresh_token(self) -> str:
        """Trade the caller's AAD token for a registry refresh token."""
        data = {
            "grant_type": "access_token",
            "service": self.server,
            "access_token": self._credential.get_token(ARM_SCOPE).token,
        }
        if self.tenant_id:
            data["tenant"] = self.tenant_id
        return str(self._post("exchange", data)["refresh_token"])

    def access_token(self, scope: str) -> str:
        """Obtain a short-lived access token limited to ``scope``."""
        data = {
            "grant_type": "refresh_token",
            "service": self.server,
            "scope": scope,
            "refresh_token": self.refresh_token(),
        }
        return str(self._post("token", data)["access_token"])
