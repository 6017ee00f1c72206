"""Microsoft Graph wrapper used to mint new passwords for application registrations."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Any

import requests
import structlog
from azure.core.credentials import TokenCredential
from azure.identity import DefaultAzureCredential

from azure_containers.errors import CredentialError, GraphError

log = structlog.get_logger()

GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

DEFAULT_PASSWORD_DURATION = timedelta(days=730)


class GraphClient:
    """Minimal Graph client: look up an application and add a password to it."""

    def __init__(
        self,
        credential: TokenCredential | None = None,
        *,
        session: requests.Session | None = None,
        timeout: float = 60,
    ) -> None:
        self._credential = credential
        self._session = session
        self.timeout = timeout
        self._lock = threading.RLock()

    def _get_credential(self) -> TokenCredential:
        with self._lock:
            if self._credential is None:
                self._credential = DefaultAzureCredential()
            return self._credential

    def _get_session(self) -> requests.Session:
        with self._lock:
            if self._session is None:
                self._session = requests.Session()
            return self._session

    def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{GRAPH_ENDPOINT}/{path}"
        token = self._get_credential().get_token(GRAPH_SCOPE).token
        response = self._get_session().request(
            method,
            url,
            json=body,
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            try:
                detail: Any = response.json()
            except ValueError:
                detail = response.text
            raise GraphError(response.status_code, detail, url)
        return response.json() if response.content else {}

    def get_application(self, app_id: str) -> dict[str, Any]:
        """Fetch an application registration by its app (client) id.

        Raises:
            CredentialError: If no application with that id exists.
        """
        try:
            return self._request("GET", f"applications(appId='{app_id}')")
        except GraphError as exc:
            if exc.status_code == 404:
                msg = f"No application registration found with app ID {app_id!r}"
                raise CredentialError(msg) from exc
            raise

    def add_password(
        self,
        app_id: str,
        name: str | None = None,
        duration: timedelta | None = None,
    ) -> str:
        """Add a new password to the application and return its secret text.

        The secret cannot be retrieved again after this call returns.
        """
        app = self.get_application(app_id)
        end = datetime.now(tz=UTC) + (duration or DEFAULT_PASSWORD_DURATION)
        credential: dict[str, Any] = {"endDateTime": end.isoformat()}
        if name:
            credential["displayName"] = name

        result = self._request("POST", f"applications/{app['id']}/addPassword", {"passwordCredential": credential})
        log.info("application_password_added", app_id=app_id, key_id=result.get("keyId"), expires=end.isoformat())
        return str(result["secretText"])
