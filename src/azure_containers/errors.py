"""Exception taxonomy for ARM, registry, provisioning, tool and credential failures."""

from __future__ import annotations

from typing import Any


class AzureContainersError(Exception):
    """Base class for every error raised by this package."""


class HttpError(AzureContainersError):
    """A non-2xx response from an HTTP endpoint."""

    def __init__(self, status_code: int, body: Any, url: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"HTTP {status_code} from {url or 'endpoint'}: {_summarize(body)}")


class ArmError(HttpError):
    """Resource Manager returned an error status."""


class RegistryError(HttpError):
    """The registry V2 API or its OAuth endpoints returned an error status."""


class GraphError(HttpError):
    """Microsoft Graph returned an error status."""


class ProvisioningFailedError(AzureContainersError):
    """The resource reached a terminal failure state."""

    def __init__(self, resource: str, state: str) -> None:
        self.resource = resource
        self.state = state
        super().__init__(f"Provisioning of '{resource}' failed with state {state!r}")


class ProvisioningTimeoutError(AzureContainersError):
    """Polling ran out of attempts before a terminal state was reached."""

    def __init__(self, resource: str, attempts: int, last_state: str | None = None) -> None:
        self.resource = resource
        self.attempts = attempts
        self.last_state = last_state
        super().__init__(
            f"Resource creation did not complete for '{resource}' after {attempts} polls "
            f"(last state: {last_state!r})"
        )


class ToolNotFoundError(AzureContainersError):
    """An external binary was not found on PATH when the wrapper was invoked."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"{tool} binary not found")


class CredentialError(AzureContainersError, ValueError):
    """Credentials are missing or inconsistent for the requested operation."""


class SpecValidationError(AzureContainersError, ValueError):
    """A resource configuration or request is invalid."""


def _summarize(body: Any, limit: int = 500) -> str:
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and "message" in err:
            return f"{err.get('code', 'Error')}: {err['message']}"
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
            return f"{first.get('code', 'Error')}: {first.get('message', '')}"
    text = str(body)
    return text if len(text) <= limit else text[:limit] + "..."
