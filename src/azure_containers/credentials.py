"""Normalize the three registry credential sources into server/username/password."""

from __future__ import annotations

from typing import Any

from azure_containers.errors import CredentialError
from azure_containers.models import RegistryCredentials
from azure_containers.registry.acr import ContainerRegistry
from azure_containers.registry.docker_registry import DockerRegistry

RegistryCredentialSource = ContainerRegistry | DockerRegistry | RegistryCredentials


def extract_credentials(source: RegistryCredentialSource) -> RegistryCredentials:
    """Resolve a registry resource, registry endpoint or explicit triple to credentials.

    A ContainerRegistry resource contributes its admin credentials, fetched from ARM.

    Raises:
        CredentialError: If an endpoint authenticates through AAD and has no password.
        TypeError: For any other object.
    """
    match source:
        case RegistryCredentials():
            return source
        case DockerRegistry():
            if source.username is None or source.password is None:
                msg = f"Registry endpoint {source.server!r} uses AAD authentication and has no admin password."
                raise CredentialError(msg)
            return RegistryCredentials(server=source.server, username=source.username, password=source.password)
        case ContainerRegistry():
            return extract_credentials(source.get_docker_registry(as_admin=True, login=False))
        case _:
            msg = f"Cannot extract registry credentials from {type(source).__name__}"
            raise TypeError(msg)


def credentials_list(sources: Any) -> list[dict[str, str]]:
    """ARM ``imageRegistryCredentials`` entries for one source or a list of them."""
    if not isinstance(sources, (list, tuple)):
        sources = [sources]
    return [extract_credentials(s).model_dump() for s in sources]
