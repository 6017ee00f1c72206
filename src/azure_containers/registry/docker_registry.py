"""Registry endpoint client: docker CLI for login/push/pull, HTTP V2 API for metadata."""

from __future__ import annotations

from typing import Any

import requests
import structlog
from azure.core.credentials import TokenCredential
from requests.auth import HTTPBasicAuth

from azure_containers.arm import confirm_action
from azure_containers.config import ToolConfig
from azure_containers.errors import CredentialError, RegistryError, SpecValidationError
from azure_containers.process import ProcessResult, call_docker
from azure_containers.registry.auth import (
    CATALOG_SCOPE,
    REFRESH_TOKEN_USERNAME,
    RegistryTokenExchange,
    repository_scope,
)

log = structlog.get_logger()

MANIFEST_MEDIA_TYPES = ", ".join(
    [
        "application/vnd.docker.distribution.manifest.v2+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.oci.image.index.v1+json",
    ]
)


def _normalize_server(server: str) -> str:
    return server.removeprefix("https://").removeprefix("http://").rstrip("/")


class DockerRegistry:
    """A registry endpoint authenticated either as admin or through AAD.

    Admin mode uses a username and password as Basic credentials. AAD mode trades
    the credential's token for a freshly scoped access token on every API call.
    The two modes are mutually exclusive.
    """

    def __init__(
        self,
        server: str,
        tools: ToolConfig,
        *,
        username: str | None = None,
        password: str | None = None,
        credential: TokenCredential | None = None,
        tenant_id: str | None = None,
        session: requests.Session | None = None,
        login: bool = True,
        timeout: float = 60,
    ) -> None:
        has_admin = username is not None or password is not None
        if has_admin and credential is not None:
            msg = "Supply either an admin username/password or an AAD credential, not both."
            raise CredentialError(msg)
        if has_admin and (username is None or password is None):
            msg = "Admin authentication needs both a username and a password."
            raise CredentialError(msg)
        if not has_admin and credential is None:
            msg = "No registry credentials: supply an admin username/password or an AAD credential."
            raise CredentialError(msg)

        self.server = _normalize_server(server)
        self.username = username
        self.password = password
        self._tools = tools
        self._timeout = timeout
        self._session = session or requests.Session()
        self._exchange: RegistryTokenExchange | None = None
        if credential is not None:
            self._exchange = RegistryTokenExchange(
                self.server, credential, tenant_id=tenant_id, session=self._session, timeout=timeout
            )

        if login:
            self.login()

    def __repr__(self) -> str:
        mode = "admin" if self.is_admin else "aad"
        return f"<DockerRegistry {self.server!r} auth={mode}>"

    @property
    def is_admin(self) -> bool:
        return self._exchange is None

    # --- docker CLI ---

    def login(self, **kwargs: Any) -> ProcessResult:
        """Log the docker CLI in. The secret goes through stdin, never the argument vector."""
        if self._exchange is None:
            username, secret = str(self.username), str(self.password)
        else:
            username, secret = REFRESH_TOKEN_USERNAME, self._exchange.refresh_token()
        log.info("registry_login", server=self.server, admin=self.is_admin)
        return call_docker(
            self._tools,
            ["login", "--password-stdin", "--username", username, self.server],
            input=secret,
            **kwargs,
        )

    def qualify(self, image: str) -> str:
        """Prefix ``image`` with this registry's hostname unless it already carries it."""
        prefix = f"{self.server}/"
        return image if image.startswith(prefix) else prefix + image

    def tag(self, src_image: str, dest_image: str, **kwargs: Any) -> ProcessResult:
        return call_docker(self._tools, ["tag", src_image, self.qualify(dest_image)], **kwargs)

    def push(self, src_image: str, dest_image: str | None = None, **kwargs: Any) -> list[ProcessResult]:
        """Tag a local image with the registry hostname and push it.

        Returns the results of the tag and push invocations.
        """
        dest = self.qualify(dest_image or src_image)
        tagged = call_docker(self._tools, ["tag", src_image, dest], **kwargs)
        pushed = call_docker(self._tools, ["push", dest], **kwargs)
        return [tagged, pushed]

    def pull(self, image: str, **kwargs: Any) -> ProcessResult:
        return call_docker(self._tools, ["pull", self.qualify(image)], **kwargs)

    # --- V2 API ---

    def _split_image(self, image: str, tag: str | None) -> tuple[str, str]:
        prefix = f"{self.server}/"
        image = image.removeprefix(prefix)
        if "@" in image:
            repo, ref = image.split("@", 1)
            return repo, ref
        last = image.rsplit("/", 1)[-1]
        if ":" in last:
            repo, ref = image.rsplit(":", 1)
            return repo, ref
        return image, tag or "latest"

    def call_registry(
        self,
        path: str,
        scope: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """Issue an authenticated request against ``/v2/<path>``.

        Raises:
            RegistryError: On any non-2xx status.
        """
        url = path if path.startswith("https://") else f"https://{self.server}/v2/{path.lstrip('/')}"
        request_headers = dict(headers or {})
        auth = None
        if self._exchange is None:
            auth = HTTPBasicAuth(str(self.username), str(self.password))
        else:
            request_headers["Authorization"] = f"Bearer {self._exchange.access_token(scope)}"

        response = self._session.request(method, url, headers=request_headers, auth=auth, timeout=self._timeout)
        if response.status_code >= 400:
            log.error("registry_request_failed", method=method, url=url, status=response.status_code)
            raise RegistryError(response.status_code, response.text, url)
        return response

    def _paged(self, path: str, scope: str, key: str) -> list[str]:
        items: list[str] = []
        next_path: str | None = path
        while next_path:
            response = self.call_registry(next_path, scope)
            items.extend((response.json() or {}).get(key) or [])
            link = response.links.get("next", {}).get("url")
            next_path = f"https://{self.server}{link}" if link and link.startswith("/") else link
        return items

    def get_image_manifest(self, image: str, tag: str = "latest") -> dict[str, Any]:
        repo, ref = self._split_image(image, tag)
        response = self.call_registry(
            f"{repo}/manifests/{ref}",
            repository_scope(repo, "pull"),
            headers={"Accept": MANIFEST_MEDIA_TYPES},
        )
        return response.json()

    def get_image_digest(self, image: str, tag: str = "latest") -> str | None:
        """Return the content digest the registry reports for an image, or None."""
        repo, ref = self._split_image(image, tag)
        response = self.call_registry(
            f"{repo}/manifests/{ref}",
            repository_scope(repo, "pull"),
            method="HEAD",
            headers={"Accept": MANIFEST_MEDIA_TYPES},
        )
        return response.headers.get("docker-content-digest")

    def delete_image(self, image: str, digest: str | None = None, confirm: bool = True) -> bool:
        """Delete an image manifest by digest.

        Returns False if the user declined the confirmation prompt.

        Raises:
            SpecValidationError: If no digest can be resolved for the image.
        """
        repo, ref = self._split_image(image, None)
        if digest is None:
            digest = ref if ref.startswith("sha256:") else self.get_image_digest(image)
        if not digest:
            msg = f"Could not resolve a digest for image {image!r}"
            raise SpecValidationError(msg)

        if confirm and not confirm_action(f"Do you really want to delete the image '{repo}@{digest}'?"):
            log.info("image_deletion_cancelled", repository=repo, digest=digest)
            return False

        self.call_registry(f"{repo}/manifests/{digest}", repository_scope(repo, "delete"), method="DELETE")
        log.info("image_deleted", repository=repo, digest=digest)
        return True

    def list_repositories(self) -> list[str]:
        """Repository names in registry order, following ``Link`` continuation headers."""
        return self._paged("_catalog", CATALOG_SCOPE, "repositories")

    def list_tags(self, repository: str) -> list[str]:
        return self._paged(f"{repository}/tags/list", repository_scope(repository, "pull"), "tags")
