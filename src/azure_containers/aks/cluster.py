"""Kubernetes cluster endpoint: kubectl and helm with the persisted kubeconfig injected."""

from __future__ import annotations

import os
import subprocess
import tempfile
import webbrowser
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog
import yaml

from azure_containers.aks import load_k8s_api_client
from azure_containers.config import ToolConfig
from azure_containers.credentials import RegistryCredentialSource, extract_credentials
from azure_containers.process import Command, ProcessResult, call_helm, call_kubectl, spawn_tool, split_commandline

log = structlog.get_logger()

Manifest = str | Path | Mapping[str, Any] | Sequence[Mapping[str, Any]]

_EXPOSE_TYPES = {"pod", "service", "replicationcontroller", "deployment", "replicaset"}


def _is_inline_yaml(text: str) -> bool:
    return "\n" in text or (":" in text and not text.startswith(("http://", "https://")) and not Path(text).exists())


@contextmanager
def materialize_manifest(manifest: Manifest) -> Iterator[str]:
    """Yield a path or URL kubectl can read for ``manifest``.

    Paths and URLs pass through unchanged. YAML text and mappings are written to a
    temporary file that is removed afterwards.
    """
    if isinstance(manifest, Path):
        yield str(manifest)
        return

    if isinstance(manifest, str):
        if not _is_inline_yaml(manifest):
            yield manifest
            return
        text = manifest
    elif isinstance(manifest, Mapping):
        text = yaml.safe_dump(dict(manifest), sort_keys=False)
    else:
        text = yaml.safe_dump_all([dict(m) for m in manifest], sort_keys=False)

    fd, path = tempfile.mkstemp(suffix=".yaml", prefix="manifest_")
    try:
        with os.fdopen(fd, "w") as handle:
            handle.write(text)
        yield path
    finally:
        os.unlink(path)


class KubernetesCluster:
    """Operational handle on a cluster, identified by a local kubeconfig file."""

    def __init__(self, config: str | Path | None, tools: ToolConfig) -> None:
        self.config = str(config) if config is not None else None
        self._tools = tools

    def __repr__(self) -> str:
        return f"<KubernetesCluster config={self.config!r}>"

    def _check_config(self) -> None:
        if self.config is not None and not os.access(self.config, os.R_OK):
            msg = f"Kubeconfig file not found or not readable: {self.config}"
            raise FileNotFoundError(msg)

    def kubectl(self, cmd: Command = (), **kwargs: Any) -> ProcessResult:
        """Run kubectl against this cluster; ``--kubeconfig`` is appended automatically."""
        self._check_config()
        return call_kubectl(self._tools, cmd, config=self.config, **kwargs)

    def helm(self, cmd: Command = (), **kwargs: Any) -> ProcessResult:
        """Run helm against this cluster; ``--kubeconfig`` is appended automatically."""
        self._check_config()
        return call_helm(self._tools, cmd, config=self.config, **kwargs)

    def api_client(self) -> Any:
        """A ``kubernetes`` Python API client bound to this cluster's kubeconfig."""
        self._check_config()
        return load_k8s_api_client(self.config)

    def create(self, file: Manifest, options: Command = (), **kwargs: Any) -> ProcessResult:
        with materialize_manifest(file) as path:
            return self.kubectl(["create", "-f", path, *split_commandline(options)], **kwargs)

    def apply(self, file: Manifest, options: Command = (), **kwargs: Any) -> ProcessResult:
        with materialize_manifest(file) as path:
            return self.kubectl(["apply", "-f", path, *split_commandline(options)], **kwargs)

    def delete(
        self,
        type: str | None = None,
        name: str | None = None,
        file: Manifest | None = None,
        options: Command = (),
        **kwargs: Any,
    ) -> ProcessResult:
        """Delete by ``type``/``name`` or by the objects in a manifest."""
        if file is not None:
            with materialize_manifest(file) as path:
                return self.kubectl(["delete", "-f", path, *split_commandline(options)], **kwargs)
        if not type or not name:
            msg = "delete() needs either a manifest file or both a type and a name."
            raise ValueError(msg)
        return self.kubectl(["delete", type, name, *split_commandline(options)], **kwargs)

    def expose(
        self,
        name: str | None = None,
        type: str = "deployment",
        file: Manifest | None = None,
        options: Command = (),
        **kwargs: Any,
    ) -> ProcessResult:
        if file is not None:
            with materialize_manifest(file) as path:
                return self.kubectl(["expose", "-f", path, *split_commandline(options)], **kwargs)
        if type not in _EXPOSE_TYPES:
            valid = ", ".join(sorted(_EXPOSE_TYPES))
            msg = f"Invalid resource type: {type!r}. Must be one of: {valid}"
            raise ValueError(msg)
        if not name:
            msg = "expose() needs a resource name when no file is given."
            raise ValueError(msg)
        return self.kubectl(["expose", type, name, *split_commandline(options)], **kwargs)

    def run(self, name: str, image: str, options: Command = (), **kwargs: Any) -> ProcessResult:
        return self.kubectl(["run", name, f"--image={image}", *split_commandline(options)], **kwargs)

    def get(self, type: str, options: Command = (), **kwargs: Any) -> ProcessResult:
        return self.kubectl(["get", type, *split_commandline(options)], **kwargs)

    def create_registry_secret(
        self,
        registry: RegistryCredentialSource,
        secret_name: str | None = None,
        email: str | None = None,
        **kwargs: Any,
    ) -> ProcessResult:
        """Create a ``docker-registry`` secret so pods can pull from ``registry``.

        The secret name defaults to the registry hostname.
        """
        creds = extract_credentials(registry)
        args = [
            "create",
            "secret",
            "docker-registry",
            secret_name or creds.server,
            f"--docker-server={creds.server}",
            f"--docker-username={creds.username}",
            f"--docker-password={creds.password}",
        ]
        if email:
            args.append(f"--docker-email={email}")
        return self.kubectl(args, **kwargs)

    def delete_registry_secret(self, secret_name: str, **kwargs: Any) -> ProcessResult:
        return self.kubectl(["delete", "secret", secret_name], **kwargs)

    def show_dashboard(self, port: int = 30000, open_browser: bool = True) -> subprocess.Popen[str]:
        """Start ``kubectl proxy`` in the background and open the dashboard URL.

        The caller owns the returned process and should terminate it when done.
        """
        self._check_config()
        args = ["proxy", f"--port={port}"]
        if self.config is not None:
            args.append(f"--kubeconfig={self.config}")
        proc = spawn_tool(self._tools, "kubectl", args)
        url = (
            f"http://localhost:{port}/api/v1/namespaces/kubernetes-dashboard/services/"
            "https:kubernetes-dashboard:/proxy/"
        )
        log.info("dashboard_proxy_started", port=port, url=url, pid=proc.pid)
        if open_browser:
            webbrowser.open(url)
        return proc

    # --- helm ---

    def _helm_chart(
        self,
        verb: list[str],
        release: str,
        chart: str,
        namespace: str | None,
        values: Manifest | None,
        options: Command,
        **kwargs: Any,
    ) -> ProcessResult:
        args = [*verb, release, chart]
        if namespace:
            args += ["--namespace", namespace]
        extra = split_commandline(options)
        if values is None:
            return self.helm([*args, *extra], **kwargs)
        with materialize_manifest(values) as path:
            return self.helm([*args, "--values", path, *extra], **kwargs)

    def helm_install(
        self,
        release: str,
        chart: str,
        namespace: str | None = None,
        values: Manifest | None = None,
        options: Command = (),
        **kwargs: Any,
    ) -> ProcessResult:
        return self._helm_chart(["install"], release, chart, namespace, values, options, **kwargs)

    def helm_upgrade(
        self,
        release: str,
        chart: str,
        namespace: str | None = None,
        values: Manifest | None = None,
        options: Command = (),
        **kwargs: Any,
    ) -> ProcessResult:
        """``helm upgrade --install``: install the release if it does not exist yet."""
        return self._helm_chart(["upgrade", "--install"], release, chart, namespace, values, options, **kwargs)

    def helm_uninstall(self, release: str, namespace: str | None = None, **kwargs: Any) -> ProcessResult:
        args = ["uninstall", release]
        if namespace:
            args += ["--namespace", namespace]
        return self.helm(args, **kwargs)
