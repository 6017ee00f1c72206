"""Managed Kubernetes service resources and the cluster command client."""

from __future__ import annotations

from kubernetes import client as k8s_client
from kubernetes.config import new_client_from_config


def load_k8s_api_client(config_file: str | None = None, context: str | None = None) -> k8s_client.ApiClient:
    """Create an isolated Kubernetes API client for one kubeconfig file.

    Uses new_client_from_config so the global SDK configuration is left alone and
    several clusters can be driven from the same process. ``None`` selects the
    user's default kubeconfig.
    """
    return new_client_from_config(config_file=config_file, context=context)
