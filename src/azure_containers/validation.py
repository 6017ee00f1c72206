"""Input validation helpers for resource names and credential roles."""

from __future__ import annotations

import re

# RFC 1123 label: lowercase alphanumeric and hyphens, 1-63 chars, starts/ends with alphanumeric
_LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?$")

# AKS node pool: lowercase alphanumeric, 1-12 chars, starts with letter
_NODE_POOL_RE = re.compile(r"^[a-z][a-z0-9]{0,11}$")

# Container registry: alphanumeric only, 5-50 chars
_REGISTRY_RE = re.compile(r"^[a-zA-Z0-9]{5,50}$")

_VALID_ROLES = {"user", "admin"}


def validate_label(value: str | None, kind: str = "name") -> None:
    """Validate an RFC 1123 label such as a namespace, DNS label or container group name."""
    if value is None:
        return
    if not _LABEL_RE.match(value):
        msg = f"Invalid {kind}: {value!r}. Must be a valid RFC 1123 label."
        raise ValueError(msg)


def validate_node_pool(node_pool: str) -> None:
    """Validate an AKS node pool name."""
    if not _NODE_POOL_RE.match(node_pool):
        msg = f"Invalid node pool name: {node_pool!r}. Must be 1-12 lowercase alphanumeric starting with a letter."
        raise ValueError(msg)


def validate_registry_name(name: str) -> None:
    if not _REGISTRY_RE.match(name):
        msg = f"Invalid registry name: {name!r}. Must be 5-50 alphanumeric characters."
        raise ValueError(msg)


def normalize_role(role: str) -> str:
    """Map a credential role to its ARM operation spelling (``User`` or ``Admin``)."""
    lowered = role.lower()
    if lowered not in _VALID_ROLES:
        valid = ", ".join(sorted(_VALID_ROLES))
        msg = f"Invalid role: {role!r}. Must be one of: {valid}"
        raise ValueError(msg)
    return lowered.capitalize()
