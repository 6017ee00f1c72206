"""Tool discovery, polling settings, target resource groups, and environment variable overrides."""

from __future__ import annotations

import functools
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

log = structlog.get_logger()

_FALSEY = {"0", "false", "no", "off"}

TOOL_NAMES = ("docker", "kubectl", "helm")


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in _FALSEY


@dataclass(frozen=True)
class ToolConfig:
    """Absolute paths of the external binaries, discovered once at startup.

    An empty string means the binary was not found; the matching wrapper raises
    ToolNotFoundError when it is first used.
    """

    docker: str = ""
    kubectl: str = ""
    helm: str = ""
    echo: bool = field(default_factory=lambda: _env_flag("AZURE_CONTAINERS_TOOL_ECHO", True))

    def path_for(self, tool: str) -> str:
        if tool not in TOOL_NAMES:
            msg = f"Unknown tool: {tool!r}. Must be one of: {', '.join(TOOL_NAMES)}"
            raise ValueError(msg)
        return str(getattr(self, tool))


def discover_tools(echo: bool | None = None) -> ToolConfig:
    """Search PATH for docker, kubectl and helm and build a ToolConfig.

    Missing binaries are reported with a warning but do not fail here.
    """
    found: dict[str, str] = {}
    for tool in TOOL_NAMES:
        path = shutil.which(tool) or ""
        if path:
            log.info("using_tool_binary", tool=tool, path=path)
        else:
            log.warning("tool_binary_not_found", tool=tool)
        found[tool] = path

    if echo is None:
        return ToolConfig(**found)
    return ToolConfig(echo=echo, **found)


@functools.cache
def default_tools() -> ToolConfig:
    """The ToolConfig used when a caller does not pass one: PATH is searched on first use only."""
    return discover_tools()


@dataclass(frozen=True)
class PollConfig:
    """Provisioning poll loop settings with environment variable overrides."""

    interval: float = field(default_factory=lambda: float(os.environ.get("AZURE_CONTAINERS_POLL_INTERVAL", "10")))
    max_attempts: int = field(default_factory=lambda: int(os.environ.get("AZURE_CONTAINERS_POLL_ATTEMPTS", "1000")))


def get_poll_config() -> PollConfig:
    """Return poll configuration with environment variable overrides applied."""
    return PollConfig()


def kubeconfig_dir() -> Path:
    """Directory used to cache per-cluster kubeconfig files.

    Uses ``AZURE_CONTAINERS_CONFIG_DIR`` (default ``~/.azure_containers``), falling
    back to the system temp directory when that directory does not exist.
    """
    configured = Path(os.environ.get("AZURE_CONTAINERS_CONFIG_DIR", "~/.azure_containers")).expanduser()
    if configured.is_dir():
        return configured
    return Path(tempfile.gettempdir())


def default_kubeconfig_path(cluster_name: str) -> Path:
    return kubeconfig_dir() / f"kubeconfig_{cluster_name}"


def user_kubeconfig_path() -> Path:
    """The Kubernetes tooling default, ``~/.kube/config``."""
    return Path.home() / ".kube" / "config"


_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class ResourceGroupConfig(BaseModel):
    """One entry of a targets file: where a script creates its resources."""

    model_config = ConfigDict(frozen=True)

    subscription_id: str
    resource_group: str = Field(min_length=1)
    location: str = Field(min_length=1)

    @field_validator("subscription_id")
    @classmethod
    def _check_subscription(cls, value: str) -> str:
        if value.startswith("<") and value.endswith(">"):
            msg = "placeholder subscription_id"
            raise ValueError(msg)
        if not _UUID_RE.match(value):
            msg = "subscription_id is not a valid UUID"
            raise ValueError(msg)
        return value


def load_targets(path: Path | None = None) -> dict[str, ResourceGroupConfig]:
    """Read and validate a YAML targets file.

    The file maps aliases to ``subscription_id``, ``resource_group`` and ``location``
    under a top-level ``targets`` key. ``AZURE_CONTAINERS_TARGETS`` is used when no
    path is given, defaulting to ``targets.yaml`` in the working directory.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is malformed or an entry is invalid.
    """
    if path is None:
        path = Path(os.environ.get("AZURE_CONTAINERS_TARGETS", "targets.yaml"))
    if not path.exists():
        msg = f"Targets file not found: {path}. Set AZURE_CONTAINERS_TARGETS to point to your targets file."
        raise FileNotFoundError(msg)

    raw = yaml.safe_load(path.read_text())
    entries = raw.get("targets") if isinstance(raw, dict) else None
    if not isinstance(entries, dict) or not entries:
        msg = f"Targets file {path} must map a top-level 'targets' key to at least one entry."
        raise ValueError(msg)

    targets: dict[str, ResourceGroupConfig] = {}
    for alias, entry in entries.items():
        try:
            targets[str(alias)] = ResourceGroupConfig.model_validate(entry)
        except ValidationError as exc:
            msg = f"Target '{alias}' in {path} is invalid: {exc}"
            raise ValueError(msg) from exc

    log.info("targets_loaded", path=str(path), aliases=sorted(targets))
    return targets
