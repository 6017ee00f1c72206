"""Shared test fixtures for all test modules."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from azure_containers.arm import ArmClient
from azure_containers.config import PollConfig, ToolConfig, default_tools

SUBSCRIPTION_ID = "11111111-2222-3333-4444-555555555555"


def _make_response(
    status_code: int = 200,
    body: Any = None,
    *,
    headers: dict[str, str] | None = None,
    links: dict[str, dict[str, str]] | None = None,
    text: str | None = None,
) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.content = b"" if body is None else b"{...}"
    response.text = text if text is not None else ("" if body is None else str(body))
    response.headers = headers or {}
    response.links = links or {}
    return response


@pytest.fixture
def make_response() -> Callable[..., MagicMock]:
    """Factory for a mock ``requests.Response``."""
    return _make_response


@pytest.fixture
def credential() -> MagicMock:
    """A TokenCredential stand-in that always hands out the same AAD token."""
    cred = MagicMock()
    cred.get_token.return_value.token = "aad-token"
    return cred


@pytest.fixture
def session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def arm(credential: MagicMock, session: MagicMock) -> ArmClient:
    return ArmClient(SUBSCRIPTION_ID, credential, session=session)


@pytest.fixture
def tools() -> ToolConfig:
    return ToolConfig(docker="/usr/bin/docker", kubectl="/usr/bin/kubectl", helm="/usr/bin/helm", echo=False)


@pytest.fixture
def tools_on_path() -> Iterator[MagicMock]:
    """Every tool resolves to /opt/bin/<name>; the cached default discovery is reset around the test."""
    default_tools.cache_clear()
    with patch("azure_containers.config.shutil.which", side_effect=lambda name: f"/opt/bin/{name}") as which:
        yield which
    default_tools.cache_clear()


@pytest.fixture
def fast_poll() -> PollConfig:
    return PollConfig(interval=0, max_attempts=5)


@pytest.fixture
def no_sleep() -> Iterator[MagicMock]:
    with patch("azure_containers.arm.time.sleep") as sleep:
        yield sleep


@pytest.fixture
def mock_run() -> Iterator[MagicMock]:
    """Patch subprocess.run as seen by the process invoker; exits 0 with no output by default."""
    with patch("azure_containers.process.subprocess.run") as run:
        run.return_value.returncode = 0
        run.return_value.stdout = ""
        run.return_value.stderr = ""
        yield run
