"""Tests for validation.py: name checks and credential role normalization."""

from __future__ import annotations

import pytest

from azure_containers.validation import (
    normalize_role,
    validate_label,
    validate_node_pool,
    validate_registry_name,
)


class TestValidateLabel:
    @pytest.mark.parametrize("value", ["web", "my-app-1", "a", "a" * 63, None])
    def test_valid(self, value: str | None) -> None:
        validate_label(value)

    @pytest.mark.parametrize("value", ["", "Web", "-app", "app-", "my_app", "a" * 64])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValueError, match="RFC 1123"):
            validate_label(value)

    def test_kind_appears_in_message(self) -> None:
        with pytest.raises(ValueError, match="Invalid dns label"):
            validate_label("Bad", kind="dns label")


class TestValidateNodePool:
    @pytest.mark.parametrize("value", ["pool1", "systempool", "a"])
    def test_valid(self, value: str) -> None:
        validate_node_pool(value)

    @pytest.mark.parametrize("value", ["1pool", "Pool", "pool-1", "averyveryverylongpool"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValueError, match="Invalid node pool name"):
            validate_node_pool(value)


class TestValidateRegistryName:
    def test_valid(self) -> None:
        validate_registry_name("myRegistry01")

    @pytest.mark.parametrize("value", ["abc", "my-registry", "a" * 51])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValueError, match="5-50 alphanumeric"):
            validate_registry_name(value)


class TestNormalizeRole:
    @pytest.mark.parametrize("role,expected", [("user", "User"), ("ADMIN", "Admin"), ("Admin", "Admin")])
    def test_valid(self, role: str, expected: str) -> None:
        assert normalize_role(role) == expected

    def test_invalid(self) -> None:
        with pytest.raises(ValueError, match="Must be one of: admin, user"):
            normalize_role("monitoring")
