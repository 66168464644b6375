"""Unit tests for credential stores."""

from __future__ import annotations

import pytest

from iac_orchestrator.domain.errors import CredentialInvalidError, RepositoryAccessError
from iac_orchestrator.infrastructure.credentials.store import (
    EnvironmentCredentialStore,
    InMemoryCredentialStore,
)


class TestEnvironmentCredentialStore:
    def test_variable_name(self) -> None:
        store = EnvironmentCredentialStore()
        assert store.variable_for("github-token") == "IAC_CREDENTIAL_GITHUB_TOKEN"
        assert store.variable_for("azure.devops/pat") == "IAC_CREDENTIAL_AZURE_DEVOPS_PAT"

    def test_resolve(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IAC_CREDENTIAL_GITHUB_TOKEN", "ghp_example")
        assert EnvironmentCredentialStore().resolve("github-token") == "ghp_example"

    def test_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("IAC_CREDENTIAL_GITHUB_TOKEN", raising=False)
        with pytest.raises(CredentialInvalidError, match="IAC_CREDENTIAL_GITHUB_TOKEN"):
            EnvironmentCredentialStore().resolve("github-token")

    def test_empty_value_is_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IAC_CREDENTIAL_GITHUB_TOKEN", "")
        with pytest.raises(CredentialInvalidError):
            EnvironmentCredentialStore().resolve("github-token")

    def test_custom_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LAB_GITHUB_TOKEN", "x")
        assert EnvironmentCredentialStore(prefix="LAB_").resolve("github-token") == "x"


class TestInMemoryCredentialStore:
    def test_put_and_resolve(self) -> None:
        store = InMemoryCredentialStore()
        store.put("github-token", "secret")
        assert store.resolve("github-token") == "secret"

    def test_unknown_is_access_error(self) -> None:
        with pytest.raises(RepositoryAccessError):
            InMemoryCredentialStore().resolve("nope")
