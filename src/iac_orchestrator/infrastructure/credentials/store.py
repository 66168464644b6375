"""Credential store adapters resolving references to repository secrets."""

from __future__ import annotations

import os
import re

import structlog

from iac_orchestrator.domain.errors import CredentialInvalidError
from iac_orchestrator.domain.ports.services import CredentialStore


logger = structlog.get_logger(__name__)

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")


class EnvironmentCredentialStore(CredentialStore):
    """Reads secrets from environment variables.

    A reference ``github-token`` resolves to ``IAC_CREDENTIAL_GITHUB_TOKEN``.
    """

    def __init__(self, prefix: str = "IAC_CREDENTIAL_") -> None:
        self._prefix = prefix

    def variable_for(self, ref: str) -> str:
        return self._prefix + _NON_ALNUM.sub("_", ref).strip("_").upper()

    def resolve(self, ref: str) -> str:
        variable = self.variable_for(ref)
        secret = os.environ.get(variable, "")
        if not secret:
            logger.warning("credential_missing", credential_ref=ref, variable=variable)
            raise CredentialInvalidError(
                f"Credential reference '{ref}' is not set (expected environment variable {variable})"
            )
        return secret


class InMemoryCredentialStore(CredentialStore):
    """Credential store for testing."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def put(self, ref: str, secret: str) -> None:
        self._secrets[ref] = secret

    def resolve(self, ref: str) -> str:
        secret = self._secrets.get(ref)
        if not secret:
            raise CredentialInvalidError(f"Credential reference '{ref}' is not known")
        return secret
