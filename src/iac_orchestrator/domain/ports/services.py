"""Service port interfaces (hexagonal architecture)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Any

from iac_orchestrator.domain.models.configuration import DeploymentConfiguration
from iac_orchestrator.domain.models.provisioning import (
    ApplyOutput,
    GitSyncResult,
    PlanOutput,
    ToolResult,
)
from iac_orchestrator.domain.models.repository import RepositoryManifest


class ConfigurationResolver(ABC):
    """Port for loading deployment descriptors."""

    @abstractmethod
    def load(self, path: str) -> DeploymentConfiguration:
        """Load and expand a descriptor. Raises ConfigurationError."""


class ProvisioningTool(ABC):
    """Port for the external infrastructure provisioning tool."""

    @abstractmethod
    async def version(self) -> str:
        """Return the tool version; raises ProvisioningError if unavailable."""

    @abstractmethod
    async def init(self, working_dir: str) -> ToolResult:
        """Initialize providers and modules in a working directory."""

    @abstractmethod
    async def validate(self, working_dir: str) -> ToolResult:
        """Statically validate the configuration."""

    @abstractmethod
    async def plan(
        self,
        working_dir: str,
        var_file: str,
        plan_file: str,
        refresh: bool = True,
        targets: list[str] | None = None,
    ) -> PlanOutput:
        """Produce a saved plan file."""

    @abstractmethod
    async def apply(self, working_dir: str, plan_file: str, parallelism: int = 10) -> ApplyOutput:
        """Apply a saved plan. This is the only mutating call."""

    @abstractmethod
    async def outputs(self, working_dir: str) -> dict[str, str]:
        """Read the current root module outputs."""


class CredentialStore(ABC):
    """Port for resolving credential references to secrets."""

    @abstractmethod
    def resolve(self, ref: str) -> str:
        """Return the secret for ``ref`` or raise CredentialInvalidError."""


class GitClient(ABC):
    """Port for the git transport used by the repository cache."""

    @abstractmethod
    async def is_reachable(
        self, url: str, branch: str, secret: str | None = None, timeout: float = 30.0
    ) -> bool:
        """Check that a remote and branch exist without cloning."""

    @abstractmethod
    async def clone(
        self,
        url: str,
        branch: str,
        target: Path,
        secret: str | None = None,
        timeout: float = 300.0,
    ) -> GitSyncResult:
        """Clone ``branch`` of ``url`` into ``target``."""

    @abstractmethod
    async def fetch(
        self, path: Path, branch: str, secret: str | None = None, timeout: float = 300.0
    ) -> GitSyncResult:
        """Fetch ``branch`` and move the working tree to it."""


class EventPublisher(ABC):
    """Port for publishing domain events."""

    @abstractmethod
    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        """Publish an event."""

    @abstractmethod
    async def publish_batch(self, events: list[tuple[str, dict[str, Any]]]) -> None:
        """Publish a batch of events."""


class KeyedLock(ABC):
    """Port for mutual exclusion keyed by a resource name."""

    @abstractmethod
    def hold(self, key: str) -> AbstractAsyncContextManager[None]:
        """Async context manager holding the lock for ``key``."""

    @abstractmethod
    def is_locked(self, key: str) -> bool:
        """Check if a key is currently held."""


class ManifestReader(ABC):
    """Port for reading a template repository's marker file."""

    @abstractmethod
    def read(self, repository_path: Path) -> RepositoryManifest:
        """Parse the marker at the repository root.

        Raises FileNotFoundError when absent and ConfigurationError when
        unparsable.
        """
