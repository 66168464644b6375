"""Persistence port interfaces (hexagonal architecture)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from iac_orchestrator.domain.models.deployment import Checkpoint, DeploymentState
from iac_orchestrator.domain.models.repository import RepositoryEntry
from iac_orchestrator.domain.models.stage import StageName


class StateStore(ABC):
    """Port for deployment state and checkpoint persistence.

    The store is the sole writer of the durable representation of a
    deployment's state. Writes are all-or-nothing.
    """

    @abstractmethod
    async def save(self, state: DeploymentState) -> None:
        """Atomically persist the current state of a deployment."""

    @abstractmethod
    async def load(self, deployment_id: str) -> DeploymentState | None:
        """Load the last committed state of a deployment."""

    @abstractmethod
    async def save_checkpoint(
        self,
        deployment_id: str,
        name: str,
        state: DeploymentState,
        stage: StageName,
        stage_order: int,
    ) -> Checkpoint:
        """Persist an immutable named snapshot. Never overwrites."""

    @abstractmethod
    async def load_checkpoint(self, deployment_id: str, name: str) -> Checkpoint:
        """Load a named checkpoint or raise CheckpointNotFoundError."""

    @abstractmethod
    async def list_checkpoints(self, deployment_id: str) -> list[Checkpoint]:
        """List checkpoints of a deployment ordered by stage."""

    @abstractmethod
    async def list_states(self, limit: int = 50) -> list[DeploymentState]:
        """List deployments, most recent first."""

    @abstractmethod
    async def find_latest(self, configuration_path: str) -> DeploymentState | None:
        """Most recent deployment of a configuration, if any."""


class RepositoryRegistryStore(ABC):
    """Port for the repository registry document, loaded and saved as a whole."""

    @abstractmethod
    async def load_all(self) -> dict[str, RepositoryEntry]:
        """Load every registered repository keyed by name."""

    @abstractmethod
    async def save_all(self, entries: dict[str, RepositoryEntry]) -> None:
        """Atomically replace the registry document."""
