"""In-memory store implementations for development and testing."""

from __future__ import annotations

from iac_orchestrator.domain.errors import CheckpointExistsError, CheckpointNotFoundError
from iac_orchestrator.domain.models.deployment import Checkpoint, DeploymentState
from iac_orchestrator.domain.models.repository import RepositoryEntry
from iac_orchestrator.domain.models.stage import StageName
from iac_orchestrator.domain.ports.repositories import RepositoryRegistryStore, StateStore


class InMemoryStateStore(StateStore):
    """State store keeping deep copies so callers cannot mutate committed state."""

    def __init__(self) -> None:
        self._states: dict[str, DeploymentState] = {}
        self._checkpoints: dict[tuple[str, str], Checkpoint] = {}
        self.save_count = 0

    async def save(self, state: DeploymentState) -> None:
        self._states[state.id] = state.model_copy(deep=True)
        self.save_count += 1

    async def load(self, deployment_id: str) -> DeploymentState | None:
        state = self._states.get(deployment_id)
        return state.model_copy(deep=True) if state else None

    async def save_checkpoint(
        self,
        deployment_id: str,
        name: str,
        state: DeploymentState,
        stage: StageName,
        stage_order: int,
    ) -> Checkpoint:
        key = (deployment_id, name)
        if key in self._checkpoints:
            raise CheckpointExistsError(
                f"Checkpoint {name} already exists for deployment {deployment_id}"
            )
        checkpoint = Checkpoint(
            name=name,
            deployment_id=deployment_id,
            stage=stage,
            stage_order=stage_order,
            state=state.model_copy(deep=True),
        )
        self._checkpoints[key] = checkpoint
        return checkpoint

    async def load_checkpoint(self, deployment_id: str, name: str) -> Checkpoint:
        checkpoint = self._checkpoints.get((deployment_id, name))
        if checkpoint is None:
            raise CheckpointNotFoundError(
                f"Checkpoint {name} not found for deployment {deployment_id}"
            )
        return checkpoint

    async def list_checkpoints(self, deployment_id: str) -> list[Checkpoint]:
        items = [c for (d, _), c in self._checkpoints.items() if d == deployment_id]
        return sorted(items, key=lambda c: c.stage_order)

    async def list_states(self, limit: int = 50) -> list[DeploymentState]:
        items = sorted(self._states.values(), key=lambda s: s.start_time, reverse=True)
        return [s.model_copy(deep=True) for s in items[:limit]]

    async def find_latest(self, configuration_path: str) -> DeploymentState | None:
        matching = [s for s in self._states.values() if s.configuration_path == configuration_path]
        if not matching:
            return None
        return max(matching, key=lambda s: s.start_time).model_copy(deep=True)


class InMemoryRepositoryRegistryStore(RepositoryRegistryStore):
    """Registry store for testing and demo use."""

    def __init__(self) -> None:
        self._entries: dict[str, RepositoryEntry] = {}
        self.save_count = 0

    async def load_all(self) -> dict[str, RepositoryEntry]:
        return {name: entry.model_copy(deep=True) for name, entry in self._entries.items()}

    async def save_all(self, entries: dict[str, RepositoryEntry]) -> None:
        self._entries = {name: entry.model_copy(deep=True) for name, entry in entries.items()}
        self.save_count += 1
