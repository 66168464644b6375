"""Unit tests for in-memory stores."""

from __future__ import annotations

import pytest

from iac_orchestrator.domain.errors import CheckpointExistsError, CheckpointNotFoundError
from iac_orchestrator.domain.models.deployment import DeploymentState
from iac_orchestrator.domain.models.repository import RepositoryEntry
from iac_orchestrator.domain.models.stage import StageName
from iac_orchestrator.infrastructure.persistence.in_memory import (
    InMemoryRepositoryRegistryStore,
    InMemoryStateStore,
)


class TestInMemoryStateStore:
    @pytest.mark.asyncio
    async def test_saved_state_is_isolated(self) -> None:
        store = InMemoryStateStore()
        state = DeploymentState(configuration_path="/lab.yaml")
        await store.save(state)

        state.outputs["changed"] = "after save"
        loaded = await store.load(state.id)

        assert "changed" not in loaded.outputs
        assert store.save_count == 1

    @pytest.mark.asyncio
    async def test_checkpoints(self) -> None:
        store = InMemoryStateStore()
        state = DeploymentState(configuration_path="/lab.yaml")
        await store.save_checkpoint(state.id, "after-Plan", state, StageName.PLAN, 3)

        with pytest.raises(CheckpointExistsError):
            await store.save_checkpoint(state.id, "after-Plan", state, StageName.PLAN, 3)
        with pytest.raises(CheckpointNotFoundError):
            await store.load_checkpoint(state.id, "after-Apply")
        assert [c.name for c in await store.list_checkpoints(state.id)] == ["after-Plan"]


class TestInMemoryRepositoryRegistryStore:
    @pytest.mark.asyncio
    async def test_entries_are_copied(self) -> None:
        store = InMemoryRepositoryRegistryStore()
        entry = RepositoryEntry(name="lab", url="https://example.com/t.git", local_path="/c/lab")
        await store.save_all({"lab": entry})

        loaded = await store.load_all()
        loaded["lab"].tags.append("mutated")

        assert (await store.load_all())["lab"].tags == []
