"""Unit tests for the JSON file stores."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from iac_orchestrator.domain.errors import (
    CheckpointExistsError,
    CheckpointNotFoundError,
    StateStoreError,
)
from iac_orchestrator.domain.models.deployment import DeploymentState, DeploymentStatus
from iac_orchestrator.domain.models.repository import RepositoryEntry
from iac_orchestrator.domain.models.stage import StageName, StageResult
from iac_orchestrator.infrastructure.persistence.files import (
    atomic_write_text,
    check_name,
    exclusive_write_text,
)
from iac_orchestrator.infrastructure.persistence.registry_store import JsonRepositoryRegistryStore
from iac_orchestrator.infrastructure.persistence import state_store as state_store_module
from iac_orchestrator.infrastructure.persistence.state_store import FileStateStore


def _running_state(path: str = "/deployments/hyperv-lab.yaml") -> DeploymentState:
    state = DeploymentState(configuration_path=path, configuration_name="hyperv-lab")
    state.enter_stage(StageName.PLAN)
    state.record_success(StageResult(
        stage=StageName.PLAN, success=True, outputs={"plan_file": "/tmp/deployment.tfplan"}
    ))
    state.collect_events()
    return state


class TestFiles:
    def test_atomic_write_replaces(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "state.json"
        atomic_write_text(target, "one")
        atomic_write_text(target, "two")
        assert target.read_text() == "two"
        assert [p.name for p in target.parent.iterdir()] == ["state.json"]

    def test_exclusive_write_refuses_overwrite(self, tmp_path: Path) -> None:
        target = tmp_path / "after-Plan.json"
        exclusive_write_text(target, "first")
        with pytest.raises(FileExistsError):
            exclusive_write_text(target, "second")
        assert target.read_text() == "first"
        assert [p.name for p in tmp_path.iterdir()] == ["after-Plan.json"]

    @pytest.mark.parametrize("name", ["../escape", "", ".hidden", "a/b"])
    def test_check_name_rejects(self, name: str) -> None:
        with pytest.raises(ValueError):
            check_name("deployment", name)


class TestFileStateStore:
    @pytest.mark.asyncio
    async def test_save_load_round_trip(self, tmp_path: Path) -> None:
        store = FileStateStore(tmp_path)
        state = _running_state()

        await store.save(state)
        loaded = await store.load(state.id)

        assert loaded == state
        assert (tmp_path / state.id / "state.json").is_file()

    @pytest.mark.asyncio
    async def test_writes_happen_off_the_event_loop(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        writer_threads: list[int] = []

        def recording_write(path: Path, text: str) -> None:
            writer_threads.append(threading.get_ident())
            atomic_write_text(path, text)

        monkeypatch.setattr(state_store_module, "atomic_write_text", recording_write)
        store = FileStateStore(tmp_path)

        await store.save(_running_state())

        assert len(writer_threads) == 1
        assert writer_threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_load_missing(self, tmp_path: Path) -> None:
        assert await FileStateStore(tmp_path).load("missing") is None

    @pytest.mark.asyncio
    async def test_load_rejects_path_traversal(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            await FileStateStore(tmp_path).load("../outside")

    @pytest.mark.asyncio
    async def test_corrupt_state(self, tmp_path: Path) -> None:
        store = FileStateStore(tmp_path)
        (tmp_path / "dep-1").mkdir()
        (tmp_path / "dep-1" / "state.json").write_text("{not json")

        with pytest.raises(StateStoreError):
            await store.load("dep-1")

    @pytest.mark.asyncio
    async def test_checkpoint_is_a_snapshot(self, tmp_path: Path) -> None:
        store = FileStateStore(tmp_path)
        state = _running_state()

        checkpoint = await store.save_checkpoint(state.id, "after-Plan", state, StageName.PLAN, 3)
        state.outputs["later"] = "value"
        loaded = await store.load_checkpoint(state.id, "after-Plan")

        assert loaded.stage == StageName.PLAN
        assert loaded.stage_order == 3
        assert "later" not in loaded.state.outputs
        assert loaded.timestamp == checkpoint.timestamp

    @pytest.mark.asyncio
    async def test_checkpoint_never_overwritten(self, tmp_path: Path) -> None:
        store = FileStateStore(tmp_path)
        state = _running_state()
        await store.save_checkpoint(state.id, "after-Plan", state, StageName.PLAN, 3)

        with pytest.raises(CheckpointExistsError):
            await store.save_checkpoint(state.id, "after-Plan", state, StageName.PLAN, 3)

    @pytest.mark.asyncio
    async def test_missing_checkpoint(self, tmp_path: Path) -> None:
        with pytest.raises(CheckpointNotFoundError):
            await FileStateStore(tmp_path).load_checkpoint("dep-1", "after-Apply")

    @pytest.mark.asyncio
    async def test_list_checkpoints_ordered_by_stage(self, tmp_path: Path) -> None:
        store = FileStateStore(tmp_path)
        state = _running_state()
        await store.save_checkpoint(state.id, "after-Apply", state, StageName.APPLY, 4)
        await store.save_checkpoint(state.id, "after-Plan", state, StageName.PLAN, 3)

        names = [c.name for c in await store.list_checkpoints(state.id)]

        assert names == ["after-Plan", "after-Apply"]

    @pytest.mark.asyncio
    async def test_list_and_find_latest(self, tmp_path: Path) -> None:
        store = FileStateStore(tmp_path)
        older = _running_state()
        newer = _running_state()
        newer.start_time = older.start_time.replace(year=older.start_time.year + 1)
        other = _running_state("/deployments/other.yaml")
        for state in (older, newer, other):
            await store.save(state)
        (tmp_path / "broken").mkdir()
        (tmp_path / "broken" / "state.json").write_text("garbage")

        listed = await store.list_states(limit=2)
        latest = await store.find_latest("/deployments/hyperv-lab.yaml")

        assert len(listed) == 2
        assert listed[0].id == newer.id
        assert latest.id == newer.id
        assert await store.find_latest("/deployments/none.yaml") is None

    @pytest.mark.asyncio
    async def test_terminal_state_persisted(self, tmp_path: Path) -> None:
        store = FileStateStore(tmp_path)
        state = _running_state()
        state.finish(DeploymentStatus.PARTIALLY_COMPLETED)

        await store.save(state)

        assert (await store.load(state.id)).status == DeploymentStatus.PARTIALLY_COMPLETED


class TestJsonRepositoryRegistryStore:
    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert await JsonRepositoryRegistryStore(tmp_path / "repositories.json").load_all() == {}

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path: Path) -> None:
        store = JsonRepositoryRegistryStore(tmp_path / "repositories.json")
        entry = RepositoryEntry(
            name="hyperv-lab",
            url="https://github.com/example/templates.git",
            local_path=str(tmp_path / "hyperv-lab"),
            tags=["hyperv"],
        )

        await store.save_all({"hyperv-lab": entry})

        assert await store.load_all() == {"hyperv-lab": entry}

    @pytest.mark.asyncio
    async def test_unsupported_version(self, tmp_path: Path) -> None:
        path = tmp_path / "repositories.json"
        path.write_text('{"version": 99, "repositories": {}}')

        with pytest.raises(StateStoreError, match="version"):
            await JsonRepositoryRegistryStore(path).load_all()

    @pytest.mark.asyncio
    async def test_corrupt_document(self, tmp_path: Path) -> None:
        path = tmp_path / "repositories.json"
        path.write_text("[]")

        with pytest.raises(StateStoreError):
            await JsonRepositoryRegistryStore(path).load_all()
