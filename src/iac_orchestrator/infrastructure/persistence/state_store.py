"""JSON file implementation of the deployment state and checkpoint store.

Layout::

    <state_dir>/<deployment_id>/state.json
    <state_dir>/<deployment_id>/checkpoints/<name>.json
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
from pydantic import ValidationError

from iac_orchestrator.domain.errors import (
    CheckpointExistsError,
    CheckpointNotFoundError,
    StateStoreError,
)
from iac_orchestrator.domain.models.deployment import Checkpoint, DeploymentState
from iac_orchestrator.domain.models.stage import StageName
from iac_orchestrator.domain.ports.repositories import StateStore
from iac_orchestrator.infrastructure.persistence.files import (
    atomic_write_text,
    check_name,
    exclusive_write_text,
)


logger = structlog.get_logger(__name__)

STATE_FILE = "state.json"
CHECKPOINT_DIR = "checkpoints"


class FileStateStore(StateStore):
    """Stores one state file per deployment and one file per checkpoint."""

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def deployment_dir(self, deployment_id: str) -> Path:
        return self._base_dir / check_name("deployment", deployment_id)

    def _state_path(self, deployment_id: str) -> Path:
        return self.deployment_dir(deployment_id) / STATE_FILE

    def _checkpoint_path(self, deployment_id: str, name: str) -> Path:
        return self.deployment_dir(deployment_id) / CHECKPOINT_DIR / f"{check_name('checkpoint', name)}.json"

    async def save(self, state: DeploymentState) -> None:
        path = self._state_path(state.id)
        try:
            await asyncio.to_thread(atomic_write_text, path, state.model_dump_json(indent=2))
        except OSError as e:
            raise StateStoreError(f"Could not persist state for deployment {state.id}: {e}") from e
        logger.debug("state_saved", deployment_id=state.id, status=state.display_status)

    async def load(self, deployment_id: str) -> DeploymentState | None:
        path = self._state_path(deployment_id)
        if not path.exists():
            return None
        return await asyncio.to_thread(self._read_state, path)

    async def save_checkpoint(
        self,
        deployment_id: str,
        name: str,
        state: DeploymentState,
        stage: StageName,
        stage_order: int,
    ) -> Checkpoint:
        checkpoint = Checkpoint(
            name=name,
            deployment_id=deployment_id,
            stage=stage,
            stage_order=stage_order,
            state=state.model_copy(deep=True),
        )
        path = self._checkpoint_path(deployment_id, name)
        try:
            await asyncio.to_thread(
                exclusive_write_text, path, checkpoint.model_dump_json(indent=2)
            )
        except FileExistsError as e:
            raise CheckpointExistsError(
                f"Checkpoint {name} already exists for deployment {deployment_id}"
            ) from e
        except OSError as e:
            raise StateStoreError(f"Could not write checkpoint {name}: {e}") from e
        logger.info("checkpoint_saved", deployment_id=deployment_id, checkpoint=name)
        return checkpoint

    async def load_checkpoint(self, deployment_id: str, name: str) -> Checkpoint:
        path = self._checkpoint_path(deployment_id, name)
        if not path.exists():
            raise CheckpointNotFoundError(
                f"Checkpoint {name} not found for deployment {deployment_id}"
            )
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return Checkpoint.model_validate_json(text)
        except (OSError, ValidationError) as e:
            raise StateStoreError(f"Checkpoint {path} is unreadable: {e}") from e

    async def list_checkpoints(self, deployment_id: str) -> list[Checkpoint]:
        directory = self.deployment_dir(deployment_id) / CHECKPOINT_DIR
        if not directory.is_dir():
            return []
        checkpoints = [
            await self.load_checkpoint(deployment_id, path.stem)
            for path in directory.glob("*.json")
        ]
        return sorted(checkpoints, key=lambda c: c.stage_order)

    async def list_states(self, limit: int = 50) -> list[DeploymentState]:
        states = await asyncio.to_thread(self._scan)
        return sorted(states, key=lambda s: s.start_time, reverse=True)[:limit]

    async def find_latest(self, configuration_path: str) -> DeploymentState | None:
        states = await asyncio.to_thread(self._scan)
        matching = [s for s in states if s.configuration_path == configuration_path]
        if not matching:
            return None
        return max(matching, key=lambda s: s.start_time)

    def _scan(self) -> list[DeploymentState]:
        if not self._base_dir.is_dir():
            return []
        states: list[DeploymentState] = []
        for path in self._base_dir.glob(f"*/{STATE_FILE}"):
            try:
                states.append(self._read_state(path))
            except StateStoreError as e:
                logger.warning("state_file_skipped", path=str(path), error=str(e))
        return states

    @staticmethod
    def _read_state(path: Path) -> DeploymentState:
        try:
            return DeploymentState.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise StateStoreError(f"State file {path} is unreadable: {e}") from e
