"""JSON document implementation of the repository registry."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from iac_orchestrator.domain.errors import StateStoreError
from iac_orchestrator.domain.models.repository import RepositoryEntry
from iac_orchestrator.domain.ports.repositories import RepositoryRegistryStore
from iac_orchestrator.infrastructure.persistence.files import atomic_write_text


logger = structlog.get_logger(__name__)

REGISTRY_FORMAT_VERSION = 1


class RegistryDocument(BaseModel):
    """On-disk shape of the registry."""

    version: int = REGISTRY_FORMAT_VERSION
    repositories: dict[str, RepositoryEntry] = Field(default_factory=dict)


class JsonRepositoryRegistryStore(RepositoryRegistryStore):
    """Loads and saves the whole registry as one JSON document."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def load_all(self) -> dict[str, RepositoryEntry]:
        if not self._path.exists():
            return {}
        try:
            text = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
            document = RegistryDocument.model_validate_json(text)
        except (OSError, ValidationError) as e:
            raise StateStoreError(f"Repository registry {self._path} is unreadable: {e}") from e
        if document.version != REGISTRY_FORMAT_VERSION:
            raise StateStoreError(
                f"Unsupported registry format version {document.version} in {self._path}"
            )
        return dict(document.repositories)

    async def save_all(self, entries: dict[str, RepositoryEntry]) -> None:
        document = RegistryDocument(repositories=dict(sorted(entries.items())))
        try:
            await asyncio.to_thread(atomic_write_text, self._path, document.model_dump_json(indent=2))
        except OSError as e:
            raise StateStoreError(f"Could not write repository registry {self._path}: {e}") from e
        logger.debug("registry_saved", path=str(self._path), repositories=len(entries))
