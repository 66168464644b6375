"""Template repository registry entries."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from enum import Enum

from pydantic import Field, field_validator

from iac_orchestrator.domain.errors import InvalidStateTransitionError
from iac_orchestrator.domain.models.base import DomainEntity, ValueObject


MIN_CACHE_TTL_SECONDS = 300
MAX_CACHE_TTL_SECONDS = 604800
DEFAULT_CACHE_TTL_SECONDS = 3600

REPOSITORY_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")

# Marker file expected at the root of every template repository.
REPOSITORY_MARKER = "repository.yaml"


class RepositoryStatus(str, Enum):
    """Repository cache states."""

    REGISTERED = "Registered"
    SYNCED = "Synced"
    CLONE_FAILED = "CloneFailed"


REPOSITORY_TRANSITIONS: dict[RepositoryStatus, set[RepositoryStatus]] = {
    RepositoryStatus.REGISTERED: {RepositoryStatus.SYNCED, RepositoryStatus.CLONE_FAILED},
    RepositoryStatus.SYNCED: {RepositoryStatus.SYNCED, RepositoryStatus.CLONE_FAILED},
    RepositoryStatus.CLONE_FAILED: {RepositoryStatus.SYNCED, RepositoryStatus.CLONE_FAILED},
}


class RepositoryEntry(DomainEntity):
    """A remote template repository mirrored in the local cache."""

    name: str
    url: str
    branch: str = "main"
    local_path: str
    credential_ref: str | None = None
    cache_ttl: int = Field(
        default=DEFAULT_CACHE_TTL_SECONDS,
        ge=MIN_CACHE_TTL_SECONDS,
        le=MAX_CACHE_TTL_SECONDS,
    )
    last_sync_time: datetime | None = None
    status: RepositoryStatus = RepositoryStatus.REGISTERED
    tags: list[str] = Field(default_factory=list)
    auto_sync: bool = False
    commit: str = ""
    last_error: str = ""
    validation_warnings: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not REPOSITORY_NAME_PATTERN.match(value):
            raise ValueError(
                "repository names may contain letters, digits, '.', '_' and '-' "
                "and must start with a letter or digit"
            )
        return value

    def _transition_to(self, new_status: RepositoryStatus) -> None:
        valid = REPOSITORY_TRANSITIONS.get(self.status, set())
        if new_status not in valid:
            raise InvalidStateTransitionError(
                f"Repository cannot transition from {self.status.value} to {new_status.value}"
            )
        self.status = new_status
        self.touch()

    def mark_synced(self, synced_at: datetime, commit: str, warnings: list[str]) -> None:
        self._transition_to(RepositoryStatus.SYNCED)
        self.last_sync_time = synced_at
        self.commit = commit
        self.last_error = ""
        self.validation_warnings = list(warnings)

    def mark_failed(self, error: str) -> None:
        """Record a failed sync; the last successful sync time is kept."""
        self._transition_to(RepositoryStatus.CLONE_FAILED)
        self.last_error = error

    def is_fresh(self, now: datetime) -> bool:
        """Whether the last successful sync is still within the TTL."""
        if self.last_sync_time is None or self.status != RepositoryStatus.SYNCED:
            return False
        return now - self.last_sync_time <= timedelta(seconds=self.cache_ttl)

    @property
    def ever_synced(self) -> bool:
        return self.last_sync_time is not None


class TemplateDescriptor(ValueObject):
    """A template listed in a repository's marker file."""

    id: str
    path: str
    name: str = ""
    version: str = ""


class RepositoryManifest(ValueObject):
    """Parsed ``repository.yaml`` marker."""

    name: str = ""
    templates: list[TemplateDescriptor] = Field(default_factory=list)
    base_templates: list[TemplateDescriptor] = Field(default_factory=list)

    def find(self, template_id: str) -> TemplateDescriptor | None:
        for template in [*self.templates, *self.base_templates]:
            if template.id == template_id:
                return template
        return None
