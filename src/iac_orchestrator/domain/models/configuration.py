"""Resolved deployment configuration and run options."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from iac_orchestrator.domain.models.base import ValueObject
from iac_orchestrator.domain.models.stage import STAGE_ORDER, StageName, StageSettings


MAX_RETRIES = 5


class RepositoryReference(ValueObject):
    """Which cached template repository (and template inside it) to deploy."""

    name: str = Field(..., min_length=1)
    template: str | None = None


class DeploymentConfiguration(ValueObject):
    """A deployment descriptor after loading and expansion.

    Immutable for the lifetime of a run.
    """

    name: str
    source_path: str
    repository: RepositoryReference
    target_stages: list[StageName] = Field(default_factory=lambda: list(STAGE_ORDER))
    stages: StageSettings = Field(default_factory=StageSettings)
    variables: dict[str, Any] = Field(default_factory=dict)

    @field_validator("target_stages")
    @classmethod
    def _order_target_stages(cls, value: list[StageName]) -> list[StageName]:
        if not value:
            raise ValueError("target_stages must name at least one stage")
        if len(set(value)) != len(value):
            raise ValueError("target_stages contains duplicates")
        return sorted(value, key=STAGE_ORDER.__getitem__)

    def with_repository(self, name: str) -> DeploymentConfiguration:
        """Return a copy pointing at a different repository."""
        reference = RepositoryReference(name=name, template=self.repository.template)
        return self.model_copy(update={"repository": reference})


class RunOptions(ValueObject):
    """Operator-supplied options for a single deployment run."""

    dry_run: bool = False
    stage: str | None = None
    checkpoint: str | None = None
    deployment_id: str | None = None
    max_retries: int = 2
    force: bool = False
    skip_pre_checks: bool = False
    repository: str | None = None

    @property
    def single_stage(self) -> bool:
        return self.stage is not None
