"""Deployment plan: the validated, ordered set of stages for one run."""

from __future__ import annotations

from pydantic import Field, model_validator

from iac_orchestrator.domain.models.base import generate_id, ValueObject
from iac_orchestrator.domain.models.stage import StageDefinition, StageName


class DeploymentPlan(ValueObject):
    """Ordered map of stage name to definition. Immutable once built."""

    plan_id: str = Field(default_factory=generate_id)
    configuration_name: str = ""
    repository_name: str = ""
    repository_path: str = ""
    template_path: str = ""
    stages: dict[StageName, StageDefinition] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_total_order(self) -> DeploymentPlan:
        orders = [definition.order for definition in self.stages.values()]
        if len(orders) != len(set(orders)):
            raise ValueError("stage orders must be unique")
        if orders != sorted(orders):
            raise ValueError("stages must be listed in execution order")
        return self

    @property
    def sequence(self) -> list[StageName]:
        """Stage names in execution order."""
        return list(self.stages)

    @property
    def stage_count(self) -> int:
        return len(self.stages)

    def get_stage(self, stage: StageName) -> StageDefinition | None:
        return self.stages.get(stage)

    def remaining_after(self, completed: list[StageName]) -> list[StageName]:
        """Stages still to run once ``completed`` are excluded."""
        done = set(completed)
        return [stage for stage in self.sequence if stage not in done]
