"""Stage domain models: the fixed pipeline, per-stage configs and results."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import Field

from iac_orchestrator.domain.models.base import ValueObject


class StageName(str, Enum):
    """The fixed deployment pipeline stages."""

    PREPARE = "Prepare"
    VALIDATE = "Validate"
    PLAN = "Plan"
    APPLY = "Apply"
    VERIFY = "Verify"

    @classmethod
    def _missing_(cls, value: object) -> StageName | None:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None


STAGE_ORDER: dict[StageName, int] = {
    StageName.PREPARE: 1,
    StageName.VALIDATE: 2,
    StageName.PLAN: 3,
    StageName.APPLY: 4,
    StageName.VERIFY: 5,
}

# A single-stage run needs artifacts produced by these earlier stages.
UPSTREAM_REQUIREMENTS: dict[StageName, StageName] = {
    StageName.APPLY: StageName.PLAN,
    StageName.VERIFY: StageName.APPLY,
}


def checkpoint_name(stage: StageName) -> str:
    """Checkpoint names are derived from stage names, unique per plan."""
    return f"after-{stage.value}"


class StageConfig(ValueObject):
    """Settings shared by every stage type."""

    required: bool = True
    create_checkpoint: bool = False
    timeout_seconds: int = Field(default=1800, ge=1)

    model_config = {"frozen": True, "extra": "forbid"}


class PrepareConfig(StageConfig):
    stage: Literal["Prepare"] = "Prepare"
    refresh_repository: bool = True
    copy_template: bool = True


class ValidateConfig(StageConfig):
    stage: Literal["Validate"] = "Validate"
    required_variables: list[str] = Field(default_factory=list)
    run_tool_validation: bool = True


class PlanConfig(StageConfig):
    stage: Literal["Plan"] = "Plan"
    create_checkpoint: bool = True
    refresh: bool = True
    targets: list[str] = Field(default_factory=list)


class ApplyConfig(StageConfig):
    stage: Literal["Apply"] = "Apply"
    create_checkpoint: bool = True
    parallelism: int = Field(default=10, ge=1, le=256)


class VerifyConfig(StageConfig):
    stage: Literal["Verify"] = "Verify"
    expected_outputs: list[str] = Field(default_factory=list)
    expected_values: dict[str, str] = Field(default_factory=dict)
    compare_live_outputs: bool = True


AnyStageConfig = Annotated[
    Union[PrepareConfig, ValidateConfig, PlanConfig, ApplyConfig, VerifyConfig],
    Field(discriminator="stage"),
]


class StageSettings(ValueObject):
    """Per-stage configuration block of a deployment descriptor."""

    prepare: PrepareConfig = Field(default_factory=PrepareConfig)
    validate_: ValidateConfig = Field(default_factory=ValidateConfig, alias="validate")
    plan: PlanConfig = Field(default_factory=PlanConfig)
    apply: ApplyConfig = Field(default_factory=ApplyConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    def for_stage(self, stage: StageName) -> StageConfig:
        """Return the config block for a stage."""
        return {
            StageName.PREPARE: self.prepare,
            StageName.VALIDATE: self.validate_,
            StageName.PLAN: self.plan,
            StageName.APPLY: self.apply,
            StageName.VERIFY: self.verify,
        }[stage]


class StageDefinition(ValueObject):
    """A stage as placed in a deployment plan."""

    order: int
    required: bool = True
    create_checkpoint: bool = False
    config: AnyStageConfig


class StageOutcome(ValueObject):
    """What a stage handler returns on success."""

    outputs: dict[str, str] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)


class StageResult(ValueObject):
    """Result of executing a single stage."""

    stage: StageName
    success: bool
    duration_seconds: float = 0.0
    error: str | None = None
    error_type: str | None = None
    outputs: dict[str, str] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    attempts: int = 0
    skipped: bool = False
    verification_failed: bool = False

    def summary(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "success": self.success,
            "skipped": self.skipped,
            "attempts": self.attempts,
            "duration_seconds": round(self.duration_seconds, 3),
        }
