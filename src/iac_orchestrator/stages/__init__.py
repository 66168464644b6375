"""Stage handlers for the deployment pipeline."""

from __future__ import annotations

from iac_orchestrator.domain.models.stage import StageName
from iac_orchestrator.stages.base import StageHandler
from iac_orchestrator.stages.preparation import PrepareStage, ValidateStage
from iac_orchestrator.stages.provisioning import ApplyStage, PlanStage
from iac_orchestrator.stages.verification import VerifyStage


def default_handlers() -> dict[StageName, StageHandler]:
    """One handler per stage of the fixed pipeline."""
    handlers: list[StageHandler] = [
        PrepareStage(),
        ValidateStage(),
        PlanStage(),
        ApplyStage(),
        VerifyStage(),
    ]
    return {handler.stage: handler for handler in handlers}


__all__ = [
    "ApplyStage",
    "PlanStage",
    "PrepareStage",
    "StageHandler",
    "ValidateStage",
    "VerifyStage",
    "default_handlers",
]
