"""Plan and Apply stages driving the provisioning tool."""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from iac_orchestrator.domain.errors import StageExecutionError
from iac_orchestrator.domain.models.stage import (
    ApplyConfig,
    PlanConfig,
    StageConfig,
    StageName,
    StageOutcome,
)
from iac_orchestrator.domain.services.context import DeploymentContext
from iac_orchestrator.infrastructure.persistence.files import atomic_write_text
from iac_orchestrator.stages.base import StageHandler


logger = structlog.get_logger(__name__)

VAR_FILE_NAME = "deployment.tfvars.json"
PLAN_FILE_NAME = "deployment.tfplan"


class PlanStage(StageHandler):
    """Writes the variable file and produces a saved plan."""

    stage = StageName.PLAN

    async def run(self, context: DeploymentContext, config: StageConfig) -> StageOutcome:
        config = self._expect_config(config, PlanConfig)
        tool = context.provisioning_tool
        workspace = str(context.workspace)

        if context.outputs.get("initialized") != "true":
            await self._run_phase("init", tool.init(workspace))

        context.work_dir.mkdir(parents=True, exist_ok=True)
        var_file = context.work_dir / VAR_FILE_NAME
        atomic_write_text(var_file, json.dumps(context.configuration.variables, indent=2, default=str))
        plan_file = context.work_dir / PLAN_FILE_NAME

        result = await tool.plan(
            workspace,
            str(var_file),
            str(plan_file),
            refresh=config.refresh,
            targets=list(config.targets),
        )
        if not result.success:
            raise StageExecutionError(self.stage.value, f"plan failed: {result.output.strip()}")

        logger.info(
            "plan_created",
            deployment_id=context.deployment_id,
            has_changes=result.has_changes,
            summary=result.summary,
        )
        warnings = [] if result.has_changes else ["plan contains no changes"]
        return StageOutcome(
            outputs={
                "plan_file": result.plan_file or str(plan_file),
                "plan_has_changes": str(result.has_changes).lower(),
            },
            warnings=warnings,
        )


class ApplyStage(StageHandler):
    """Applies the saved plan. The only stage that changes infrastructure."""

    stage = StageName.APPLY
    skip_on_dry_run = True

    async def run(self, context: DeploymentContext, config: StageConfig) -> StageOutcome:
        config = self._expect_config(config, ApplyConfig)
        plan_file = context.require_output(self.stage, "plan_file")
        if not Path(plan_file).is_file():
            raise StageExecutionError(self.stage.value, f"saved plan {plan_file} no longer exists")

        result = await context.provisioning_tool.apply(
            str(context.workspace), plan_file, parallelism=config.parallelism
        )
        if not result.success:
            raise StageExecutionError(self.stage.value, f"apply failed: {result.output.strip()}")

        logger.info(
            "apply_completed",
            deployment_id=context.deployment_id,
            summary=result.summary,
            output_count=len(result.outputs),
        )
        return StageOutcome(outputs=dict(result.outputs))
