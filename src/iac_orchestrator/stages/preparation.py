"""Prepare and Validate stages."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import structlog

from iac_orchestrator.domain.errors import CloneFailedError, StageExecutionError
from iac_orchestrator.domain.models.stage import (
    PrepareConfig,
    StageConfig,
    StageName,
    StageOutcome,
    ValidateConfig,
)
from iac_orchestrator.domain.services.context import DeploymentContext
from iac_orchestrator.stages.base import StageHandler


logger = structlog.get_logger(__name__)

# Left behind by git and by earlier tool runs inside the template directory.
COPY_IGNORE = shutil.ignore_patterns(".git", ".terraform", "*.tfstate", "*.tfstate.backup")


class PrepareStage(StageHandler):
    """Refreshes the repository mirror and stages a private working copy."""

    stage = StageName.PREPARE

    async def run(self, context: DeploymentContext, config: StageConfig) -> StageOutcome:
        config = self._expect_config(config, PrepareConfig)
        warnings: list[str] = []
        pre_checks = not context.options.skip_pre_checks

        if config.refresh_repository and pre_checks:
            warnings.extend(await self._refresh_repository(context))

        if pre_checks:
            version = await context.provisioning_tool.version()
            logger.info("provisioning_tool_available", version=version)

        template = Path(context.plan.template_path)
        if not template.is_dir():
            raise StageExecutionError(self.stage.value, f"template directory {template} does not exist")

        if not config.copy_template:
            return StageOutcome(outputs={"workspace": str(template)}, warnings=warnings)

        workspace = context.work_dir / "workspace"
        await asyncio.to_thread(
            shutil.copytree, template, workspace, ignore=COPY_IGNORE, dirs_exist_ok=True
        )
        logger.info(
            "workspace_prepared",
            deployment_id=context.deployment_id,
            template=str(template),
            workspace=str(workspace),
        )
        return StageOutcome(outputs={"workspace": str(workspace)}, warnings=warnings)

    async def _refresh_repository(self, context: DeploymentContext) -> list[str]:
        """Sync the mirror; a failed refresh of an existing copy only warns."""
        name = context.plan.repository_name
        try:
            await context.repository_cache.sync(name)
        except CloneFailedError as e:
            if not Path(context.plan.repository_path).is_dir():
                raise
            logger.warning("repository_refresh_failed_using_cache", repository=name, error=str(e))
            return [f"repository refresh failed, using cached copy: {e}"]
        return []


class ValidateStage(StageHandler):
    """Checks required variables and runs the tool's own validation."""

    stage = StageName.VALIDATE

    async def run(self, context: DeploymentContext, config: StageConfig) -> StageOutcome:
        config = self._expect_config(config, ValidateConfig)
        variables = context.configuration.variables
        missing = [name for name in config.required_variables if variables.get(name) in (None, "")]
        if missing:
            raise StageExecutionError(
                self.stage.value, f"missing required variables: {', '.join(missing)}"
            )

        workspace = str(context.workspace)
        await self._run_phase("init", context.provisioning_tool.init(workspace))

        warnings: list[str] = []
        if config.run_tool_validation:
            await self._run_phase("validate", context.provisioning_tool.validate(workspace))
        else:
            warnings.append("provisioning tool validation disabled")
        return StageOutcome(outputs={"initialized": "true"}, warnings=warnings)
