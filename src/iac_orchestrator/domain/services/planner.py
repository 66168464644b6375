"""Deployment planner: turns a configuration and run options into a plan."""

from __future__ import annotations

import structlog
from pydantic import ValidationError

from iac_orchestrator.domain.errors import OrchestratorError, PlanValidationError
from iac_orchestrator.domain.models.configuration import (
    MAX_RETRIES,
    DeploymentConfiguration,
    RunOptions,
)
from iac_orchestrator.domain.models.deployment import DeploymentState
from iac_orchestrator.domain.models.plan import DeploymentPlan
from iac_orchestrator.domain.models.stage import (
    STAGE_ORDER,
    UPSTREAM_REQUIREMENTS,
    StageDefinition,
    StageName,
)
from iac_orchestrator.domain.services.repository_cache import RepositoryCacheService


logger = structlog.get_logger(__name__)


class DeploymentPlanner:
    """Builds an immutable, totally ordered plan or refuses the whole run."""

    def __init__(self, repository_cache: RepositoryCacheService, max_stage_timeout: int = 86400) -> None:
        self._repository_cache = repository_cache
        self._max_stage_timeout = max_stage_timeout

    async def build_plan(
        self,
        configuration: DeploymentConfiguration,
        options: RunOptions,
        prior_state: DeploymentState | None = None,
    ) -> DeploymentPlan:
        if not 0 <= options.max_retries <= MAX_RETRIES:
            raise PlanValidationError(
                f"max_retries must be between 0 and {MAX_RETRIES}, got {options.max_retries}"
            )

        stages = self._select_stages(configuration, options, prior_state)

        definitions: dict[StageName, StageDefinition] = {}
        for stage in stages:
            config = configuration.stages.for_stage(stage)
            if not 1 <= config.timeout_seconds <= self._max_stage_timeout:
                raise PlanValidationError(
                    f"{stage.value}: timeout must be between 1 and "
                    f"{self._max_stage_timeout} seconds, got {config.timeout_seconds}"
                )
            definitions[stage] = StageDefinition(
                order=STAGE_ORDER[stage],
                required=config.required,
                create_checkpoint=config.create_checkpoint,
                config=config,
            )

        repository_name = options.repository or configuration.repository.name
        try:
            repository_path = await self._repository_cache.resolve(repository_name)
            template_path = await self._repository_cache.resolve_template(
                repository_name, configuration.repository.template
            )
        except OrchestratorError as e:
            raise PlanValidationError(f"Repository {repository_name} cannot be resolved: {e}") from e

        try:
            plan = DeploymentPlan(
                configuration_name=configuration.name,
                repository_name=repository_name,
                repository_path=str(repository_path),
                template_path=str(template_path),
                stages=definitions,
            )
        except ValidationError as e:
            raise PlanValidationError(f"Invalid stage ordering: {e}") from e

        logger.info(
            "deployment_plan_built",
            plan_id=plan.plan_id,
            configuration=configuration.name,
            repository=repository_name,
            stages=[stage.value for stage in plan.sequence],
        )
        return plan

    @staticmethod
    def _select_stages(
        configuration: DeploymentConfiguration,
        options: RunOptions,
        prior_state: DeploymentState | None,
    ) -> list[StageName]:
        if options.stage is None:
            return list(configuration.target_stages)

        try:
            stage = StageName(options.stage)
        except ValueError:
            raise PlanValidationError(
                f"Unknown stage {options.stage!r}; expected one of "
                f"{[s.value for s in StageName]}"
            ) from None

        if stage not in configuration.target_stages:
            raise PlanValidationError(
                f"Stage {stage.value} is not a target stage of {configuration.name}"
            )

        upstream = UPSTREAM_REQUIREMENTS.get(stage)
        if upstream is not None and (
            prior_state is None or upstream not in prior_state.artifact_stages
        ):
            raise PlanValidationError(
                f"Stage {stage.value} needs the artifacts of a completed {upstream.value} "
                "stage from an earlier run of this configuration"
            )
        return [stage]
