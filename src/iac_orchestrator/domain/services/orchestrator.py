"""Deployment orchestrator: drives one run through the stage pipeline."""

from __future__ import annotations

from pathlib import Path

import structlog

from iac_orchestrator.domain.errors import CheckpointNotFoundError, PlanValidationError
from iac_orchestrator.domain.models.base import AggregateRoot, utc_now
from iac_orchestrator.domain.models.configuration import DeploymentConfiguration, RunOptions
from iac_orchestrator.domain.models.deployment import (
    Checkpoint,
    CheckpointRef,
    DeploymentResult,
    DeploymentState,
    DeploymentStatus,
    ResumeSource,
)
from iac_orchestrator.domain.models.plan import DeploymentPlan
from iac_orchestrator.domain.models.stage import StageName, StageResult, checkpoint_name
from iac_orchestrator.domain.ports.repositories import StateStore
from iac_orchestrator.domain.ports.services import (
    ConfigurationResolver,
    EventPublisher,
    ProvisioningTool,
)
from iac_orchestrator.domain.services.context import CancellationToken, DeploymentContext
from iac_orchestrator.domain.services.planner import DeploymentPlanner
from iac_orchestrator.domain.services.repository_cache import RepositoryCacheService
from iac_orchestrator.domain.services.stage_executor import StageExecutor
from iac_orchestrator.infrastructure.observability.metrics import (
    CHECKPOINTS_TOTAL,
    DEPLOYMENT_DURATION,
    DEPLOYMENTS_TOTAL,
)


logger = structlog.get_logger(__name__)


class DeploymentOrchestrator:
    """Runs a deployment descriptor end to end.

    Configuration and plan problems raise before anything is persisted. From
    then on the state is saved before each stage starts and after it
    finishes, checkpoints are written before the next stage begins, and the
    aggregate's events are published after every save.
    """

    def __init__(
        self,
        resolver: ConfigurationResolver,
        planner: DeploymentPlanner,
        executor: StageExecutor,
        state_store: StateStore,
        repository_cache: RepositoryCacheService,
        provisioning_tool: ProvisioningTool,
        event_publisher: EventPublisher,
        work_root: Path,
    ) -> None:
        self._resolver = resolver
        self._planner = planner
        self._executor = executor
        self._state_store = state_store
        self._repository_cache = repository_cache
        self._provisioning_tool = provisioning_tool
        self._event_publisher = event_publisher
        self._work_root = work_root

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _publish_events(self, aggregate: AggregateRoot) -> None:
        """Collect and publish all pending domain events from an aggregate."""
        events = aggregate.collect_events()
        if events:
            await self._event_publisher.publish_batch(
                [(event.event_type, event.model_dump(mode="json")) for event in events]
            )

    async def _persist(self, state: DeploymentState) -> None:
        await self._state_store.save(state)
        await self._publish_events(state)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def start_deployment(
        self,
        config_path: str,
        options: RunOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> DeploymentResult:
        """Load, plan and execute a deployment.

        Raises ConfigurationError or PlanValidationError before any state is
        written; every other failure is reported in the returned result.
        """
        options = options or RunOptions()
        cancel_token = cancel_token or CancellationToken()

        configuration = self._resolver.load(config_path)
        checkpoint = await self._load_resume_checkpoint(configuration, options)
        prior_state = None
        if checkpoint is not None:
            prior_state = checkpoint.state
        elif options.single_stage:
            prior_state = await self._load_prior_state(configuration, options)

        plan = await self._planner.build_plan(configuration, options, prior_state=prior_state)
        state = self._new_state(configuration, options, checkpoint, prior_state)

        remaining = plan.remaining_after(state.completed_stages)
        if not remaining:
            raise PlanValidationError(
                f"Nothing left to run: every planned stage completed before checkpoint "
                f"{options.checkpoint}"
            )

        context = DeploymentContext(
            deployment_id=state.id,
            configuration=configuration,
            plan=plan,
            options=options,
            state=state,
            work_dir=self._work_root / state.id,
            provisioning_tool=self._provisioning_tool,
            repository_cache=self._repository_cache,
            cancel_token=cancel_token,
        )

        with structlog.contextvars.bound_contextvars(deployment_id=state.id):
            logger.info(
                "deployment_started",
                configuration=configuration.name,
                stages=[stage.value for stage in remaining],
                dry_run=options.dry_run,
                force=options.force,
                resumed_from=options.checkpoint,
            )
            results = await self._run_stages(plan, remaining, state, context, options, cancel_token)
            result = self._build_result(state, results)

        DEPLOYMENTS_TOTAL.labels(
            status=result.status.value, dry_run=str(options.dry_run).lower()
        ).inc()
        DEPLOYMENT_DURATION.labels(status=result.status.value).observe(result.duration_seconds)
        logger.info(
            "deployment_finished",
            deployment_id=state.id,
            status=result.status.value,
            success=result.success,
            completed=[stage.value for stage in result.completed_stages],
            errors=len(result.errors),
            warnings=len(result.warnings),
        )
        return result

    async def _run_stages(
        self,
        plan: DeploymentPlan,
        stages: list[StageName],
        state: DeploymentState,
        context: DeploymentContext,
        options: RunOptions,
        cancel_token: CancellationToken,
    ) -> list[StageResult]:
        results: list[StageResult] = []

        for stage in stages:
            if cancel_token.cancelled:
                logger.warning("deployment_cancelled", before_stage=stage.value)
                state.fail(f"Cancelled before {stage.value}: {cancel_token.reason}")
                await self._persist(state)
                return results

            definition = plan.stages[stage]
            state.enter_stage(stage)
            await self._persist(state)

            result = await self._executor.execute(
                plan, stage, context, dry_run=options.dry_run, max_retries=options.max_retries
            )
            results.append(result)

            if result.skipped:
                state.record_skip(result)
            elif result.success:
                state.record_success(result)
            elif result.verification_failed:
                state.record_verification_failure(result)
            elif not definition.required:
                state.record_failure(result, continued=True, as_warning=True)
            elif options.force:
                logger.warning("stage_failure_forced", stage=stage.value, error=result.error)
                state.record_failure(result, continued=True)
            else:
                state.record_failure(result, continued=False)
                state.fail(f"{stage.value}: {result.error}")
                await self._persist(state)
                return results

            await self._persist(state)

            if definition.create_checkpoint and result.success and not result.skipped:
                await self._create_checkpoint(state, stage, definition.order)

        state.finish(self._terminal_status(plan, state, options))
        await self._persist(state)
        return results

    async def _create_checkpoint(self, state: DeploymentState, stage: StageName, order: int) -> None:
        name = checkpoint_name(stage)
        checkpoint = await self._state_store.save_checkpoint(state.id, name, state, stage, order)
        state.add_checkpoint(CheckpointRef(
            name=name,
            deployment_id=state.id,
            stage=stage,
            stage_order=order,
            created_at=checkpoint.timestamp,
        ))
        await self._persist(state)
        CHECKPOINTS_TOTAL.labels(stage=stage.value).inc()

    @staticmethod
    def _terminal_status(
        plan: DeploymentPlan, state: DeploymentState, options: RunOptions
    ) -> DeploymentStatus:
        if options.dry_run:
            return DeploymentStatus.DRY_RUN_COMPLETED
        if StageName.VERIFY in plan.stages:
            if state.errors or state.warnings:
                return DeploymentStatus.COMPLETED_WITH_WARNINGS
            return DeploymentStatus.COMPLETED
        return DeploymentStatus.PARTIALLY_COMPLETED

    # ------------------------------------------------------------------
    # Resume and prior runs
    # ------------------------------------------------------------------

    async def _load_resume_checkpoint(
        self, configuration: DeploymentConfiguration, options: RunOptions
    ) -> Checkpoint | None:
        if options.checkpoint is None:
            return None

        deployment_id = options.deployment_id
        if deployment_id is None:
            latest = await self._state_store.find_latest(configuration.source_path)
            if latest is None:
                raise PlanValidationError(
                    f"No earlier deployment of {configuration.source_path} to resume from"
                )
            deployment_id = latest.id

        try:
            return await self._state_store.load_checkpoint(deployment_id, options.checkpoint)
        except (CheckpointNotFoundError, ValueError) as e:
            raise PlanValidationError(f"Cannot resume: {e}") from e

    async def _load_prior_state(
        self, configuration: DeploymentConfiguration, options: RunOptions
    ) -> DeploymentState | None:
        if options.deployment_id is None:
            return await self._state_store.find_latest(configuration.source_path)
        try:
            prior = await self._state_store.load(options.deployment_id)
        except ValueError as e:
            raise PlanValidationError(str(e)) from e
        if prior is None:
            raise PlanValidationError(f"Deployment {options.deployment_id} not found")
        return prior

    @staticmethod
    def _new_state(
        configuration: DeploymentConfiguration,
        options: RunOptions,
        checkpoint: Checkpoint | None,
        prior_state: DeploymentState | None,
    ) -> DeploymentState:
        state = DeploymentState(
            configuration_path=configuration.source_path,
            configuration_name=configuration.name,
            dry_run=options.dry_run,
            force=options.force,
        )
        if checkpoint is not None:
            snapshot = checkpoint.state
            state.completed_stages = list(snapshot.completed_stages)
            state.failed_stages = list(snapshot.failed_stages)
            state.inherited_stages = list(snapshot.inherited_stages)
            state.outputs = dict(snapshot.outputs)
            state.checkpoints = {
                **snapshot.checkpoints,
                checkpoint.name: CheckpointRef(
                    name=checkpoint.name,
                    deployment_id=checkpoint.deployment_id,
                    stage=checkpoint.stage,
                    stage_order=checkpoint.stage_order,
                    created_at=checkpoint.timestamp,
                ),
            }
            state.resumed_from = ResumeSource(
                deployment_id=checkpoint.deployment_id, checkpoint=checkpoint.name
            )
        elif prior_state is not None:
            # Single-stage runs consume the artifacts of the earlier run and
            # pass them on to the next one.
            state.outputs = dict(prior_state.outputs)
            state.inherited_stages = prior_state.artifact_stages
        return state

    @staticmethod
    def _build_result(state: DeploymentState, results: list[StageResult]) -> DeploymentResult:
        return DeploymentResult(
            deployment_id=state.id,
            success=state.status != DeploymentStatus.FAILED and not state.errors,
            status=state.status,
            stage_results=results,
            completed_stages=list(state.completed_stages),
            outputs=dict(state.outputs),
            errors=list(state.errors),
            warnings=list(state.warnings),
            failure_reason=state.failure_reason,
            start_time=state.start_time,
            end_time=state.end_time or utc_now(),
            resumed_from=state.resumed_from,
        )
