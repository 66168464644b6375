"""Stage executor: runs one stage with retries, backoff and timeouts."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from iac_orchestrator.domain.errors import StageExecutionError, VerificationFailure
from iac_orchestrator.domain.models.plan import DeploymentPlan
from iac_orchestrator.domain.models.stage import StageName, StageResult
from iac_orchestrator.domain.services.context import DeploymentContext
from iac_orchestrator.infrastructure.observability.metrics import (
    STAGE_DURATION,
    STAGE_EXECUTIONS_TOTAL,
    STAGE_RETRIES,
)
from iac_orchestrator.infrastructure.observability.tracing import traced
from iac_orchestrator.stages.base import StageHandler


logger = structlog.get_logger(__name__)


class StageExecutor:
    """Executes a single plan stage and reports a :class:`StageResult`.

    Failures never escape as exceptions; they are folded into the result so
    the orchestrator decides whether the run continues.
    """

    def __init__(
        self,
        handlers: dict[StageName, StageHandler],
        retry_base_delay: float = 2.0,
        retry_max_delay: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._handlers = handlers
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after failed attempt number ``attempt``."""
        return min(self._retry_base_delay * 2 ** (attempt - 1), self._retry_max_delay)

    async def execute(
        self,
        plan: DeploymentPlan,
        stage: StageName,
        context: DeploymentContext,
        dry_run: bool = False,
        max_retries: int = 0,
    ) -> StageResult:
        definition = plan.get_stage(stage)
        if definition is None:
            return StageResult(
                stage=stage,
                success=False,
                error=f"stage {stage.value} is not part of plan {plan.plan_id}",
                error_type="PlanValidationError",
            )

        handler = self._handlers[stage]
        if dry_run and handler.skip_on_dry_run:
            logger.info("stage_skipped_dry_run", stage=stage.value, deployment_id=context.deployment_id)
            STAGE_EXECUTIONS_TOTAL.labels(stage=stage.value, result="skipped").inc()
            return StageResult(stage=stage, success=True, skipped=True)

        timeout = definition.config.timeout_seconds
        start = time.monotonic()
        error = ""
        error_type = ""
        attempt = 0

        for attempt in range(1, max_retries + 2):
            with traced(
                "stage.execute",
                stage=stage.value,
                attempt=attempt,
                deployment_id=context.deployment_id,
            ) as span:
                try:
                    outcome = await asyncio.wait_for(
                        handler.run(context, definition.config), timeout=timeout
                    )
                except VerificationFailure as e:
                    span.set_attribute("stage.result", "verification_failed")
                    return self._finish(StageResult(
                        stage=stage,
                        success=False,
                        duration_seconds=time.monotonic() - start,
                        error=str(e),
                        error_type=type(e).__name__,
                        attempts=attempt,
                        verification_failed=True,
                    ))
                except asyncio.TimeoutError:
                    error = f"timed out after {timeout}s"
                    error_type = "TimeoutError"
                except StageExecutionError as e:
                    error = e.message
                    error_type = type(e).__name__
                except Exception as e:
                    error = str(e) or type(e).__name__
                    error_type = type(e).__name__
                else:
                    span.set_attribute("stage.result", "success")
                    return self._finish(StageResult(
                        stage=stage,
                        success=True,
                        duration_seconds=time.monotonic() - start,
                        outputs=outcome.outputs,
                        warnings=outcome.warnings,
                        attempts=attempt,
                    ))
                span.set_attribute("stage.result", "failure")

            if attempt <= max_retries:
                delay = self.backoff_delay(attempt)
                STAGE_RETRIES.labels(stage=stage.value).inc()
                logger.warning(
                    "stage_attempt_failed",
                    stage=stage.value,
                    attempt=attempt,
                    retry_in=delay,
                    error=error,
                )
                await self._sleep(delay)

        return self._finish(StageResult(
            stage=stage,
            success=False,
            duration_seconds=time.monotonic() - start,
            error=error,
            error_type=error_type,
            attempts=attempt,
        ))

    @staticmethod
    def _finish(result: StageResult) -> StageResult:
        if result.verification_failed:
            outcome = "verification_failed"
        else:
            outcome = "success" if result.success else "failure"
        STAGE_EXECUTIONS_TOTAL.labels(stage=result.stage.value, result=outcome).inc()
        STAGE_DURATION.labels(stage=result.stage.value).observe(result.duration_seconds)
        log = logger.info if result.success else logger.error
        log(
            "stage_finished",
            stage=result.stage.value,
            result=outcome,
            attempts=result.attempts,
            duration_seconds=round(result.duration_seconds, 3),
            error=result.error,
        )
        return result
