"""Verify stage: post-deployment checks on the recorded and live outputs."""

from __future__ import annotations

import structlog

from iac_orchestrator.domain.errors import VerificationFailure
from iac_orchestrator.domain.models.stage import StageConfig, StageName, StageOutcome, VerifyConfig
from iac_orchestrator.domain.services.context import DeploymentContext
from iac_orchestrator.stages.base import StageHandler


logger = structlog.get_logger(__name__)


class VerifyStage(StageHandler):
    """Compares expected outputs against what Apply recorded and what is live.

    Raises :class:`VerificationFailure` listing every problem found, which
    degrades the run's status instead of failing it.
    """

    stage = StageName.VERIFY
    skip_on_dry_run = True

    async def run(self, context: DeploymentContext, config: StageConfig) -> StageOutcome:
        config = self._expect_config(config, VerifyConfig)
        recorded = context.outputs
        live: dict[str, str] = {}
        if config.compare_live_outputs:
            live = await context.provisioning_tool.outputs(str(context.workspace))

        problems: list[str] = []
        for name in config.expected_outputs:
            if name not in recorded and name not in live:
                problems.append(f"expected output {name!r} is missing")

        for name, expected in config.expected_values.items():
            actual = live.get(name, recorded.get(name))
            if actual != expected:
                problems.append(f"output {name!r} is {actual!r}, expected {expected!r}")

        for name, value in live.items():
            if name in recorded and recorded[name] != value:
                problems.append(f"output {name!r} drifted from {recorded[name]!r} to {value!r}")

        if problems:
            logger.warning(
                "verification_failed",
                deployment_id=context.deployment_id,
                problem_count=len(problems),
            )
            raise VerificationFailure(problems)

        logger.info("verification_passed", deployment_id=context.deployment_id, checked=len(live))
        return StageOutcome(outputs={"verified": "true"})
