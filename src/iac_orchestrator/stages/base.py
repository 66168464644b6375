"""Base stage handler implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import ClassVar, TypeVar

import structlog

from iac_orchestrator.domain.errors import StageExecutionError
from iac_orchestrator.domain.models.provisioning import ToolResult
from iac_orchestrator.domain.models.stage import StageConfig, StageName, StageOutcome
from iac_orchestrator.domain.services.context import DeploymentContext


logger = structlog.get_logger(__name__)

ConfigT = TypeVar("ConfigT", bound=StageConfig)


class StageHandler(ABC):
    """Base class for the handlers behind each pipeline stage.

    Retries, timeouts and result bookkeeping belong to the stage executor; a
    handler only performs one attempt and raises on failure.
    """

    stage: ClassVar[StageName]
    skip_on_dry_run: ClassVar[bool] = False

    @abstractmethod
    async def run(self, context: DeploymentContext, config: StageConfig) -> StageOutcome:
        """Execute one attempt of the stage."""

    def _expect_config(self, config: StageConfig, expected: type[ConfigT]) -> ConfigT:
        if not isinstance(config, expected):
            raise StageExecutionError(
                self.stage.value,
                f"expected {expected.__name__}, got {type(config).__name__}",
            )
        return config

    async def _run_phase(self, name: str, call: Awaitable[ToolResult]) -> str:
        """Run a provisioning tool phase and raise on failure."""
        result = await call
        if not result.success:
            raise StageExecutionError(self.stage.value, f"{name} failed: {result.output.strip()}")
        logger.debug("stage_phase_completed", stage=self.stage.value, phase=name)
        return result.output
