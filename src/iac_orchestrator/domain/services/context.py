"""Per-run context handed to stage handlers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from iac_orchestrator.domain.errors import StageExecutionError
from iac_orchestrator.domain.models.configuration import DeploymentConfiguration, RunOptions
from iac_orchestrator.domain.models.deployment import DeploymentState
from iac_orchestrator.domain.models.plan import DeploymentPlan
from iac_orchestrator.domain.models.stage import StageName
from iac_orchestrator.domain.ports.services import ProvisioningTool

if TYPE_CHECKING:
    from iac_orchestrator.domain.services.repository_cache import RepositoryCacheService


class CancellationToken:
    """Operator cancellation flag, honoured between stages."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelled by operator") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class DeploymentContext:
    """Everything a stage needs for one run.

    ``state`` is the live aggregate; handlers read outputs from it and never
    mutate it.
    """

    deployment_id: str
    configuration: DeploymentConfiguration
    plan: DeploymentPlan
    options: RunOptions
    state: DeploymentState
    work_dir: Path
    provisioning_tool: ProvisioningTool
    repository_cache: RepositoryCacheService
    cancel_token: CancellationToken = field(default_factory=CancellationToken)

    @property
    def outputs(self) -> dict[str, str]:
        return self.state.outputs

    @property
    def workspace(self) -> Path:
        """Working copy prepared for this deployment, or the cached template."""
        prepared = self.outputs.get("workspace")
        return Path(prepared) if prepared else Path(self.plan.template_path)

    def require_output(self, stage: StageName, key: str) -> str:
        value = self.outputs.get(key)
        if not value:
            raise StageExecutionError(stage.value, f"required output {key!r} is not available")
        return value
