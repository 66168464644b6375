"""Deployment state aggregate root with full state machine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field

from iac_orchestrator.domain.errors import InvalidStateTransitionError
from iac_orchestrator.domain.events.deployment_events import (
    CheckpointCreated,
    DeploymentCompleted,
    DeploymentFailed,
    DeploymentStarted,
    StageCompleted,
    StageFailed,
    StageStarted,
)
from iac_orchestrator.domain.models.base import AggregateRoot, utc_now, ValueObject
from iac_orchestrator.domain.models.stage import STAGE_ORDER, StageName, StageResult


class DeploymentStatus(str, Enum):
    """Deployment run lifecycle states."""

    INITIALIZING = "Initializing"
    RUNNING = "Running"
    COMPLETED = "Completed"
    COMPLETED_WITH_WARNINGS = "CompletedWithWarnings"
    PARTIALLY_COMPLETED = "PartiallyCompleted"
    DRY_RUN_COMPLETED = "DryRunCompleted"
    FAILED = "Failed"


TERMINAL_STATUSES: frozenset[DeploymentStatus] = frozenset({
    DeploymentStatus.COMPLETED,
    DeploymentStatus.COMPLETED_WITH_WARNINGS,
    DeploymentStatus.PARTIALLY_COMPLETED,
    DeploymentStatus.DRY_RUN_COMPLETED,
    DeploymentStatus.FAILED,
})

# State machine transitions
VALID_TRANSITIONS: dict[DeploymentStatus, set[DeploymentStatus]] = {
    DeploymentStatus.INITIALIZING: {DeploymentStatus.RUNNING, DeploymentStatus.FAILED},
    DeploymentStatus.RUNNING: {DeploymentStatus.RUNNING, *TERMINAL_STATUSES},
    DeploymentStatus.COMPLETED: set(),
    DeploymentStatus.COMPLETED_WITH_WARNINGS: set(),
    DeploymentStatus.PARTIALLY_COMPLETED: set(),
    DeploymentStatus.DRY_RUN_COMPLETED: set(),
    DeploymentStatus.FAILED: set(),
}


class CheckpointRef(ValueObject):
    """Pointer to a durably written checkpoint."""

    name: str
    deployment_id: str
    stage: StageName
    stage_order: int
    created_at: datetime = Field(default_factory=utc_now)


class ResumeSource(ValueObject):
    """Where a resumed run was seeded from."""

    deployment_id: str
    checkpoint: str


class DeploymentState(AggregateRoot):
    """The single mutable record of a deployment run's progress."""

    configuration_path: str
    configuration_name: str = ""
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None
    status: DeploymentStatus = DeploymentStatus.INITIALIZING
    current_stage: StageName | None = None
    completed_stages: list[StageName] = Field(default_factory=list)
    # Completed only because the run continued past their failure.
    failed_stages: list[StageName] = Field(default_factory=list)
    # Artifacts carried over from earlier runs without re-running the stage.
    inherited_stages: list[StageName] = Field(default_factory=list)
    checkpoints: dict[str, CheckpointRef] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    outputs: dict[str, str] = Field(default_factory=dict)
    failure_reason: str = ""
    resumed_from: ResumeSource | None = None
    dry_run: bool = False
    force: bool = False

    def _transition_to(self, new_status: DeploymentStatus) -> None:
        """Validate and execute state transition."""
        valid = VALID_TRANSITIONS.get(self.status, set())
        if new_status not in valid:
            raise InvalidStateTransitionError(
                f"Cannot transition from {self.status.value} to {new_status.value}. "
                f"Valid transitions: {sorted(s.value for s in valid)}"
            )
        self.status = new_status
        self.touch()

    def enter_stage(self, stage: StageName) -> None:
        """Move to ``Running:<stage>``."""
        first = self.status == DeploymentStatus.INITIALIZING
        self._transition_to(DeploymentStatus.RUNNING)
        self.current_stage = stage
        if first:
            self.add_event(DeploymentStarted(
                deployment_id=self.id,
                configuration_path=self.configuration_path,
                correlation_id=self.id,
            ))
        self.add_event(StageStarted(
            deployment_id=self.id,
            stage=stage.value,
            correlation_id=self.id,
        ))

    def record_success(self, result: StageResult) -> None:
        """Fold a successful stage result into the state."""
        self._require_current(result.stage)
        self.completed_stages.append(result.stage)
        self.outputs.update(result.outputs)
        for warning in result.warnings:
            self.warnings.append(f"{result.stage.value}: {warning}")
        self.touch()
        self.add_event(StageCompleted(
            deployment_id=self.id,
            stage=result.stage.value,
            correlation_id=self.id,
        ))

    def record_skip(self, result: StageResult) -> None:
        """Record a stage short-circuited by a dry run; it is not completed."""
        self._require_current(result.stage)
        for warning in result.warnings:
            self.warnings.append(f"{result.stage.value}: {warning}")
        self.touch()
        self.add_event(StageCompleted(
            deployment_id=self.id,
            stage=result.stage.value,
            skipped=True,
            correlation_id=self.id,
        ))

    def record_verification_failure(self, result: StageResult) -> None:
        """Verification ran to completion but its checks did not pass."""
        self._require_current(result.stage)
        self.completed_stages.append(result.stage)
        self.outputs.update(result.outputs)
        self.warnings.append(f"{result.stage.value}: verification failed: {result.error}")
        for warning in result.warnings:
            self.warnings.append(f"{result.stage.value}: {warning}")
        self.touch()
        self.add_event(StageCompleted(
            deployment_id=self.id,
            stage=result.stage.value,
            correlation_id=self.id,
        ))

    def record_failure(self, result: StageResult, continued: bool, as_warning: bool = False) -> None:
        """Record a failed stage.

        When the run continues past the failure the stage still joins
        ``completed_stages`` so that list stays an ordered prefix of the
        attempted stages; ``failed_stages`` marks it as having no artifacts.
        """
        self._require_current(result.stage)
        if continued:
            self.completed_stages.append(result.stage)
            self.failed_stages.append(result.stage)
        message = f"{result.stage.value}: {result.error}"
        if as_warning:
            self.warnings.append(message)
        else:
            self.errors.append(message)
        self.touch()
        self.add_event(StageFailed(
            deployment_id=self.id,
            stage=result.stage.value,
            error_message=result.error or "",
            continued=continued,
            correlation_id=self.id,
        ))

    def add_checkpoint(self, ref: CheckpointRef) -> None:
        self.checkpoints[ref.name] = ref
        self.touch()
        self.add_event(CheckpointCreated(
            deployment_id=self.id,
            checkpoint_name=ref.name,
            stage=ref.stage.value,
            correlation_id=self.id,
        ))

    def finish(self, status: DeploymentStatus) -> None:
        """Move to a non-failed terminal state."""
        if status == DeploymentStatus.FAILED:
            raise InvalidStateTransitionError("Use fail() to terminate a run as failed")
        self._transition_to(status)
        self.current_stage = None
        self.end_time = utc_now()
        self.add_event(DeploymentCompleted(
            deployment_id=self.id,
            status=status.value,
            correlation_id=self.id,
        ))

    def fail(self, reason: str) -> None:
        """Terminate the run as failed, keeping the stage that was running."""
        self.failure_reason = reason
        self._transition_to(DeploymentStatus.FAILED)
        self.end_time = utc_now()
        self.add_event(DeploymentFailed(
            deployment_id=self.id,
            error_message=reason,
            correlation_id=self.id,
        ))

    def _require_current(self, stage: StageName) -> None:
        if self.status != DeploymentStatus.RUNNING or self.current_stage != stage:
            raise InvalidStateTransitionError(
                f"Stage {stage.value} is not the running stage "
                f"(status={self.display_status})"
            )

    @property
    def display_status(self) -> str:
        """Status as shown to operators, e.g. ``Running:Apply``."""
        if self.status == DeploymentStatus.RUNNING and self.current_stage is not None:
            return f"{self.status.value}:{self.current_stage.value}"
        return self.status.value

    @property
    def is_terminal(self) -> bool:
        """Check if the run is in a terminal state."""
        return self.status in TERMINAL_STATUSES

    @property
    def artifact_stages(self) -> list[StageName]:
        """Stages whose artifacts this run holds, produced here or inherited."""
        produced = {s for s in self.completed_stages if s not in self.failed_stages}
        return sorted(produced | set(self.inherited_stages), key=STAGE_ORDER.__getitem__)


class Checkpoint(ValueObject):
    """Immutable snapshot of deployment state taken after a stage succeeded."""

    name: str
    deployment_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    stage: StageName
    stage_order: int
    state: DeploymentState


class DeploymentResult(ValueObject):
    """Aggregate returned to the caller at the end of a run."""

    deployment_id: str
    success: bool
    status: DeploymentStatus
    stage_results: list[StageResult] = Field(default_factory=list)
    completed_stages: list[StageName] = Field(default_factory=list)
    outputs: dict[str, str] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    failure_reason: str = ""
    start_time: datetime
    end_time: datetime
    resumed_from: ResumeSource | None = None

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()
