"""Deployment and repository domain events."""

from __future__ import annotations

from iac_orchestrator.domain.models.base import DomainEvent


class DeploymentStarted(DomainEvent):
    """Emitted when the first stage of a run begins."""

    deployment_id: str
    configuration_path: str
    event_type: str = "deployment.started"


class StageStarted(DomainEvent):
    """Emitted when a stage transitions to running."""

    deployment_id: str
    stage: str
    event_type: str = "deployment.stage_started"


class StageCompleted(DomainEvent):
    """Emitted when a stage succeeds (or is skipped by a dry run)."""

    deployment_id: str
    stage: str
    skipped: bool = False
    event_type: str = "deployment.stage_completed"


class StageFailed(DomainEvent):
    """Emitted when a stage fails after exhausting its retries."""

    deployment_id: str
    stage: str
    error_message: str
    continued: bool = False
    event_type: str = "deployment.stage_failed"


class CheckpointCreated(DomainEvent):
    """Emitted when a checkpoint has been durably written."""

    deployment_id: str
    checkpoint_name: str
    stage: str
    event_type: str = "deployment.checkpoint_created"


class DeploymentCompleted(DomainEvent):
    """Emitted when a run reaches a non-failed terminal state."""

    deployment_id: str
    status: str
    event_type: str = "deployment.completed"


class DeploymentFailed(DomainEvent):
    """Emitted when a run terminates as failed."""

    deployment_id: str
    error_message: str
    event_type: str = "deployment.failed"


class RepositorySynced(DomainEvent):
    """Emitted when a repository clone or fetch succeeds."""

    repository: str
    commit: str = ""
    event_type: str = "repository.synced"


class RepositorySyncFailed(DomainEvent):
    """Emitted when a repository clone or fetch fails."""

    repository: str
    error_message: str
    event_type: str = "repository.sync_failed"
