"""Domain events package."""

from iac_orchestrator.domain.events.deployment_events import (
    CheckpointCreated,
    DeploymentCompleted,
    DeploymentFailed,
    DeploymentStarted,
    RepositorySynced,
    RepositorySyncFailed,
    StageCompleted,
    StageFailed,
    StageStarted,
)


__all__ = [
    "CheckpointCreated",
    "DeploymentCompleted",
    "DeploymentFailed",
    "DeploymentStarted",
    "RepositorySyncFailed",
    "RepositorySynced",
    "StageCompleted",
    "StageFailed",
    "StageStarted",
]
