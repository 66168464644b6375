"""Domain error taxonomy.

Configuration and plan errors abort a run before any stage executes.
Repository errors surface directly from registration and are folded into the
current stage's error during a run. Stage errors abort unless the run is
forced; verification failures only ever degrade the terminal status.
"""

from __future__ import annotations


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""


class ConfigurationError(OrchestratorError):
    """Raised when a deployment descriptor is missing or malformed."""


class PlanValidationError(OrchestratorError):
    """Raised when a deployment plan cannot be built."""


class RepositoryAccessError(OrchestratorError):
    """Raised when a repository URL is unreachable or unusable."""


class InvalidRepositoryUrlError(RepositoryAccessError):
    """Raised when a repository URL is syntactically invalid."""


class CredentialInvalidError(RepositoryAccessError):
    """Raised when a credential reference cannot be resolved or is rejected."""


class CloneFailedError(OrchestratorError):
    """Raised when a clone or fetch fails at the transport level."""


class RepositoryNotRegisteredError(OrchestratorError):
    """Raised when a repository name is not in the registry."""


class RepositoryNotSyncedError(OrchestratorError):
    """Raised when a registered repository has no usable local copy."""


class DuplicateRepositoryError(OrchestratorError):
    """Raised when registering a name that already exists."""


class StageExecutionError(OrchestratorError):
    """Raised when a stage operation fails."""

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        self.message = message
        super().__init__(f"{stage}: {message}")


class VerificationFailure(OrchestratorError):
    """Raised when post-deployment checks do not pass."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "verification failed")


class ProvisioningError(OrchestratorError):
    """Raised when the provisioning tool reports a failure."""


class CheckpointNotFoundError(OrchestratorError):
    """Raised when a named checkpoint does not exist."""


class CheckpointExistsError(OrchestratorError):
    """Raised when writing a checkpoint name that was already written."""


class StateStoreError(OrchestratorError):
    """Raised when deployment state cannot be persisted or read."""


class InvalidStateTransitionError(OrchestratorError):
    """Raised when an invalid state transition is attempted."""
