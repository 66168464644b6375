"""Application configuration using pydantic-settings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class StorageSettings(BaseSettings):
    """Where deployment state, checkpoints and repository mirrors live."""

    state_dir: Path = Field(default=Path(".iac-orchestrator/state"), alias="IAC_STATE_DIR")
    repository_cache_dir: Path = Field(
        default=Path(".iac-orchestrator/repositories"), alias="IAC_REPOSITORY_CACHE_DIR"
    )
    registry_path: Path = Field(
        default=Path(".iac-orchestrator/repositories.json"), alias="IAC_REGISTRY_PATH"
    )

    model_config = {"env_prefix": "IAC_", "extra": "ignore", "populate_by_name": True}


class ExecutionSettings(BaseSettings):
    """Stage execution retry and timeout policy."""

    default_max_retries: int = Field(default=2, ge=0, le=5, alias="IAC_DEFAULT_MAX_RETRIES")
    retry_base_delay_seconds: float = Field(default=2.0, ge=0, alias="IAC_RETRY_BASE_DELAY")
    retry_max_delay_seconds: float = Field(default=60.0, ge=0, alias="IAC_RETRY_MAX_DELAY")
    max_stage_timeout_seconds: int = Field(default=86400, ge=1, alias="IAC_MAX_STAGE_TIMEOUT")

    model_config = {"env_prefix": "IAC_", "extra": "ignore", "populate_by_name": True}


class RepositorySettings(BaseSettings):
    """Repository cache behaviour."""

    default_cache_ttl_seconds: int = Field(default=3600, alias="IAC_DEFAULT_CACHE_TTL")
    git_binary: str = Field(default="git", alias="IAC_GIT_BINARY")
    git_timeout_seconds: float = Field(default=300.0, alias="IAC_GIT_TIMEOUT")
    reachability_timeout_seconds: float = Field(default=30.0, alias="IAC_REACHABILITY_TIMEOUT")
    sync_max_workers: int = Field(default=4, ge=1, alias="IAC_SYNC_MAX_WORKERS")
    credential_env_prefix: str = Field(default="IAC_CREDENTIAL_", alias="IAC_CREDENTIAL_ENV_PREFIX")

    model_config = {"env_prefix": "IAC_", "extra": "ignore", "populate_by_name": True}


class ProvisioningSettings(BaseSettings):
    """External provisioning tool selection."""

    backend: Literal["opentofu", "simulated"] = Field(default="opentofu", alias="IAC_PROVISIONER")
    binary: str = Field(default="tofu", alias="IAC_PROVISIONER_BINARY")

    model_config = {"env_prefix": "IAC_", "extra": "ignore", "populate_by_name": True}


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    otlp_endpoint: str = Field(default="http://localhost:4317", alias="OTLP_ENDPOINT")
    service_name: str = Field(default="iac-orchestrator", alias="SERVICE_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")
    tracing_enabled: bool = Field(default=False, alias="TRACING_ENABLED")

    model_config = {"env_prefix": "OBS_", "extra": "ignore", "populate_by_name": True}


class Settings(BaseSettings):
    """Main application settings."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_prefix: str = Field(default="/api/v1", alias="API_PREFIX")
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    storage: StorageSettings = Field(default_factory=StorageSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    repository: RepositorySettings = Field(default_factory=RepositorySettings)
    provisioning: ProvisioningSettings = Field(default_factory=ProvisioningSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
