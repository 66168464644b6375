"""API schemas for deployment endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from iac_orchestrator.domain.models.configuration import MAX_RETRIES
from iac_orchestrator.domain.models.deployment import DeploymentStatus
from iac_orchestrator.domain.models.stage import StageName


class StartDeploymentRequest(BaseModel):
    config_path: str = Field(..., min_length=1)
    dry_run: bool = False
    stage: str | None = None
    checkpoint: str | None = None
    deployment_id: str | None = None
    max_retries: int = Field(default=2, ge=0, le=MAX_RETRIES)
    force: bool = False
    skip_pre_checks: bool = False
    repository: str | None = None


class StageResultResponse(BaseModel):
    stage: StageName
    success: bool
    duration_seconds: float = 0.0
    error: str | None = None
    error_type: str | None = None
    outputs: dict[str, str] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    attempts: int = 0
    skipped: bool = False
    verification_failed: bool = False


class ResumeSourceResponse(BaseModel):
    deployment_id: str
    checkpoint: str


class DeploymentResultResponse(BaseModel):
    deployment_id: str
    success: bool
    status: DeploymentStatus
    stage_results: list[StageResultResponse] = Field(default_factory=list)
    completed_stages: list[StageName] = Field(default_factory=list)
    outputs: dict[str, str] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    failure_reason: str = ""
    start_time: datetime
    end_time: datetime
    duration_seconds: float
    resumed_from: ResumeSourceResponse | None = None


class CheckpointResponse(BaseModel):
    name: str
    deployment_id: str
    stage: StageName
    stage_order: int
    created_at: datetime


class DeploymentStateResponse(BaseModel):
    id: str
    configuration_path: str
    configuration_name: str
    status: DeploymentStatus
    display_status: str
    current_stage: StageName | None = None
    completed_stages: list[StageName] = Field(default_factory=list)
    checkpoints: list[CheckpointResponse] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    outputs: dict[str, str] = Field(default_factory=dict)
    failure_reason: str = ""
    start_time: datetime
    end_time: datetime | None = None
    dry_run: bool = False
    force: bool = False
    resumed_from: ResumeSourceResponse | None = None


class DeploymentListResponse(BaseModel):
    items: list[DeploymentStateResponse]
    total: int
    limit: int


class CheckpointDetailResponse(CheckpointResponse):
    state: DeploymentStateResponse
