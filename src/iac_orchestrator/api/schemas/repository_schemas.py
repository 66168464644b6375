"""API schemas for repository cache endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from iac_orchestrator.domain.models.repository import (
    MAX_CACHE_TTL_SECONDS,
    MIN_CACHE_TTL_SECONDS,
    RepositoryStatus,
)


class RegisterRepositoryRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    url: str = Field(..., min_length=1)
    branch: str = "main"
    credential_ref: str | None = None
    cache_ttl: int | None = Field(default=None, ge=MIN_CACHE_TTL_SECONDS, le=MAX_CACHE_TTL_SECONDS)
    auto_sync: bool = False
    tags: list[str] = Field(default_factory=list)
    update: bool = False


class SyncRepositoryRequest(BaseModel):
    force: bool = False


class RepositoryResponse(BaseModel):
    name: str
    url: str
    branch: str
    local_path: str
    credential_ref: str | None = None
    cache_ttl: int
    last_sync_time: datetime | None = None
    status: RepositoryStatus
    tags: list[str] = Field(default_factory=list)
    auto_sync: bool = False
    commit: str = ""
    last_error: str = ""
    validation_warnings: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RepositoryListResponse(BaseModel):
    items: list[RepositoryResponse]
    total: int
