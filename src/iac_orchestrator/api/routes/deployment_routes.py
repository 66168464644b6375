"""Deployment API routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from iac_orchestrator.api.dependencies.services import get_service_container, ServiceContainer
from iac_orchestrator.api.schemas.deployment_schemas import (
    CheckpointDetailResponse,
    CheckpointResponse,
    DeploymentListResponse,
    DeploymentResultResponse,
    DeploymentStateResponse,
    ResumeSourceResponse,
    StageResultResponse,
    StartDeploymentRequest,
)
from iac_orchestrator.domain.errors import (
    CheckpointNotFoundError,
    ConfigurationError,
    PlanValidationError,
    StateStoreError,
)
from iac_orchestrator.domain.models.configuration import RunOptions
from iac_orchestrator.domain.models.deployment import DeploymentResult, DeploymentState


router = APIRouter(prefix="/deployments", tags=["deployments"])


def _to_state_response(state: DeploymentState) -> DeploymentStateResponse:
    """Map domain model to API response."""
    checkpoints = sorted(state.checkpoints.values(), key=lambda c: c.stage_order)
    return DeploymentStateResponse(
        id=state.id,
        configuration_path=state.configuration_path,
        configuration_name=state.configuration_name,
        status=state.status,
        display_status=state.display_status,
        current_stage=state.current_stage,
        completed_stages=state.completed_stages,
        checkpoints=[CheckpointResponse(**c.model_dump()) for c in checkpoints],
        errors=state.errors,
        warnings=state.warnings,
        outputs=state.outputs,
        failure_reason=state.failure_reason,
        start_time=state.start_time,
        end_time=state.end_time,
        dry_run=state.dry_run,
        force=state.force,
        resumed_from=(
            ResumeSourceResponse(**state.resumed_from.model_dump()) if state.resumed_from else None
        ),
    )


def _to_result_response(result: DeploymentResult) -> DeploymentResultResponse:
    return DeploymentResultResponse(
        deployment_id=result.deployment_id,
        success=result.success,
        status=result.status,
        stage_results=[StageResultResponse(**r.model_dump()) for r in result.stage_results],
        completed_stages=result.completed_stages,
        outputs=result.outputs,
        errors=result.errors,
        warnings=result.warnings,
        failure_reason=result.failure_reason,
        start_time=result.start_time,
        end_time=result.end_time,
        duration_seconds=result.duration_seconds,
        resumed_from=(
            ResumeSourceResponse(**result.resumed_from.model_dump()) if result.resumed_from else None
        ),
    )


@router.post("", response_model=DeploymentResultResponse)
async def start_deployment(
    request: StartDeploymentRequest,
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> DeploymentResultResponse:
    """Run a deployment to completion and return its result."""
    options = RunOptions(**request.model_dump(exclude={"config_path"}))
    try:
        result = await container.orchestrator.start_deployment(request.config_path, options)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except PlanValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return _to_result_response(result)


@router.get("", response_model=DeploymentListResponse)
async def list_deployments(
    container: Annotated[ServiceContainer, Depends(get_service_container)],
    limit: int = Query(default=50, ge=1, le=500),
) -> DeploymentListResponse:
    states = await container.state_store.list_states(limit=limit)
    return DeploymentListResponse(
        items=[_to_state_response(s) for s in states],
        total=len(states),
        limit=limit,
    )


@router.get("/{deployment_id}", response_model=DeploymentStateResponse)
async def get_deployment(
    deployment_id: str,
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> DeploymentStateResponse:
    try:
        state = await container.state_store.load(deployment_id)
    except (ValueError, StateStoreError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    if state is None:
        raise HTTPException(status_code=404, detail=f"Deployment {deployment_id} not found")
    return _to_state_response(state)


@router.get("/{deployment_id}/checkpoints", response_model=list[CheckpointResponse])
async def list_checkpoints(
    deployment_id: str,
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> list[CheckpointResponse]:
    try:
        checkpoints = await container.state_store.list_checkpoints(deployment_id)
    except (ValueError, StateStoreError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return [
        CheckpointResponse(
            name=c.name,
            deployment_id=c.deployment_id,
            stage=c.stage,
            stage_order=c.stage_order,
            created_at=c.timestamp,
        )
        for c in checkpoints
    ]


@router.get("/{deployment_id}/checkpoints/{name}", response_model=CheckpointDetailResponse)
async def get_checkpoint(
    deployment_id: str,
    name: str,
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> CheckpointDetailResponse:
    try:
        checkpoint = await container.state_store.load_checkpoint(deployment_id, name)
    except CheckpointNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (ValueError, StateStoreError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return CheckpointDetailResponse(
        name=checkpoint.name,
        deployment_id=checkpoint.deployment_id,
        stage=checkpoint.stage,
        stage_order=checkpoint.stage_order,
        created_at=checkpoint.timestamp,
        state=_to_state_response(checkpoint.state),
    )
