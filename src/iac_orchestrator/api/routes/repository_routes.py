"""Repository cache API routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from iac_orchestrator.api.dependencies.services import get_service_container, ServiceContainer
from iac_orchestrator.api.schemas.repository_schemas import (
    RegisterRepositoryRequest,
    RepositoryListResponse,
    RepositoryResponse,
    SyncRepositoryRequest,
)
from iac_orchestrator.domain.errors import (
    CloneFailedError,
    ConfigurationError,
    CredentialInvalidError,
    DuplicateRepositoryError,
    RepositoryAccessError,
    RepositoryNotRegisteredError,
)
from iac_orchestrator.domain.models.repository import RepositoryEntry


router = APIRouter(prefix="/repositories", tags=["repositories"])


def _to_response(entry: RepositoryEntry) -> RepositoryResponse:
    return RepositoryResponse.model_validate(entry)


@router.post("", response_model=RepositoryResponse, status_code=status.HTTP_201_CREATED)
async def register_repository(
    request: RegisterRepositoryRequest,
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> RepositoryResponse:
    """Register a template repository, optionally cloning it right away."""
    try:
        entry = await container.repository_cache.register(**request.model_dump())
    except DuplicateRepositoryError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except (ConfigurationError, CredentialInvalidError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except RepositoryAccessError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    except CloneFailedError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    return _to_response(entry)


@router.get("", response_model=RepositoryListResponse)
async def list_repositories(
    container: Annotated[ServiceContainer, Depends(get_service_container)],
    tag: str | None = Query(default=None),
) -> RepositoryListResponse:
    entries = await container.repository_cache.list_repositories(tag=tag)
    return RepositoryListResponse(items=[_to_response(e) for e in entries], total=len(entries))


@router.get("/{name}", response_model=RepositoryResponse)
async def get_repository(
    name: str,
    container: Annotated[ServiceContainer, Depends(get_service_container)],
) -> RepositoryResponse:
    try:
        entry = await container.repository_cache.get(name)
    except RepositoryNotRegisteredError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return _to_response(entry)


@router.post("/{name}/sync", response_model=RepositoryResponse)
async def sync_repository(
    name: str,
    container: Annotated[ServiceContainer, Depends(get_service_container)],
    request: SyncRepositoryRequest | None = None,
) -> RepositoryResponse:
    force = request.force if request else False
    try:
        entry = await container.repository_cache.sync(name, force=force)
    except RepositoryNotRegisteredError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except CredentialInvalidError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except CloneFailedError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    return _to_response(entry)


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_repository(
    name: str,
    container: Annotated[ServiceContainer, Depends(get_service_container)],
    purge: bool = Query(default=False),
) -> None:
    try:
        await container.repository_cache.remove(name, purge=purge)
    except RepositoryNotRegisteredError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
