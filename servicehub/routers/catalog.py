from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from ..core.dependencies import Actor, get_current_actor, get_db, get_invalidation_hub, RoleChecker
from ..enums import CatalogEntityKind, UserRole
from ..schemas.catalog import (
    CatalogDeleteRequest,
    CatalogDeleteResponse,
    CatalogServiceResponse,
    DependencyCheckResult,
    ServiceStatusUpdate,
)
from ..services.dependency_guard import DependencyGuard
from ..services.invalidation import InvalidationHub


router = APIRouter()
admins_only = Depends(RoleChecker([UserRole.ADMIN]))


async def get_dependency_guard(
    db: AsyncSession = Depends(get_db),
    hub: InvalidationHub = Depends(get_invalidation_hub),
) -> DependencyGuard:
    return DependencyGuard(db, hub)


@router.get("/services/{id}/check-deletable", dependencies=[admins_only], response_model=DependencyCheckResult)
async def check_service_deletable(
    id: int = Path(..., description="ID of the service"),
    guard: DependencyGuard = Depends(get_dependency_guard),
):
    """
    Report what still references a service before it is deleted.

    Read-only. Pass the returned ``confirmation_token`` to the delete endpoint
    to force a blocked delete.
    """
    return await guard.check_deletable(CatalogEntityKind.SERVICE, id)


@router.delete("/services/{id}", dependencies=[admins_only], response_model=CatalogDeleteResponse)
async def delete_service(
    data: Optional[CatalogDeleteRequest] = None,
    id: int = Path(..., description="ID of the service"),
    current_actor: Actor = Depends(get_current_actor),
    guard: DependencyGuard = Depends(get_dependency_guard),
):
    data = data or CatalogDeleteRequest()
    return await guard.delete(
        current_actor,
        CatalogEntityKind.SERVICE,
        id,
        force=data.force,
        confirmation_token=data.confirmation_token,
    )


@router.put("/services/{id}/status", dependencies=[admins_only], response_model=CatalogServiceResponse)
async def update_service_status(
    data: ServiceStatusUpdate,
    id: int = Path(..., description="ID of the service"),
    current_actor: Actor = Depends(get_current_actor),
    guard: DependencyGuard = Depends(get_dependency_guard),
):
    """Activate or deactivate a service. Never blocked by dependencies."""
    return await guard.set_active(current_actor, id, data.is_active)


@router.get("/charging-types/{id}/check-deletable", dependencies=[admins_only], response_model=DependencyCheckResult)
async def check_charging_type_deletable(
    id: int = Path(..., description="ID of the charging type"),
    guard: DependencyGuard = Depends(get_dependency_guard),
):
    return await guard.check_deletable(CatalogEntityKind.CHARGING_TYPE, id)


@router.delete("/charging-types/{id}", dependencies=[admins_only], response_model=CatalogDeleteResponse)
async def delete_charging_type(
    data: Optional[CatalogDeleteRequest] = None,
    id: int = Path(..., description="ID of the charging type"),
    current_actor: Actor = Depends(get_current_actor),
    guard: DependencyGuard = Depends(get_dependency_guard),
):
    data = data or CatalogDeleteRequest()
    return await guard.delete(
        current_actor,
        CatalogEntityKind.CHARGING_TYPE,
        id,
        force=data.force,
        confirmation_token=data.confirmation_token,
    )
