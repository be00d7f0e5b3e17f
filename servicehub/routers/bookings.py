from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from ..core.dependencies import Actor, get_current_actor, get_db, get_invalidation_hub, RoleChecker
from ..enums import BookingStatus, UserRole
from ..schemas.booking import (
    BookingDetail,
    BookingResponse,
    BookingStatusHistoryResponse,
    BookingTransitionRequest,
    CheckoutRequest,
)
from ..services.booking_service import BookingService, with_conflict_retry
from ..services.invalidation import InvalidationHub


router = APIRouter()
clients_only = Depends(RoleChecker([UserRole.CLIENT]))


async def get_booking_service(
    db: AsyncSession = Depends(get_db),
    hub: InvalidationHub = Depends(get_invalidation_hub),
) -> BookingService:
    """
    Dependency function that provides an instance of BookingService bound to
    the request's database session.
    """

    return BookingService(db, hub)


@router.post("/checkout", dependencies=[clients_only], response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def checkout_cart_item(
    data: CheckoutRequest,
    current_actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """
    Turn one cart item into a pending booking.

    - The cart item is removed in the same transaction.
    - Checking out an item twice yields one booking; the second attempt fails.
    """
    return await service.create_from_cart(
        current_actor,
        data.cart_item_id,
        expected_version=data.expected_version,
        scheduled_at=data.scheduled_at,
        notes=data.notes,
    )


@router.get("/", response_model=List[BookingResponse])
async def get_my_bookings(
    status: Optional[BookingStatus] = Query(None, description="Only bookings in this status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings the current user is a party to (all bookings for admins)"""
    return await service.list_bookings(current_actor, status=status, skip=skip, limit=limit)


@router.get("/{id}", response_model=BookingDetail)
async def get_booking(
    id: int = Path(..., description="ID of the booking"),
    current_actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return await service.get_detail(current_actor, id)


@router.get("/{id}/history", response_model=List[BookingStatusHistoryResponse])
async def get_booking_history(
    id: int = Path(..., description="ID of the booking"),
    current_actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return await service.get_history(current_actor, id)


@router.put("/{id}/status", response_model=BookingResponse)
async def update_booking_status(
    data: BookingTransitionRequest,
    id: int = Path(..., description="ID of the booking"),
    current_actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """
    Move a booking along its lifecycle.

    With ``expected_version`` the move fails if the booking changed since the
    caller read it; without it, a lost race is retried against fresh state.
    """
    if data.expected_version is not None:
        return await service.transition(current_actor, id, data.status, data.reason, data.expected_version)

    return await with_conflict_retry(lambda: service.transition(current_actor, id, data.status, data.reason))


@router.post("/{id}/acknowledge", response_model=BookingResponse)
async def acknowledge_booking(
    id: int = Path(..., description="ID of the booking"),
    current_actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """Mark the booking's latest change as seen"""
    return await service.acknowledge(current_actor, id)
