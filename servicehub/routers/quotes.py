from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from ..core.dependencies import Actor, get_current_actor, get_db, get_invalidation_hub, RoleChecker
from ..enums import ServiceRequestStatus, UserRole
from ..schemas.booking import BookingResponse
from ..schemas.quote import QuoteRequestCreate, QuoteRequestResponse, QuoteResponseCreate
from ..services.quote_service import QuoteService
from ..services.invalidation import InvalidationHub


router = APIRouter()
clients_only = Depends(RoleChecker([UserRole.CLIENT]))
providers_only = Depends(RoleChecker([UserRole.PROVIDER, UserRole.ADMIN]))


async def get_quote_service(
    db: AsyncSession = Depends(get_db),
    hub: InvalidationHub = Depends(get_invalidation_hub),
) -> QuoteService:
    return QuoteService(db, hub)


@router.post("/", dependencies=[clients_only], response_model=QuoteRequestResponse, status_code=status.HTTP_201_CREATED)
async def request_quote(
    data: QuoteRequestCreate,
    current_actor: Actor = Depends(get_current_actor),
    service: QuoteService = Depends(get_quote_service),
):
    """Ask for a price on a service that cannot be booked at a fixed price"""
    return await service.request_quote(current_actor, data.service_id, data.provider_id, data.description)


@router.get("/", response_model=List[QuoteRequestResponse])
async def get_quote_requests(
    status: Optional[ServiceRequestStatus] = Query(None),
    current_actor: Actor = Depends(get_current_actor),
    service: QuoteService = Depends(get_quote_service),
):
    return await service.list_requests(current_actor, status)


@router.get("/{id}", response_model=QuoteRequestResponse)
async def get_quote_request(
    id: int = Path(..., description="ID of the quote request"),
    current_actor: Actor = Depends(get_current_actor),
    service: QuoteService = Depends(get_quote_service),
):
    return await service.get_request(current_actor, id)


@router.post("/{id}/respond", dependencies=[providers_only], response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def respond_to_quote_request(
    data: QuoteResponseCreate,
    id: int = Path(..., description="ID of the quote request"),
    current_actor: Actor = Depends(get_current_actor),
    service: QuoteService = Depends(get_quote_service),
):
    """Price the request; the client gets a pending booking at the quoted price"""
    return await service.respond(current_actor, id, data.quoted_price)


@router.post("/{id}/reject", response_model=QuoteRequestResponse)
async def reject_quote_request(
    id: int = Path(..., description="ID of the quote request"),
    current_actor: Actor = Depends(get_current_actor),
    service: QuoteService = Depends(get_quote_service),
):
    return await service.reject(current_actor, id)
