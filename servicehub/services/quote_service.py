from typing import List, Optional

import structlog
from sqlalchemy import and_, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import exceptions
from ..enums import ServiceRequestStatus, UserRole
from ..exceptions import NotFoundException, BadRequestException
from ..models import Booking, CatalogService, ServiceRequest, User
from .booking_service import BookingService
from .invalidation import BOOKINGS, UNREAD_COUNT, InvalidationHub


logger = structlog.get_logger(__name__)


class QuoteService:
    """Quote requests for services a client cannot put in the cart at a fixed price."""

    def __init__(self, db: AsyncSession, hub: InvalidationHub):
        self.db = db
        self.hub = hub
        self.bookings = BookingService(db, hub)


    def _visibility_filter(self, actor):
        if actor.role == UserRole.ADMIN:
            return None
        if actor.role == UserRole.PROVIDER:
            # open requests (no provider chosen yet) are visible to every provider
            return or_(ServiceRequest.provider_id == actor.id, ServiceRequest.provider_id.is_(None))
        return ServiceRequest.client_id == actor.id


    async def get_request(self, actor, request_id: int) -> ServiceRequest:
        query = (
            select(ServiceRequest)
            .where(ServiceRequest.id == request_id)
            .execution_options(populate_existing=True)
        )

        visibility = self._visibility_filter(actor)
        if visibility is not None:
            query = query.where(visibility)

        result = await self.db.execute(query)
        request = result.scalars().first()

        if not request:
            raise NotFoundException(f"Quote request with ID {request_id} not found")

        return request


    async def list_requests(self, actor, status: Optional[ServiceRequestStatus] = None) -> List[ServiceRequest]:
        query = select(ServiceRequest)

        visibility = self._visibility_filter(actor)
        if visibility is not None:
            query = query.where(visibility)

        if status is not None:
            query = query.where(ServiceRequest.status == status)

        result = await self.db.execute(query.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc()))
        return list(result.scalars().all())


    async def request_quote(
        self,
        actor,
        service_id: int,
        provider_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> ServiceRequest:
        """Record a client's pending request for a price on ``service_id``."""
        if actor.role != UserRole.CLIENT:
            raise exceptions.UnauthorizedActionException("Only clients can request a quote.")

        service = await self.db.get(CatalogService, service_id)
        if not service:
            raise NotFoundException(f"Service with ID {service_id} not found")

        if not service.is_active:
            raise BadRequestException("This service is not available")

        provider_id = provider_id or service.provider_id
        if provider_id is not None:
            provider = await self.db.get(User, provider_id)
            if not provider or provider.role != UserRole.PROVIDER:
                raise NotFoundException(f"Provider with ID {provider_id} not found")

        request = ServiceRequest(
            client_id=actor.id,
            service_id=service.id,
            provider_id=provider_id,
            description=description,
            status=ServiceRequestStatus.PENDING,
        )
        self.db.add(request)

        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(request)

        logger.info("Quote requested", request_id=request.id, client_id=actor.id, service_id=service.id)
        if provider_id is not None:
            self.hub.publish(UNREAD_COUNT, provider_id)
        return request


    async def _close(self, request: ServiceRequest, status: ServiceRequestStatus, **values) -> None:
        """Move a pending request to ``status`` unless someone else closed it first."""
        result = await self.db.execute(
            update(ServiceRequest)
            .where(and_(ServiceRequest.id == request.id, ServiceRequest.status == ServiceRequestStatus.PENDING))
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise exceptions.ConcurrentModificationException()


    async def respond(self, actor, request_id: int, quoted_price: float) -> Booking:
        """
        Price a pending quote request and open a pending booking at that price.

        A provider may answer requests addressed to them or still open; an admin
        may answer any request that already names a provider.
        """
        if actor.role not in (UserRole.PROVIDER, UserRole.ADMIN):
            raise exceptions.UnauthorizedActionException("Only providers can answer a quote request.")

        if quoted_price is None or quoted_price <= 0:
            raise BadRequestException("Quoted price must be greater than zero")

        request = await self.get_request(actor, request_id)

        if request.status != ServiceRequestStatus.PENDING:
            raise exceptions.IllegalTransitionException(request.status, ServiceRequestStatus.APPROVED)

        provider_id = request.provider_id or (actor.id if actor.role == UserRole.PROVIDER else None)
        if provider_id is None:
            raise BadRequestException("This request has no provider to quote it")

        if request.service_id is None:
            raise NotFoundException("The service for this request no longer exists")

        quoted_price = round(float(quoted_price), 2)
        client_id = request.client_id

        try:
            await self._close(request, ServiceRequestStatus.APPROVED, quoted_price=quoted_price, provider_id=provider_id)

            service = await self.bookings.lock_catalog_rows(request.service_id, None)
            if service is None:
                raise NotFoundException(f"Service with ID {request.service_id} not found")

            booking = await self.bookings.open_booking(
                actor,
                client_id=client_id,
                provider_id=provider_id,
                service=service,
                unit_price=quoted_price,
                quantity=1,
                service_request_id=request.id,
                notes=request.description,
                reason="Created from quote request",
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(booking)

        logger.info(
            "Quote answered",
            request_id=request_id,
            booking_id=booking.id,
            provider_id=provider_id,
            quoted_price=quoted_price,
        )
        self.hub.publish(BOOKINGS, client_id, provider_id)
        self.hub.publish(UNREAD_COUNT, client_id, provider_id)
        return booking


    async def reject(self, actor, request_id: int) -> ServiceRequest:
        """
        Decline (provider/admin) or withdraw (client) a pending quote request.

        A provider may only decline requests addressed to them; an open request
        stays available to the other providers.
        """
        request = await self.get_request(actor, request_id)

        if actor.role == UserRole.PROVIDER and request.provider_id != actor.id:
            raise exceptions.UnauthorizedActionException(
                "Only the provider this request was sent to can decline it."
            )

        if request.status != ServiceRequestStatus.PENDING:
            raise exceptions.IllegalTransitionException(request.status, ServiceRequestStatus.REJECTED)

        try:
            await self._close(request, ServiceRequestStatus.REJECTED)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(request)

        logger.info("Quote request rejected", request_id=request.id, actor_id=actor.id)
        if request.provider_id is not None:
            self.hub.publish(UNREAD_COUNT, request.provider_id)
        return request
