"""
Booking lifecycle: checkout from the cart and role-gated status transitions.

Every write is a conditional statement keyed on the row's ``version`` (and,
for transitions, its current status). If the row changed between our read
and our write the statement matches nothing and the caller gets
``ConcurrentModificationException``; retrying with a fresh read is safe.
"""

import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple, TypeVar

import structlog
from sqlalchemy import and_, delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import exceptions
from ..core.config import Config
from ..enums import BookingStatus, ChargingType, UserRole
from ..exceptions import BadRequestException, NotFoundException
from ..models import (
    Booking,
    BookingStatusHistory,
    CartItem,
    CatalogService,
    ProviderEarning,
    ServiceCategory,
    ServiceChargingType,
)
from ..models.base import utcnow
from ..schemas.booking import BookingDetail, BookingStatusHistoryResponse
from .invalidation import BOOKINGS, UNREAD_COUNT, InvalidationHub


logger = structlog.get_logger(__name__)

T = TypeVar("T")


# (from, to) -> roles allowed to drive the move. Anything absent is illegal.
TRANSITIONS: Dict[Tuple[BookingStatus, BookingStatus], FrozenSet[UserRole]] = {
    (BookingStatus.PENDING, BookingStatus.ACCEPTED): frozenset({UserRole.PROVIDER}),
    (BookingStatus.PENDING, BookingStatus.CANCELLED): frozenset({UserRole.CLIENT, UserRole.PROVIDER, UserRole.ADMIN}),
    (BookingStatus.ACCEPTED, BookingStatus.ONGOING): frozenset({UserRole.PROVIDER}),
    (BookingStatus.ACCEPTED, BookingStatus.CANCELLED): frozenset({UserRole.CLIENT, UserRole.PROVIDER, UserRole.ADMIN}),
    (BookingStatus.ONGOING, BookingStatus.COMPLETED): frozenset({UserRole.PROVIDER}),
}

INITIAL_STATUS = BookingStatus.PENDING
TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})
MIN_CANCELLATION_REASON_LENGTH = 5


def check_transition(current: BookingStatus, target: BookingStatus, role: UserRole) -> None:
    """Raise unless ``role`` may move a booking from ``current`` to ``target``."""
    allowed_roles = TRANSITIONS.get((current, target))
    if allowed_roles is None:
        raise exceptions.IllegalTransitionException(current, target)

    if role not in allowed_roles:
        raise exceptions.UnauthorizedActionException(
            f"A {role.value} cannot move a booking from '{current.value}' to '{target.value}'."
        )


def allowed_targets(current: BookingStatus, role: UserRole) -> List[BookingStatus]:
    """Statuses ``role`` may move a booking to from ``current``, for menus and clients."""
    return [target for (source, target), roles in TRANSITIONS.items() if source == current and role in roles]


def is_valid_path(statuses: List[BookingStatus]) -> bool:
    """True if ``statuses`` starts at the initial status and only follows table edges."""
    if not statuses or statuses[0] != INITIAL_STATUS:
        return False
    return all((a, b) in TRANSITIONS for a, b in zip(statuses, statuses[1:]))


def generate_booking_number() -> str:
    return f"BK-{uuid.uuid4().hex[:10].upper()}"


async def with_conflict_retry(operation: Callable[[], Awaitable[T]], attempts: Optional[int] = None) -> T:
    """
    Run ``operation`` again on ``ConcurrentModificationException`` only.

    The operation must re-read what it writes, so each attempt starts from the
    current state. Every other error is raised immediately.
    """
    attempts = attempts or Config.CONFLICT_RETRY_ATTEMPTS

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except exceptions.ConcurrentModificationException:
            if attempt >= attempts:
                raise
            logger.info("Retrying after concurrent modification", attempt=attempt, max_attempts=attempts)


class BookingService:
    def __init__(self, db: AsyncSession, hub: InvalidationHub):
        self.db = db
        self.hub = hub


    def _visibility_filter(self, actor):
        if actor.role == UserRole.ADMIN:
            return None
        if actor.role == UserRole.PROVIDER:
            return Booking.provider_id == actor.id
        return Booking.client_id == actor.id


    async def get_booking(self, actor, booking_id: int) -> Booking:
        """
        Load a booking the actor is a party to (admins see every booking).

        Always re-reads the row so version checks run against stored state.

        Raises:
            NotFoundException: If the booking does not exist or is not visible to the actor.
        """
        query = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)

        visibility = self._visibility_filter(actor)
        if visibility is not None:
            query = query.where(visibility)

        result = await self.db.execute(query)
        booking = result.scalars().first()

        if not booking:
            raise NotFoundException(f"Booking with ID {booking_id} not found")

        return booking


    async def list_bookings(
        self,
        actor,
        status: Optional[BookingStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Booking]:
        query = select(Booking)

        visibility = self._visibility_filter(actor)
        if visibility is not None:
            query = query.where(visibility)

        if status is not None:
            query = query.where(Booking.status == status)

        query = query.order_by(Booking.created_at.desc(), Booking.id.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())


    async def get_history(self, actor, booking_id: int) -> List[BookingStatusHistory]:
        booking = await self.get_booking(actor, booking_id)

        result = await self.db.execute(
            select(BookingStatusHistory)
            .where(BookingStatusHistory.booking_id == booking.id)
            .order_by(BookingStatusHistory.changed_at, BookingStatusHistory.id)
        )
        return list(result.scalars().all())


    async def lock_catalog_rows(self, service_id: int, charging_type_id: Optional[int]) -> Optional[CatalogService]:
        """
        Share-lock the catalog rows a new booking will reference, so a guarded
        delete running concurrently either sees the booking or runs first.
        """
        result = await self.db.execute(
            select(CatalogService).where(CatalogService.id == service_id).with_for_update(read=True)
        )
        service = result.scalars().first()

        if service is not None and charging_type_id is not None:
            await self.db.execute(
                select(ServiceChargingType.id)
                .where(ServiceChargingType.id == charging_type_id)
                .with_for_update(read=True)
            )

        return service


    async def _snapshot(
        self,
        service: CatalogService,
        charging_type: Optional[ChargingType],
        unit_price: float,
        quantity: int,
    ) -> Dict[str, Any]:
        category = await self.db.get(ServiceCategory, service.category_id)

        return {
            "service_id": service.id,
            "name": service.name,
            "description": service.description,
            "category": category.name if category else None,
            "charging_type": charging_type.value if charging_type else None,
            "unit_price": unit_price,
            "quantity": quantity,
            "total_price": round(unit_price * quantity, 2),
        }


    async def open_booking(
        self,
        actor,
        *,
        client_id: int,
        provider_id: int,
        service: CatalogService,
        unit_price: float,
        quantity: int = 1,
        charging_type: Optional[ChargingType] = None,
        charging_type_id: Optional[int] = None,
        service_request_id: Optional[int] = None,
        notes: Optional[str] = None,
        scheduled_at: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Stage a new pending booking and its first history entry in the current
        transaction. The caller commits.
        """
        now = utcnow()
        snapshot = await self._snapshot(service, charging_type, unit_price, quantity)

        booking = Booking(
            booking_number=generate_booking_number(),
            client_id=client_id,
            provider_id=provider_id,
            service_id=service.id,
            charging_type_id=charging_type_id,
            service_request_id=service_request_id,
            status=INITIAL_STATUS,
            quantity=quantity,
            unit_price=unit_price,
            total_price=snapshot["total_price"],
            service_snapshot=snapshot,
            notes=notes,
            scheduled_at=scheduled_at,
            version=1,
            status_changed_at=now,
            status_changed_by_id=actor.id,
            client_seen_at=now if actor.id == client_id else None,
            provider_seen_at=now if actor.id == provider_id else None,
        )
        self.db.add(booking)
        await self.db.flush()

        self.db.add(
            BookingStatusHistory(
                booking_id=booking.id,
                previous_status=None,
                new_status=INITIAL_STATUS,
                changed_by_id=actor.id,
                actor_role=actor.role,
                reason=reason,
                changed_at=now,
            )
        )
        return booking


    async def create_from_cart(
        self,
        actor,
        cart_item_id: int,
        expected_version: Optional[int] = None,
        scheduled_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Check out one cart item into a pending booking.

        The booking insert, its first history entry and the version-guarded
        removal of the cart item commit together or not at all.

        Raises:
            UnauthorizedActionException: If the actor is not a client.
            StaleCartItemException: If the item is already gone.
            ConcurrentModificationException: If the item changed or was checked out concurrently.
        """
        if actor.role != UserRole.CLIENT:
            raise exceptions.UnauthorizedActionException("Only clients can check out a cart.")

        result = await self.db.execute(
            select(CartItem)
            .where(and_(CartItem.id == cart_item_id, CartItem.client_id == actor.id))
            .execution_options(populate_existing=True)
        )
        item = result.scalars().first()

        if not item:
            raise exceptions.StaleCartItemException(cart_item_id)

        if expected_version is not None and expected_version != item.version:
            raise exceptions.ConcurrentModificationException()

        item_version = item.version

        try:
            service = await self.lock_catalog_rows(item.service_id, item.charging_type_id)
            if service is None:
                raise NotFoundException(f"Service with ID {item.service_id} not found")

            booking = await self.open_booking(
                actor,
                client_id=actor.id,
                provider_id=item.provider_id,
                service=service,
                unit_price=item.unit_price,
                quantity=item.quantity,
                charging_type=item.charging_type,
                charging_type_id=item.charging_type_id,
                notes=notes or item.notes,
                scheduled_at=scheduled_at,
                reason="Checked out from cart",
            )

            removed = await self.db.execute(
                delete(CartItem)
                .where(and_(CartItem.id == cart_item_id, CartItem.version == item_version))
                .execution_options(synchronize_session=False)
            )
            if removed.rowcount != 1:
                raise exceptions.ConcurrentModificationException()

            await self.db.commit()
        except exceptions.ConcurrentModificationException:
            await self.db.rollback()
            logger.warning("Checkout lost a race", client_id=actor.id, cart_item_id=cart_item_id)
            raise
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(booking)
        self.db.expunge(item)

        logger.info(
            "Booking created from cart",
            booking_id=booking.id,
            booking_number=booking.booking_number,
            client_id=booking.client_id,
            provider_id=booking.provider_id,
            total_price=booking.total_price,
        )
        self.hub.publish(BOOKINGS, booking.client_id, booking.provider_id)
        self.hub.publish(UNREAD_COUNT, booking.provider_id)
        return booking


    def _earning_for(self, booking: Booking) -> ProviderEarning:
        rate = Config.PLATFORM_COMMISSION_RATE
        commission = round(booking.total_price * rate / 100, 2)

        return ProviderEarning(
            provider_id=booking.provider_id,
            booking_id=booking.id,
            service_id=booking.service_id,
            total_amount=booking.total_price,
            commission_rate=rate,
            commission_amount=commission,
            provider_amount=round(booking.total_price - commission, 2),
        )


    async def transition(
        self,
        actor,
        booking_id: int,
        target_status: BookingStatus,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Booking:
        """
        Move a booking to ``target_status`` on behalf of ``actor``.

        Raises:
            NotFoundException: If the actor cannot see the booking.
            IllegalTransitionException: If the move is not in the transition table.
            UnauthorizedActionException: If the move exists but not for the actor's role.
            BadRequestException: If a cancellation comes without a reason.
            ConcurrentModificationException: If the booking changed since it was read.
        """
        target_status = BookingStatus(target_status)
        booking = await self.get_booking(actor, booking_id)

        if expected_version is not None and expected_version != booking.version:
            raise exceptions.ConcurrentModificationException()

        current_status = booking.status
        check_transition(current_status, target_status, actor.role)

        if target_status == BookingStatus.CANCELLED and len((reason or "").strip()) < MIN_CANCELLATION_REASON_LENGTH:
            raise BadRequestException(
                f"Please give a reason of at least {MIN_CANCELLATION_REASON_LENGTH} characters for cancelling this booking"
            )

        now = utcnow()
        values = {
            "status": target_status,
            "version": booking.version + 1,
            "status_changed_at": now,
            "status_changed_by_id": actor.id,
        }
        # the acting party has seen its own change
        if actor.id == booking.client_id:
            values["client_seen_at"] = now
        if actor.id == booking.provider_id:
            values["provider_seen_at"] = now

        stmt = (
            update(Booking)
            .where(
                and_(
                    Booking.id == booking.id,
                    Booking.version == booking.version,
                    Booking.status == current_status,
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db.execute(stmt)
            if result.rowcount != 1:
                raise exceptions.ConcurrentModificationException()

            self.db.add(
                BookingStatusHistory(
                    booking_id=booking.id,
                    previous_status=current_status,
                    new_status=target_status,
                    changed_by_id=actor.id,
                    actor_role=actor.role,
                    reason=reason,
                    changed_at=now,
                )
            )

            if target_status == BookingStatus.COMPLETED:
                self.db.add(self._earning_for(booking))

            await self.db.commit()
        except exceptions.ConcurrentModificationException:
            await self.db.rollback()
            logger.warning(
                "Booking transition lost a race",
                booking_id=booking_id,
                target_status=target_status.value,
                actor_id=actor.id,
            )
            raise
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(booking)

        logger.info(
            "Booking status changed",
            booking_id=booking.id,
            previous_status=current_status.value,
            new_status=target_status.value,
            actor_id=actor.id,
            actor_role=actor.role.value,
        )
        self.hub.publish(BOOKINGS, booking.client_id, booking.provider_id)
        self.hub.publish(UNREAD_COUNT, booking.client_id, booking.provider_id)
        return booking


    async def acknowledge(self, actor, booking_id: int) -> Booking:
        """Mark the booking's latest change as seen by the actor's side."""
        booking = await self.get_booking(actor, booking_id)

        values = {}
        now = utcnow()
        if actor.id == booking.client_id:
            values["client_seen_at"] = now
        if actor.id == booking.provider_id:
            values["provider_seen_at"] = now

        if not values:
            return booking

        # seen markers are not lifecycle state, so the version stays as is
        try:
            await self.db.execute(
                update(Booking)
                .where(Booking.id == booking.id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(booking)
        self.hub.publish(UNREAD_COUNT, actor.id)
        return booking


    async def get_detail(self, actor, booking_id: int) -> BookingDetail:
        """The booking with its status trail and the moves open to the actor right now."""
        booking = await self.get_booking(actor, booking_id)
        history = await self.get_history(actor, booking_id)

        detail = BookingDetail.model_validate(booking)
        detail.history = [BookingStatusHistoryResponse.model_validate(entry) for entry in history]
        detail.allowed_transitions = allowed_targets(booking.status, actor.role)
        return detail
