from typing import Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ..enums import ServiceRequestStatus
from ..models import Booking, ServiceRequest
from ..schemas.notification import UnreadCountResponse
from .chat_gateway import ChatGateway, NullChatGateway


class NotificationCounter:
    """
    Per-user unread counts for UI polling.

    Nothing is stored: every call recounts from booking state and asks the
    chat service, so the number cannot drift from what it summarises.
    """

    def __init__(self, db: AsyncSession, chat_gateway: Optional[ChatGateway] = None):
        self.db = db
        self.chat_gateway = chat_gateway or NullChatGateway()


    @staticmethod
    def _unseen_by(seen_column):
        return or_(seen_column.is_(None), seen_column < Booking.status_changed_at)


    async def booking_count(self, user_id: int) -> int:
        """
        Bookings whose latest change was made by someone other than ``user_id``
        and which that user has not looked at since.
        """
        changed_by_other = or_(
            Booking.status_changed_by_id.is_(None),
            Booking.status_changed_by_id != user_id,
        )

        query = (
            select(func.count())
            .select_from(Booking)
            .where(
                and_(
                    changed_by_other,
                    or_(
                        and_(Booking.client_id == user_id, self._unseen_by(Booking.client_seen_at)),
                        and_(Booking.provider_id == user_id, self._unseen_by(Booking.provider_seen_at)),
                    ),
                )
            )
        )
        result = await self.db.execute(query)
        return result.scalar() or 0


    async def quote_count(self, user_id: int) -> int:
        """Pending quote requests addressed to ``user_id`` as provider."""
        query = (
            select(func.count())
            .select_from(ServiceRequest)
            .where(
                and_(
                    ServiceRequest.provider_id == user_id,
                    ServiceRequest.status == ServiceRequestStatus.PENDING,
                )
            )
        )
        result = await self.db.execute(query)
        return result.scalar() or 0


    async def unread_count(self, user) -> UnreadCountResponse:
        bookings = await self.booking_count(user.id)
        quotes = await self.quote_count(user.id)
        messages = await self.chat_gateway.unread_count(user.id)

        return UnreadCountResponse(
            user_id=user.id,
            bookings=bookings,
            quotes=quotes,
            messages=messages,
            total=bookings + quotes + messages,
        )
