from sqlalchemy import Column, Integer, String, Text, Float, ForeignKey, DateTime, Enum, JSON

from ..db.base import Base
from ..enums import BookingStatus
from ..models.base import TimeStampMixin, utcnow


class Booking(Base, TimeStampMixin):
    """
    A client's order for one service from one provider.

    ``service_snapshot`` is written once at creation and never re-derived from
    the catalog, so the booking keeps its price and description even after the
    catalog entry changes or is deleted. ``version`` is bumped on every write
    and guards conditional updates.
    """

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_number = Column(String, nullable=False, unique=True, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True)
    charging_type_id = Column(Integer, ForeignKey("service_charging_types.id", ondelete="SET NULL"), nullable=True)
    service_request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=True)
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    service_snapshot = Column(JSON, nullable=False)
    notes = Column(Text, nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    version = Column(Integer, default=1, nullable=False)

    # Unread tracking: who made the latest change and when each party last looked
    status_changed_at = Column(DateTime, default=utcnow, nullable=False)
    status_changed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    client_seen_at = Column(DateTime, nullable=True)
    provider_seen_at = Column(DateTime, nullable=True)


    def __repr__(self):
        return f'<Booking(id={self.id}, number={self.booking_number}, status={self.status})>'
