from sqlalchemy import Column, Integer, DateTime, ForeignKey, Text, Enum

from ..db.base import Base
from ..enums import BookingStatus, UserRole
from ..models.base import utcnow


class BookingStatusHistory(Base):
    """Append-only audit trail of booking transitions. Rows are never updated."""

    __tablename__ = "booking_status_history"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    previous_status = Column(Enum(BookingStatus), nullable=True)    # null for the creation entry
    new_status = Column(Enum(BookingStatus), nullable=False)
    changed_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    actor_role = Column(Enum(UserRole), nullable=False)
    reason = Column(Text, nullable=True)
    changed_at = Column(DateTime, default=utcnow, nullable=False)
