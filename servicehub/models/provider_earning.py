from sqlalchemy import Column, Integer, Float, ForeignKey, Boolean

from ..db.base import Base
from ..models.base import TimeStampMixin


class ProviderEarning(Base, TimeStampMixin):
    __tablename__ = "provider_earnings"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True)
    total_amount = Column(Float, nullable=False)
    commission_rate = Column(Float, nullable=False)     # percentage
    commission_amount = Column(Float, nullable=False)
    provider_amount = Column(Float, nullable=False)
    is_withdrawn = Column(Boolean, default=False)
