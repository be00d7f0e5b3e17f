from sqlalchemy import Column, Integer, ForeignKey, DateTime, Float, Text, Enum

from ..db.base import Base
from ..enums import ChargingType
from ..models.base import TimeStampMixin, utcnow


class CartItem(Base, TimeStampMixin):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    charging_type_id = Column(Integer, ForeignKey("service_charging_types.id"), nullable=True)
    charging_type = Column(Enum(ChargingType), nullable=True)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Float, nullable=False)     # captured when the item was added
    notes = Column(Text, nullable=True)
    version = Column(Integer, default=1, nullable=False)
    added_at = Column(DateTime, default=utcnow)


    @property
    def total_price(self) -> float:
        return round(self.unit_price * self.quantity, 2)


    def __repr__(self):
        return f'<CartItem(client_id={self.client_id}, service_id={self.service_id}, quantity={self.quantity})>'
