from sqlalchemy import Column, Integer, Text, Boolean, Float, ForeignKey, Enum

from ..db.base import Base
from ..enums import ChargingType
from ..models.base import TimeStampMixin


class ServiceChargingType(Base, TimeStampMixin):
    __tablename__ = "service_charging_types"

    id = Column(Integer, primary_key=True, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    charging_type = Column(Enum(ChargingType), nullable=False)
    price = Column(Float, nullable=True)    # null for quote-based options
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


    def __repr__(self):
        return f'<ServiceChargingType(service_id={self.service_id}, charging_type={self.charging_type}, price={self.price})>'
