from sqlalchemy import Column, Integer, Text, Float, ForeignKey, Enum

from ..db.base import Base
from ..enums import ServiceRequestStatus
from ..models.base import TimeStampMixin


class ServiceRequest(Base, TimeStampMixin):
    """A client's request for a quote on a service that has no fixed price."""

    __tablename__ = "service_requests"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(Enum(ServiceRequestStatus), default=ServiceRequestStatus.PENDING, nullable=False)
    quoted_price = Column(Float, nullable=True)


    def __repr__(self):
        return f'<ServiceRequest(id={self.id}, service_id={self.service_id}, status={self.status})>'
