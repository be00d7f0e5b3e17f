from sqlalchemy import Column, Integer, String, Text, Boolean, Float, ForeignKey

from ..db.base import Base
from ..models.base import TimeStampMixin


class CatalogService(Base, TimeStampMixin):
    """
    A service offered on the marketplace. Either a global catalog entry
    (no ``provider_id``) or a provider's own listing.
    """

    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("service_categories.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Float, nullable=True)    # flat price, used when no charging option is priced
    is_active = Column(Boolean, default=True, nullable=False)


    def __repr__(self):
        return f'<CatalogService(id={self.id}, name={self.name}, is_active={self.is_active})>'
