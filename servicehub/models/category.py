from sqlalchemy import Column, Integer, String, Boolean

from ..db.base import Base
from ..models.base import TimeStampMixin


class ServiceCategory(Base, TimeStampMixin):
    __tablename__ = "service_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)


    def __repr__(self):
        return f'<ServiceCategory(id={self.id}, name={self.name})>'
