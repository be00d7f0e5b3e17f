from sqlalchemy import Column, Enum, Integer, String

from ..models.base import TimeStampMixin, Base
from ..enums import UserRole


class User(Base, TimeStampMixin):
    """Local mirror of an identity-provider account; roles are assigned upstream."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(Enum(UserRole), default=UserRole.CLIENT, nullable=False)


    def __repr__(self):
        return f'<User(id={self.id}, email={self.email}, role={self.role})>'
