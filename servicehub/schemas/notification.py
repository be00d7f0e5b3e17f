from pydantic import BaseModel, Field


class UnreadCountResponse(BaseModel):
    """Unread counts for one user, recomputed on every request."""
    user_id: int
    bookings: int = Field(ge=0)
    quotes: int = Field(ge=0)
    messages: int = Field(ge=0)
    total: int = Field(ge=0)
