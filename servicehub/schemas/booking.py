from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from ..enums import BookingStatus, UserRole


class CheckoutRequest(BaseModel):
    """Schema for checking out a single cart item"""
    cart_item_id: int
    expected_version: Optional[int] = Field(
        None, description="Cart item version the client last saw; a mismatch fails the checkout"
    )
    scheduled_at: Optional[datetime] = None
    notes: Optional[str] = None


class BookingTransitionRequest(BaseModel):
    status: BookingStatus
    reason: Optional[str] = None
    expected_version: Optional[int] = None


class BookingResponse(BaseModel):
    id: int
    booking_number: str
    client_id: int
    provider_id: int
    service_id: Optional[int] = None
    charging_type_id: Optional[int] = None
    service_request_id: Optional[int] = None
    status: BookingStatus
    quantity: int
    unit_price: float
    total_price: float
    service_snapshot: Dict[str, Any]
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    version: int
    status_changed_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class BookingStatusHistoryResponse(BaseModel):
    id: int
    booking_id: int
    previous_status: Optional[BookingStatus] = None
    new_status: BookingStatus
    changed_by_id: int
    actor_role: UserRole
    reason: Optional[str] = None
    changed_at: datetime

    class Config:
        from_attributes = True


class BookingDetail(BookingResponse):
    """A booking with its status trail and the moves open to the caller."""
    history: List[BookingStatusHistoryResponse] = []
    allowed_transitions: List[BookingStatus] = []
