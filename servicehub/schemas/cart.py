from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from ..enums import ChargingType


class CartItemCreate(BaseModel):
    """Schema for adding a service to the cart"""
    service_id: int
    charging_type_id: Optional[int] = None
    provider_id: Optional[int] = None
    # out-of-range quantities are clamped by the cart, not rejected
    quantity: int = Field(default=1, description="Number of units, kept between the cart's minimum and maximum")
    notes: Optional[str] = None


class CartItemQuantityUpdate(BaseModel):
    quantity: int
    expected_version: Optional[int] = None


class CartItemResponse(BaseModel):
    """Schema for cart item responses"""
    id: int
    client_id: int
    service_id: int
    provider_id: Optional[int] = None
    charging_type_id: Optional[int] = None
    charging_type: Optional[ChargingType] = None
    quantity: int
    unit_price: float
    total_price: float
    notes: Optional[str] = None
    version: int
    added_at: datetime

    class Config:
        from_attributes = True


class CartLineResponse(BaseModel):
    id: int
    service_id: int
    service_name: str
    provider_id: Optional[int] = None
    charging_type_id: Optional[int] = None
    charging_type: Optional[ChargingType] = None
    quantity: int
    unit_price: float
    total_price: float
    notes: Optional[str] = None
    version: int
    added_at: datetime


class CartResponse(BaseModel):
    """Schema for cart responses"""
    client_id: int
    items: List[CartLineResponse] = []
    item_count: int
    subtotal: float
