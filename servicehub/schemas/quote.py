from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from ..enums import ServiceRequestStatus


class QuoteRequestCreate(BaseModel):
    service_id: int
    provider_id: Optional[int] = None
    description: Optional[str] = None


class QuoteResponseCreate(BaseModel):
    """Schema for a provider pricing a quote request"""
    quoted_price: float = Field(..., gt=0)


class QuoteRequestResponse(BaseModel):
    id: int
    client_id: int
    service_id: Optional[int] = None
    provider_id: Optional[int] = None
    description: Optional[str] = None
    status: ServiceRequestStatus
    quoted_price: Optional[float] = None
    created_at: datetime

    class Config:
        from_attributes = True
