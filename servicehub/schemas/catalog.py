from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from ..enums import CatalogEntityKind


class DependencyCheckResult(BaseModel):
    """Outcome of a pre-deletion dependency check. Computed per request, never stored."""
    entity_kind: CatalogEntityKind
    entity_id: int
    can_delete: bool
    warnings: List[str] = []
    order_items_count: int = 0
    charging_types_count: int = 0
    service_requests_count: int = 0
    provider_earnings_count: int = 0
    cart_items_count: int = 0
    confirmation_token: str


class CatalogDeleteRequest(BaseModel):
    """Schema for deleting a catalog entity"""
    force: bool = False
    confirmation_token: Optional[str] = Field(
        None, description="Token from the dependency check, required to force a blocked delete"
    )


class CatalogDeleteResponse(BaseModel):
    entity_kind: CatalogEntityKind
    entity_id: int
    deleted: bool
    overridden: bool
    warnings: List[str] = []


class ServiceStatusUpdate(BaseModel):
    is_active: bool


class CatalogServiceResponse(BaseModel):
    id: int
    category_id: int
    provider_id: Optional[int] = None
    name: str
    description: str
    price: Optional[float] = None
    is_active: bool
    updated_at: datetime

    class Config:
        from_attributes = True
