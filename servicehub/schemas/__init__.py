from .booking import (
    BookingDetail,
    BookingResponse,
    BookingStatusHistoryResponse,
    BookingTransitionRequest,
    CheckoutRequest,
)
from .cart import (
    CartItemCreate,
    CartItemQuantityUpdate,
    CartItemResponse,
    CartResponse,
)
from .catalog import (
    CatalogDeleteRequest,
    CatalogDeleteResponse,
    CatalogServiceResponse,
    DependencyCheckResult,
    ServiceStatusUpdate,
)
from .notification import UnreadCountResponse
from .quote import (
    QuoteRequestCreate,
    QuoteRequestResponse,
    QuoteResponseCreate,
)


__all__ = [
    # booking schemas
    "BookingDetail",
    "BookingResponse",
    "BookingStatusHistoryResponse",
    "BookingTransitionRequest",
    "CheckoutRequest",

    # cart schemas
    "CartItemCreate",
    "CartItemQuantityUpdate",
    "CartItemResponse",
    "CartResponse",

    # catalog schemas
    "CatalogDeleteRequest",
    "CatalogDeleteResponse",
    "CatalogServiceResponse",
    "DependencyCheckResult",
    "ServiceStatusUpdate",

    # notification schemas
    "UnreadCountResponse",

    # quote schemas
    "QuoteRequestCreate",
    "QuoteRequestResponse",
    "QuoteResponseCreate",
]
