from .user import User
from .category import ServiceCategory
from .service import CatalogService
from .charging_type import ServiceChargingType
from .cart_item import CartItem
from .service_request import ServiceRequest
from .booking import Booking
from .booking_status_history import BookingStatusHistory
from .provider_earning import ProviderEarning
from .deletion_override import DeletionOverride


__all__ = [
    "User",
    "ServiceCategory",
    "CatalogService",
    "ServiceChargingType",
    "CartItem",
    "ServiceRequest",
    "Booking",
    "BookingStatusHistory",
    "ProviderEarning",
    "DeletionOverride",
]
