import enum


class UserRole(str, enum.Enum):
    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"


class ChargingType(str, enum.Enum):
    VISIT = "visit"
    HOUR = "hour"
    DAILY = "daily"
    PACKAGE = "package"
    FIXED = "fixed"
    PROJECT = "project"
    QUOTE = "quote"
    FREE = "free"       # deliberately free, resolves to 0.00 instead of a quote


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ServiceRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CatalogEntityKind(str, enum.Enum):
    SERVICE = "service"
    CHARGING_TYPE = "charging_type"
