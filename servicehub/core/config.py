from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """
    Settings class to retrieve environment variables.
    """

    DATABASE_URL: str = "sqlite+aiosqlite:///./servicehub.db"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"     # console or json
    SQL_ECHO: bool = False

    # Cart
    CART_MIN_QUANTITY: int = 1
    CART_MAX_QUANTITY: int = 10

    # Bookings
    PLATFORM_COMMISSION_RATE: float = 10.0     # percentage kept by the platform
    CONFLICT_RETRY_ATTEMPTS: int = 3

    # Chat collaborator
    CHAT_SERVICE_URL: Optional[str] = None
    CHAT_SERVICE_TIMEOUT: float = 2.0

    model_config = SettingsConfigDict(
        env_file='.env',
        extra='ignore',
    )


Config = Settings()
