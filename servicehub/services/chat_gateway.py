from typing import Optional, Protocol

import httpx
import structlog

from ..core.config import Config
from ..exceptions import UpstreamServiceException


logger = structlog.get_logger(__name__)


class ChatGateway(Protocol):
    async def unread_count(self, user_id: int) -> int:
        ...


class NullChatGateway:
    """Used when no chat service is configured."""

    async def unread_count(self, user_id: int) -> int:
        return 0


class HttpChatGateway:
    """Reads unread-message counts from the chat service. Never changes chat state."""

    def __init__(self, base_url: str, timeout: float = 2.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def unread_count(self, user_id: int) -> int:
        url = f"{self.base_url}/users/{user_id}/unread-count"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Chat service request failed", user_id=user_id, error=str(e))
            raise UpstreamServiceException("Chat service is unavailable.") from e

        try:
            count = int(response.json().get("count", 0))
        except (TypeError, ValueError, AttributeError) as e:
            raise UpstreamServiceException("Chat service returned an invalid response.") from e

        return max(count, 0)


def build_chat_gateway(base_url: Optional[str] = None) -> ChatGateway:
    base_url = base_url or Config.CHAT_SERVICE_URL
    if not base_url:
        return NullChatGateway()
    return HttpChatGateway(base_url, timeout=Config.CHAT_SERVICE_TIMEOUT)
