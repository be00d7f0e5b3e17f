"""
Cache-invalidation events pushed from the engine to the presentation layer.

Services publish after a successful commit; subscribers (API caches, websocket
fan-out, test probes) decide what to drop.
"""

from dataclasses import dataclass
from typing import Callable, List

import structlog


logger = structlog.get_logger(__name__)

CART = "cart"
BOOKINGS = "bookings"
UNREAD_COUNT = "unread-count"


@dataclass(frozen=True)
class InvalidationEvent:
    scope: str
    user_id: int


Subscriber = Callable[[InvalidationEvent], None]


class InvalidationHub:
    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Subscriber:
        self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, scope: str, *user_ids: int) -> None:
        for user_id in dict.fromkeys(u for u in user_ids if u is not None):
            event = InvalidationEvent(scope=scope, user_id=user_id)
            for callback in list(self._subscribers):
                try:
                    callback(event)
                except Exception:
                    # the write is already committed; a broken subscriber must not mask it
                    logger.exception("Invalidation subscriber failed", scope=scope, user_id=user_id)
