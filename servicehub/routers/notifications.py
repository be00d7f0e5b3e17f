from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, get_chat_gateway, get_current_actor, get_db
from ..schemas.notification import UnreadCountResponse
from ..services.chat_gateway import ChatGateway
from ..services.notification_service import NotificationCounter


router = APIRouter()


async def get_notification_counter(
    db: AsyncSession = Depends(get_db),
    chat_gateway: ChatGateway = Depends(get_chat_gateway),
) -> NotificationCounter:
    return NotificationCounter(db, chat_gateway)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_actor: Actor = Depends(get_current_actor),
    counter: NotificationCounter = Depends(get_notification_counter),
):
    """Unread booking updates, pending quote requests and unread chat messages, for UI polling"""
    return await counter.unread_count(current_actor)
