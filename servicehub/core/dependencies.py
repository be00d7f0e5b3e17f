from dataclasses import dataclass
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, AsyncGenerator, List, Optional

from ..enums import UserRole
from ..exceptions import ActorRequiredException, UnauthorizedActionException
from ..db.database import AsyncSessionLocal
from ..services.chat_gateway import ChatGateway, build_chat_gateway
from ..services.invalidation import InvalidationHub
from .logging import add_context


@dataclass(frozen=True)
class Actor:
    """The authenticated caller as vouched for by the identity gateway."""

    id: int
    role: UserRole


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Asynchronous dependency that provides a database session for FastAPI routes.

    Yields:
        AsyncSession: An instance of the asynchronous database session.

    Usage:
        Use as a dependency in FastAPI endpoints to access the database session.
        The session is automatically closed after the request is processed.
    """

    async with AsyncSessionLocal() as db:
        yield db


async def get_current_actor(
    x_actor_id: Optional[int] = Header(None),
    x_actor_role: Optional[UserRole] = Header(None),
) -> Actor:
    """
    Resolve the caller from the headers set by the upstream identity gateway.

    Authentication happens before the request reaches this service, so the
    headers are trusted as-is; a request without them never passed the gateway.

    Raises:
        ActorRequiredException: If either header is missing.
    """
    if x_actor_id is None or x_actor_role is None:
        raise ActorRequiredException()

    add_context(actor_id=x_actor_id, actor_role=x_actor_role.value)
    return Actor(id=x_actor_id, role=x_actor_role)


def get_chat_gateway() -> ChatGateway:
    return build_chat_gateway()


def get_invalidation_hub(request: Request) -> InvalidationHub:
    """The application-wide hub, created once at startup."""
    return request.app.state.invalidation_hub


class RoleChecker:
    """
    Dependency class for FastAPI route protection using Role Based Access Control (RBAC).
    Restricts an endpoint to actors holding one of ``allowed_roles``.

    Args:
        allowed_roles (List[UserRole]): A list of roles that are allowed to access the endpoint.
    """

    def __init__(self, allowed_roles: List[UserRole]):
        self.allowed_roles = allowed_roles


    async def __call__(self, actor: Actor = Depends(get_current_actor)) -> Any:
        if actor.role in self.allowed_roles:
            return True

        raise UnauthorizedActionException("You don't have the required role to access this endpoint!")
