from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import and_, delete, update
from typing import Any, Dict, List, Optional

import structlog

from .. import exceptions
from ..core.config import Config
from ..enums import UserRole
from ..exceptions import NotFoundException, BadRequestException
from ..models import CartItem, CatalogService, ServiceChargingType, User
from ..models.base import utcnow
from .invalidation import CART, InvalidationHub
from .pricing import resolve_price


logger = structlog.get_logger(__name__)


def clamp_quantity(quantity: int) -> int:
    """Keep a requested quantity inside the cart bounds instead of rejecting it."""
    return max(Config.CART_MIN_QUANTITY, min(Config.CART_MAX_QUANTITY, int(quantity)))


def _matches(column, value):
    return column.is_(None) if value is None else column == value


class CartService:
    def __init__(self, db: AsyncSession, hub: InvalidationHub):
        self.db = db
        self.hub = hub


    def _require_client(self, actor) -> None:
        if actor is None or actor.role != UserRole.CLIENT:
            raise exceptions.UnauthorizedActionException("Only clients can hold a cart.")


    async def _get_active_service(self, service_id: int) -> CatalogService:
        service = await self.db.get(CatalogService, service_id)
        if not service:
            raise NotFoundException(f"Service with ID {service_id} not found")

        if not service.is_active:
            raise BadRequestException("This service is not available")

        return service


    async def _charging_options(self, service_id: int) -> List[ServiceChargingType]:
        result = await self.db.execute(
            select(ServiceChargingType)
            .where(ServiceChargingType.service_id == service_id)
            .order_by(ServiceChargingType.id)
        )
        return list(result.scalars().all())


    async def _resolve_provider(self, service: CatalogService, provider_id: Optional[int]) -> int:
        provider_id = provider_id or service.provider_id
        if provider_id is None:
            raise BadRequestException("Please choose a provider for this service")

        provider = await self.db.get(User, provider_id)
        if not provider or provider.role != UserRole.PROVIDER:
            raise NotFoundException(f"Provider with ID {provider_id} not found")

        return provider_id


    async def get_item(self, actor, item_id: int) -> CartItem:
        """Fetch one of the actor's cart items, always re-reading the stored row."""
        self._require_client(actor)

        query = (
            select(CartItem)
            .where(and_(CartItem.id == item_id, CartItem.client_id == actor.id))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        item = result.scalars().first()

        if not item:
            raise NotFoundException(f"Cart item with ID {item_id} not found")

        return item


    async def _guarded_update(self, item: CartItem, **values: Any) -> CartItem:
        """Write ``values`` only if nobody touched the item since it was read."""
        stmt = (
            update(CartItem)
            .where(and_(CartItem.id == item.id, CartItem.version == item.version))
            .values(version=item.version + 1, **values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db.execute(stmt)
            if result.rowcount != 1:
                raise exceptions.ConcurrentModificationException()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(item)
        return item


    async def add_item(
        self,
        actor,
        service_id: int,
        charging_type_id: Optional[int] = None,
        quantity: int = 1,
        provider_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> CartItem:
        """
        Add a priced service to the client's cart.

        The unit price is resolved now and stored on the item, so later catalog
        price changes do not leak into the cart. Adding the same service, option,
        provider and price again merges into the existing line.

        Raises:
            UnauthorizedActionException: If the actor is not a client.
            QuoteOnlyServiceException: If the service has no resolvable price.
        """
        self._require_client(actor)

        service = await self._get_active_service(service_id)
        options = await self._charging_options(service.id)

        resolution = resolve_price(service, options, charging_type_id)
        if resolution.quote_only:
            logger.info("Quote-only service rejected from cart", client_id=actor.id, service_id=service.id)
            raise exceptions.QuoteOnlyServiceException(service.id)

        provider_id = await self._resolve_provider(service, provider_id)
        quantity = clamp_quantity(quantity)

        # Check if the same priced line is already in the cart
        query = select(CartItem).where(
            and_(
                CartItem.client_id == actor.id,
                CartItem.service_id == service.id,
                _matches(CartItem.provider_id, provider_id),
                _matches(CartItem.charging_type_id, resolution.charging_type_id),
                CartItem.unit_price == resolution.unit_price,
            )
        ).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        existing_item = result.scalars().first()

        if existing_item:
            item = await self._guarded_update(
                existing_item,
                quantity=clamp_quantity(existing_item.quantity + quantity),
                notes=notes or existing_item.notes,
            )
        else:
            item = CartItem(
                client_id=actor.id,
                service_id=service.id,
                provider_id=provider_id,
                charging_type_id=resolution.charging_type_id,
                charging_type=resolution.charging_type,
                quantity=quantity,
                unit_price=resolution.unit_price,
                notes=notes,
                version=1,
                added_at=utcnow(),
            )
            self.db.add(item)

            try:
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

            await self.db.refresh(item)

        logger.info(
            "Cart item added",
            client_id=actor.id,
            item_id=item.id,
            service_id=service.id,
            unit_price=item.unit_price,
            quantity=item.quantity,
        )
        self.hub.publish(CART, actor.id)
        return item


    async def set_quantity(self, actor, item_id: int, quantity: int, expected_version: Optional[int] = None) -> CartItem:
        """Set a line's quantity, clamped to the cart bounds."""
        item = await self.get_item(actor, item_id)

        if expected_version is not None and expected_version != item.version:
            raise exceptions.ConcurrentModificationException()

        item = await self._guarded_update(item, quantity=clamp_quantity(quantity))

        logger.info("Cart item quantity updated", client_id=actor.id, item_id=item.id, quantity=item.quantity)
        self.hub.publish(CART, actor.id)
        return item


    async def remove_item(self, actor, item_id: int) -> bool:
        """Remove an item from the cart"""
        self._require_client(actor)

        stmt = delete(CartItem).where(and_(CartItem.id == item_id, CartItem.client_id == actor.id))

        try:
            result = await self.db.execute(stmt)
            if result.rowcount != 1:
                raise NotFoundException(f"Cart item with ID {item_id} not found")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Cart item removed", client_id=actor.id, item_id=item_id)
        self.hub.publish(CART, actor.id)
        return True


    async def clear(self, actor) -> int:
        """Remove all items from the client's cart. Returns how many were removed."""
        self._require_client(actor)

        try:
            result = await self.db.execute(delete(CartItem).where(CartItem.client_id == actor.id))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        self.hub.publish(CART, actor.id)
        return result.rowcount


    async def list_items(self, actor) -> List[CartItem]:
        """The client's cart items in the order they were added."""
        self._require_client(actor)

        query = (
            select(CartItem)
            .where(CartItem.client_id == actor.id)
            .order_by(CartItem.added_at, CartItem.id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())


    async def get_summary(self, actor) -> Dict[str, Any]:
        """Cart items with service names and the running subtotal."""
        items = await self.list_items(actor)

        names: Dict[int, str] = {}
        service_ids = {item.service_id for item in items}
        if service_ids:
            result = await self.db.execute(
                select(CatalogService.id, CatalogService.name).where(CatalogService.id.in_(service_ids))
            )
            names = dict(result.all())

        lines = []
        for item in items:
            lines.append({
                "id": item.id,
                "service_id": item.service_id,
                "service_name": names.get(item.service_id, ""),
                "provider_id": item.provider_id,
                "charging_type_id": item.charging_type_id,
                "charging_type": item.charging_type,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
                "notes": item.notes,
                "version": item.version,
                "added_at": item.added_at,
            })

        return {
            "client_id": actor.id,
            "items": lines,
            "item_count": sum(item.quantity for item in items),
            "subtotal": round(sum(item.total_price for item in items), 2),
        }
