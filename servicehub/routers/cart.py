from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, get_current_actor, get_db, get_invalidation_hub, RoleChecker
from ..enums import UserRole
from ..schemas.cart import CartItemCreate, CartItemQuantityUpdate, CartItemResponse, CartResponse
from ..services.cart_service import CartService
from ..services.invalidation import InvalidationHub


router = APIRouter()
clients_only = Depends(RoleChecker([UserRole.CLIENT]))


async def get_cart_service(
    db: AsyncSession = Depends(get_db),
    hub: InvalidationHub = Depends(get_invalidation_hub),
) -> CartService:
    return CartService(db, hub)


@router.get("/", dependencies=[clients_only], response_model=CartResponse)
async def get_cart(
    current_actor: Actor = Depends(get_current_actor),
    service: CartService = Depends(get_cart_service),
):
    """Get the current client's cart with its subtotal"""
    return await service.get_summary(current_actor)


@router.post("/items", dependencies=[clients_only], response_model=CartItemResponse, status_code=status.HTTP_201_CREATED)
async def add_service_to_cart(
    item: CartItemCreate,
    current_actor: Actor = Depends(get_current_actor),
    service: CartService = Depends(get_cart_service),
):
    """
    Add a service to the cart.

    - The unit price is resolved and frozen on the item.
    - Services without a price must go through a quote request instead.
    """
    return await service.add_item(
        current_actor,
        item.service_id,
        charging_type_id=item.charging_type_id,
        quantity=item.quantity,
        provider_id=item.provider_id,
        notes=item.notes,
    )


@router.put("/items/{item_id}", dependencies=[clients_only], response_model=CartItemResponse)
async def update_cart_item_quantity(
    data: CartItemQuantityUpdate,
    item_id: int = Path(..., description="ID of the cart item"),
    current_actor: Actor = Depends(get_current_actor),
    service: CartService = Depends(get_cart_service),
):
    """Update quantity of a cart item"""
    return await service.set_quantity(current_actor, item_id, data.quantity, data.expected_version)


@router.delete("/items/{item_id}", dependencies=[clients_only], status_code=status.HTTP_204_NO_CONTENT)
async def remove_cart_item(
    item_id: int = Path(..., description="ID of the cart item"),
    current_actor: Actor = Depends(get_current_actor),
    service: CartService = Depends(get_cart_service),
):
    """Remove an item from the cart"""
    await service.remove_item(current_actor, item_id)


@router.delete("/", dependencies=[clients_only])
async def clear_cart(
    current_actor: Actor = Depends(get_current_actor),
    service: CartService = Depends(get_cart_service),
):
    """Remove every item from the cart"""
    removed = await service.clear(current_actor)
    return {"removed": removed}
