"""
Pre-deletion checks for catalog entities.

``check_deletable`` only reads. ``delete`` re-runs the check inside the same
transaction as the delete, with the entity row locked, so a booking created
between an admin's review and the delete cannot slip through unnoticed.
"""

import hashlib
import json
from typing import Dict, List, Optional, Set

import structlog
from sqlalchemy import and_, delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import exceptions
from ..enums import CatalogEntityKind, ServiceRequestStatus, UserRole
from ..exceptions import NotFoundException
from ..models import (
    Booking,
    CartItem,
    CatalogService,
    DeletionOverride,
    ProviderEarning,
    ServiceChargingType,
    ServiceRequest,
)
from ..models.base import utcnow
from ..schemas.catalog import CatalogDeleteResponse, DependencyCheckResult
from .invalidation import CART, UNREAD_COUNT, InvalidationHub


logger = structlog.get_logger(__name__)

# Historical records: any of these makes a plain delete unsafe
TRANSACTIONAL_COUNTS = ("order_items_count", "provider_earnings_count")

_NOUNS = {
    CatalogEntityKind.SERVICE: "service",
    CatalogEntityKind.CHARGING_TYPE: "charging type",
}


def _plural(count: int, word: str, plural: Optional[str] = None) -> str:
    if count == 1:
        return f"{count} {word}"
    return f"{count} {plural or word + 's'}"


def build_warnings(kind: CatalogEntityKind, counts: Dict[str, int]) -> List[str]:
    """Display-ready warnings, one per non-zero dependency category."""
    noun = _NOUNS[kind]
    warnings = []

    if counts["order_items_count"]:
        warnings.append(f"This {noun} has {_plural(counts['order_items_count'], 'linked order')}")
    if counts["provider_earnings_count"]:
        warnings.append(
            f"This {noun} has {_plural(counts['provider_earnings_count'], 'provider earnings record')}"
        )
    if counts["charging_types_count"]:
        warnings.append(
            f"This {noun} has {_plural(counts['charging_types_count'], 'charging type')} that will also be deleted"
        )
    if counts["service_requests_count"]:
        warnings.append(
            f"This {noun} has {_plural(counts['service_requests_count'], 'pending quote request')} that will be closed"
        )
    if counts["cart_items_count"]:
        warnings.append(
            f"This {noun} is in {_plural(counts['cart_items_count'], 'client cart')} and will be removed from them"
        )

    if any(counts[key] for key in TRANSACTIONAL_COUNTS):
        warnings.append(f"Deleting this {noun} may affect order history")

    return warnings


def build_confirmation_token(kind: CatalogEntityKind, entity_id: int, counts: Dict[str, int]) -> str:
    """Fingerprint of the counts an admin reviewed; changes whenever any count changes."""
    payload = json.dumps({"kind": kind.value, "id": entity_id, "counts": counts}, sort_keys=True)
    return hashlib.sha256(payload.encode()).hexdigest()[:16]


class DependencyGuard:
    def __init__(self, db: AsyncSession, hub: InvalidationHub):
        self.db = db
        self.hub = hub


    async def _count(self, query) -> int:
        result = await self.db.execute(query)
        return result.scalar() or 0


    async def _get_entity(self, kind: CatalogEntityKind, entity_id: int, lock: bool = False):
        model = CatalogService if kind == CatalogEntityKind.SERVICE else ServiceChargingType

        query = select(model).where(model.id == entity_id)
        if lock:
            query = query.with_for_update()

        result = await self.db.execute(query)
        entity = result.scalars().first()

        if not entity:
            raise NotFoundException(f"{_NOUNS[kind].capitalize()} with ID {entity_id} not found")

        return entity


    def _order_items_query(self, kind: CatalogEntityKind, entity_id: int):
        column = Booking.service_id if kind == CatalogEntityKind.SERVICE else Booking.charging_type_id
        return select(func.count()).select_from(Booking).where(column == entity_id)


    def _earnings_query(self, kind: CatalogEntityKind, entity_id: int):
        query = select(func.count()).select_from(ProviderEarning)
        if kind == CatalogEntityKind.SERVICE:
            return query.where(ProviderEarning.service_id == entity_id)

        return query.join(Booking, Booking.id == ProviderEarning.booking_id).where(
            Booking.charging_type_id == entity_id
        )


    async def count_dependencies(self, kind: CatalogEntityKind, entity_id: int) -> Dict[str, int]:
        """Count each kind of record referencing the entity, independently."""
        counts = {
            "order_items_count": await self._count(self._order_items_query(kind, entity_id)),
            "charging_types_count": 0,
            "service_requests_count": 0,
            "provider_earnings_count": await self._count(self._earnings_query(kind, entity_id)),
        }

        if kind == CatalogEntityKind.SERVICE:
            counts["charging_types_count"] = await self._count(
                select(func.count())
                .select_from(ServiceChargingType)
                .where(ServiceChargingType.service_id == entity_id)
            )
            counts["service_requests_count"] = await self._count(
                select(func.count())
                .select_from(ServiceRequest)
                .where(
                    and_(
                        ServiceRequest.service_id == entity_id,
                        ServiceRequest.status == ServiceRequestStatus.PENDING,
                    )
                )
            )
            counts["cart_items_count"] = await self._count(
                select(func.count()).select_from(CartItem).where(CartItem.service_id == entity_id)
            )
        else:
            counts["cart_items_count"] = await self._count(
                select(func.count()).select_from(CartItem).where(CartItem.charging_type_id == entity_id)
            )

        return counts


    async def check_deletable(self, kind: CatalogEntityKind, entity_id: int) -> DependencyCheckResult:
        """
        Decide whether a catalog entity can be hard-deleted.

        - nothing references it: deletable, no warnings
        - only configuration or open carts/requests reference it: deletable, with warnings
        - bookings or provider earnings reference it: blocked, with warnings

        Never writes.
        """
        kind = CatalogEntityKind(kind)
        await self._get_entity(kind, entity_id)

        counts = await self.count_dependencies(kind, entity_id)
        blocked = any(counts[key] for key in TRANSACTIONAL_COUNTS)

        return DependencyCheckResult(
            entity_kind=kind,
            entity_id=entity_id,
            can_delete=not blocked,
            warnings=build_warnings(kind, counts),
            confirmation_token=build_confirmation_token(kind, entity_id, counts),
            **counts,
        )


    async def _claim(self, kind: CatalogEntityKind, entity_id: int, result: DependencyCheckResult) -> None:
        """
        Write-lock the entity row, but only while its bookings and earnings
        still number what ``result`` counted. Anything committed after the
        count makes the statement match nothing.
        """
        model = CatalogService if kind == CatalogEntityKind.SERVICE else ServiceChargingType

        stmt = (
            update(model)
            .where(
                and_(
                    model.id == entity_id,
                    self._order_items_query(kind, entity_id).scalar_subquery() == result.order_items_count,
                    self._earnings_query(kind, entity_id).scalar_subquery() == result.provider_earnings_count,
                )
            )
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        claimed = await self.db.execute(stmt)
        if claimed.rowcount != 1:
            raise exceptions.ConcurrentModificationException(
                "Dependencies changed while deleting. Please check again."
            )


    async def _detach(self, stmt, expected: int) -> None:
        detached = await self.db.execute(stmt.execution_options(synchronize_session=False))
        if detached.rowcount != expected:
            raise exceptions.ConcurrentModificationException(
                "Dependencies changed while deleting. Please check again."
            )


    async def _affected_cart_clients(self, column, entity_id: int) -> Set[int]:
        result = await self.db.execute(select(CartItem.client_id).where(column == entity_id).distinct())
        return set(result.scalars().all())


    async def _pending_request_providers(self, service_id: int) -> Set[int]:
        result = await self.db.execute(
            select(ServiceRequest.provider_id)
            .where(
                and_(
                    ServiceRequest.service_id == service_id,
                    ServiceRequest.status == ServiceRequestStatus.PENDING,
                    ServiceRequest.provider_id.isnot(None),
                )
            )
            .distinct()
        )
        return set(result.scalars().all())


    async def _delete_service(self, service_id: int, result: DependencyCheckResult, detach: bool) -> Set[int]:
        """Remove the service and everything it owns; with ``detach``, unhook its history first."""
        charging_type_ids = select(ServiceChargingType.id).where(ServiceChargingType.service_id == service_id)
        cart_clients = await self._affected_cart_clients(CartItem.service_id, service_id)

        if detach:
            # bookings and earnings keep their snapshots, only the live reference goes
            await self._detach(
                update(Booking).where(Booking.service_id == service_id).values(service_id=None),
                result.order_items_count,
            )
            await self._detach(
                update(ProviderEarning).where(ProviderEarning.service_id == service_id).values(service_id=None),
                result.provider_earnings_count,
            )
            await self.db.execute(
                update(Booking)
                .where(Booking.charging_type_id.in_(charging_type_ids))
                .values(charging_type_id=None)
                .execution_options(synchronize_session=False)
            )

        statements = [
            update(ServiceRequest)
            .where(
                and_(
                    ServiceRequest.service_id == service_id,
                    ServiceRequest.status == ServiceRequestStatus.PENDING,
                )
            )
            .values(status=ServiceRequestStatus.REJECTED),
            update(ServiceRequest).where(ServiceRequest.service_id == service_id).values(service_id=None),
            delete(CartItem).where(CartItem.service_id == service_id),
            delete(ServiceChargingType).where(ServiceChargingType.service_id == service_id),
            delete(CatalogService).where(CatalogService.id == service_id),
        ]
        for stmt in statements:
            await self.db.execute(stmt.execution_options(synchronize_session="fetch"))

        return cart_clients


    async def _delete_charging_type(self, charging_type_id: int, result: DependencyCheckResult, detach: bool) -> Set[int]:
        cart_clients = await self._affected_cart_clients(CartItem.charging_type_id, charging_type_id)

        if detach:
            await self._detach(
                update(Booking).where(Booking.charging_type_id == charging_type_id).values(charging_type_id=None),
                result.order_items_count,
            )

        statements = [
            delete(CartItem).where(CartItem.charging_type_id == charging_type_id),
            delete(ServiceChargingType).where(ServiceChargingType.id == charging_type_id),
        ]
        for stmt in statements:
            await self.db.execute(stmt.execution_options(synchronize_session="fetch"))

        return cart_clients


    async def delete(
        self,
        actor,
        kind: CatalogEntityKind,
        entity_id: int,
        force: bool = False,
        confirmation_token: Optional[str] = None,
    ) -> CatalogDeleteResponse:
        """
        Hard-delete a catalog entity behind the dependency check.

        A blocked entity is only deleted when an admin passes ``force=True``
        together with the ``confirmation_token`` of the check they reviewed.
        The override is logged and stored with the overridden warnings.

        The entity row is claimed against the counts before anything is
        removed, so a booking committed after the check aborts the delete
        instead of being detached unseen.

        Raises:
            UnauthorizedActionException: If the actor is not an admin.
            DependencyBlockedException: If the entity is blocked and the override is missing.
            ConcurrentModificationException: If the counts changed since the reviewed check.
        """
        kind = CatalogEntityKind(kind)

        if actor.role != UserRole.ADMIN:
            raise exceptions.UnauthorizedActionException("Only admins can delete catalog entries.")

        try:
            await self._get_entity(kind, entity_id, lock=True)
            result = await self.check_deletable(kind, entity_id)

            overridden = False
            if not result.can_delete:
                if not force:
                    raise exceptions.DependencyBlockedException(result.warnings)

                if not confirmation_token:
                    raise exceptions.DependencyBlockedException(
                        result.warnings,
                        detail="Forcing this delete requires confirming the listed warnings.",
                    )

                if confirmation_token != result.confirmation_token:
                    raise exceptions.ConcurrentModificationException(
                        "Dependencies changed since they were reviewed. Please check again."
                    )

                overridden = True

            await self._claim(kind, entity_id, result)

            quote_providers = set()
            if kind == CatalogEntityKind.SERVICE:
                quote_providers = await self._pending_request_providers(entity_id)
                cart_clients = await self._delete_service(entity_id, result, detach=overridden)
            else:
                cart_clients = await self._delete_charging_type(entity_id, result, detach=overridden)

            if overridden:
                self.db.add(
                    DeletionOverride(
                        entity_kind=kind,
                        entity_id=entity_id,
                        actor_id=actor.id,
                        warnings=result.warnings,
                        counts=result.model_dump(include={
                            "order_items_count",
                            "charging_types_count",
                            "service_requests_count",
                            "provider_earnings_count",
                            "cart_items_count",
                        }),
                    )
                )

            await self.db.commit()
        except exceptions.ConcurrentModificationException:
            await self.db.rollback()
            logger.warning(
                "Catalog delete lost a race",
                entity_kind=kind.value,
                entity_id=entity_id,
                actor_id=actor.id,
            )
            raise
        except Exception:
            await self.db.rollback()
            raise

        if overridden:
            logger.warning(
                "Catalog entry force-deleted past dependency guard",
                entity_kind=kind.value,
                entity_id=entity_id,
                actor_id=actor.id,
                overridden_warnings=result.warnings,
            )
        else:
            logger.info("Catalog entry deleted", entity_kind=kind.value, entity_id=entity_id, actor_id=actor.id)

        self.hub.publish(CART, *cart_clients)
        self.hub.publish(UNREAD_COUNT, *quote_providers)

        return CatalogDeleteResponse(
            entity_kind=kind,
            entity_id=entity_id,
            deleted=True,
            overridden=overridden,
            warnings=result.warnings,
        )


    async def set_active(self, actor, service_id: int, is_active: bool) -> CatalogService:
        """Soft (de)activation. Always allowed; references stay intact."""
        if actor.role != UserRole.ADMIN:
            raise exceptions.UnauthorizedActionException("Only admins can change a service's status.")

        service = await self._get_entity(CatalogEntityKind.SERVICE, service_id)
        service.is_active = is_active

        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(service)
        logger.info("Service status changed", service_id=service_id, is_active=is_active, actor_id=actor.id)
        return service
