"""Tests for checkout and the booking lifecycle against a real database."""

import pytest
from sqlalchemy import func, update
from sqlalchemy.future import select

from servicehub import exceptions
from servicehub.enums import BookingStatus, UserRole
from servicehub.exceptions import BadRequestException, NotFoundException
from servicehub.models import Booking, ProviderEarning, ServiceChargingType
from servicehub.services.booking_service import BookingService, is_valid_path, with_conflict_retry
from servicehub.services.cart_service import CartService
from servicehub.services.invalidation import BOOKINGS, UNREAD_COUNT


@pytest.fixture
def cart(db, hub):
    return CartService(db, hub)


@pytest.fixture
def bookings(db, hub):
    return BookingService(db, hub)


async def _count_bookings(db) -> int:
    result = await db.execute(select(func.count()).select_from(Booking))
    return result.scalar()


async def _statuses(bookings, actor, booking_id):
    return [entry.new_status for entry in await bookings.get_history(actor, booking_id)]


class TestSinkUncloggingScenario:
    async def test_checkout_accept_and_refused_completion(self, cart, bookings, seed):
        item = await cart.add_item(seed.client, seed.sink.id)
        item = await cart.set_quantity(seed.client, item.id, 2)

        booking = await bookings.create_from_cart(seed.client, item.id)

        assert booking.status == BookingStatus.PENDING
        assert booking.unit_price == 80.0
        assert booking.quantity == 2
        assert booking.total_price == 160.0
        assert booking.service_snapshot["name"] == "Desentupimento de Pia"
        assert booking.service_snapshot["charging_type"] == "visit"
        assert booking.service_snapshot["category"] == "Encanamento"
        assert await cart.list_items(seed.client) == []

        history = await bookings.get_history(seed.client, booking.id)
        assert len(history) == 1
        assert history[0].previous_status is None
        assert history[0].new_status == BookingStatus.PENDING

        booking = await bookings.transition(seed.provider, booking.id, BookingStatus.ACCEPTED)
        assert booking.status == BookingStatus.ACCEPTED
        assert booking.version == 2

        with pytest.raises(exceptions.IllegalTransitionException):
            await bookings.transition(seed.provider, booking.id, BookingStatus.COMPLETED)

        booking = await bookings.get_booking(seed.provider, booking.id)
        assert booking.status == BookingStatus.ACCEPTED
        assert await _statuses(bookings, seed.provider, booking.id) == [BookingStatus.PENDING, BookingStatus.ACCEPTED]


class TestCheckout:
    async def test_snapshot_survives_catalog_changes(self, cart, bookings, db, seed):
        item = await cart.add_item(seed.client, seed.sink.id)
        booking = await bookings.create_from_cart(seed.client, item.id)

        await db.execute(
            update(ServiceChargingType).where(ServiceChargingType.id == seed.sink_visit.id).values(price=150.0)
        )
        await db.commit()

        booking = await bookings.get_booking(seed.client, booking.id)
        assert booking.unit_price == 80.0
        assert booking.service_snapshot["unit_price"] == 80.0

    async def test_double_checkout_creates_one_booking(self, cart, bookings, db, seed):
        item = await cart.add_item(seed.client, seed.sink.id)

        await bookings.create_from_cart(seed.client, item.id)

        with pytest.raises((exceptions.StaleCartItemException, exceptions.ConcurrentModificationException)):
            await bookings.create_from_cart(seed.client, item.id)

        assert await _count_bookings(db) == 1

    async def test_double_checkout_from_two_sessions(self, cart, session_factory, db, seed, hub):
        item = await cart.add_item(seed.client, seed.sink.id)

        async with session_factory() as first_db, session_factory() as second_db:
            await BookingService(first_db, hub).create_from_cart(seed.client, item.id, expected_version=item.version)

            with pytest.raises(exceptions.StaleCartItemException):
                await BookingService(second_db, hub).create_from_cart(
                    seed.client, item.id, expected_version=item.version
                )

        assert await _count_bookings(db) == 1

    async def test_stale_version_leaves_cart_untouched(self, cart, bookings, db, seed):
        item = await cart.add_item(seed.client, seed.sink.id)
        await cart.set_quantity(seed.client, item.id, 3)

        with pytest.raises(exceptions.ConcurrentModificationException):
            await bookings.create_from_cart(seed.client, item.id, expected_version=1)

        assert await _count_bookings(db) == 0
        assert (await cart.get_item(seed.client, item.id)).quantity == 3

    async def test_another_clients_item_is_stale(self, cart, bookings, seed):
        item = await cart.add_item(seed.client, seed.sink.id)

        with pytest.raises(exceptions.StaleCartItemException):
            await bookings.create_from_cart(seed.other_client, item.id)

    async def test_only_clients_check_out(self, cart, bookings, seed):
        item = await cart.add_item(seed.client, seed.sink.id)

        with pytest.raises(exceptions.UnauthorizedActionException):
            await bookings.create_from_cart(seed.provider, item.id)

    async def test_publishes_to_both_parties(self, cart, bookings, seed, events):
        item = await cart.add_item(seed.client, seed.sink.id)
        events.clear()

        await bookings.create_from_cart(seed.client, item.id)

        assert (BOOKINGS, seed.client.id) in events
        assert (BOOKINGS, seed.provider.id) in events
        assert (UNREAD_COUNT, seed.provider.id) in events


class TestLifecycle:
    async def test_full_lifecycle_records_history_and_earnings(self, bookings, db, seed, make_booking):
        booking = await make_booking(unit_price=80.0, quantity=2)

        for target in (BookingStatus.ACCEPTED, BookingStatus.ONGOING, BookingStatus.COMPLETED):
            booking = await bookings.transition(seed.provider, booking.id, target, reason=f"to {target.value}")

        statuses = await _statuses(bookings, seed.client, booking.id)
        assert statuses == [
            BookingStatus.PENDING,
            BookingStatus.ACCEPTED,
            BookingStatus.ONGOING,
            BookingStatus.COMPLETED,
        ]
        assert is_valid_path(statuses)

        result = await db.execute(select(ProviderEarning).where(ProviderEarning.booking_id == booking.id))
        earning = result.scalars().one()
        assert earning.total_amount == 160.0
        assert earning.commission_amount == 16.0
        assert earning.provider_amount == 144.0

    async def test_ongoing_requires_accepted(self, bookings, seed, make_booking):
        booking = await make_booking()

        with pytest.raises(exceptions.IllegalTransitionException):
            await bookings.transition(seed.provider, booking.id, BookingStatus.ONGOING)

    async def test_client_cannot_accept(self, bookings, seed, make_booking):
        booking = await make_booking()

        with pytest.raises(exceptions.UnauthorizedActionException):
            await bookings.transition(seed.client, booking.id, BookingStatus.ACCEPTED)

    @pytest.mark.parametrize("role", ["client", "provider", "admin"])
    async def test_cancel_after_accept(self, bookings, seed, make_booking, role):
        booking = await make_booking()
        await bookings.transition(seed.provider, booking.id, BookingStatus.ACCEPTED)

        booking = await bookings.transition(getattr(seed, role), booking.id, BookingStatus.CANCELLED, reason="Mudou de ideia")

        assert booking.status == BookingStatus.CANCELLED
        history = await bookings.get_history(seed.admin, booking.id)
        assert history[-1].reason == "Mudou de ideia"
        assert history[-1].actor_role == UserRole(role)

    async def test_terminal_booking_cannot_move(self, bookings, seed, make_booking):
        booking = await make_booking()
        await bookings.transition(seed.client, booking.id, BookingStatus.CANCELLED, reason="Resolvi sozinho")

        with pytest.raises(exceptions.IllegalTransitionException):
            await bookings.transition(seed.provider, booking.id, BookingStatus.ACCEPTED)

    @pytest.mark.parametrize("reason", [None, "", "   ", "ok"])
    async def test_cancel_needs_a_reason(self, bookings, seed, make_booking, events, reason):
        booking = await make_booking()
        events.clear()

        with pytest.raises(BadRequestException):
            await bookings.transition(seed.client, booking.id, BookingStatus.CANCELLED, reason=reason)

        booking = await bookings.get_booking(seed.client, booking.id)
        assert booking.status == BookingStatus.PENDING
        assert booking.version == 1
        assert len(await bookings.get_history(seed.client, booking.id)) == 1
        assert events == []

    async def test_outsiders_cannot_see_the_booking(self, bookings, seed, make_booking):
        booking = await make_booking()

        with pytest.raises(NotFoundException):
            await bookings.transition(seed.other_provider, booking.id, BookingStatus.ACCEPTED)

        with pytest.raises(NotFoundException):
            await bookings.get_booking(seed.other_client, booking.id)

    async def test_stale_expected_version(self, bookings, seed, make_booking):
        booking = await make_booking()
        await bookings.transition(seed.provider, booking.id, BookingStatus.ACCEPTED)

        with pytest.raises(exceptions.ConcurrentModificationException):
            await bookings.transition(seed.client, booking.id, BookingStatus.CANCELLED, expected_version=1)

    async def test_competing_transitions_from_two_sessions(self, session_factory, seed, make_booking, hub):
        booking = await make_booking()

        async with session_factory() as provider_db, session_factory() as client_db:
            await BookingService(provider_db, hub).transition(seed.provider, booking.id, BookingStatus.ACCEPTED)

            # the client decided on the version it saw before the provider accepted
            with pytest.raises(exceptions.ConcurrentModificationException):
                await BookingService(client_db, hub).transition(
                    seed.client, booking.id, BookingStatus.CANCELLED, expected_version=booking.version
                )

    async def test_list_bookings_is_scoped(self, bookings, seed, make_booking):
        await make_booking()
        await make_booking(client=seed.other_client)

        assert len(await bookings.list_bookings(seed.client)) == 1
        assert len(await bookings.list_bookings(seed.provider)) == 2
        assert len(await bookings.list_bookings(seed.admin)) == 2
        assert await bookings.list_bookings(seed.other_provider) == []
        assert len(await bookings.list_bookings(seed.admin, status=BookingStatus.ACCEPTED)) == 0

    async def test_detail_lists_moves_open_to_the_actor(self, bookings, seed, make_booking):
        booking = await make_booking()

        provider_view = await bookings.get_detail(seed.provider, booking.id)
        client_view = await bookings.get_detail(seed.client, booking.id)

        assert provider_view.allowed_transitions == [BookingStatus.ACCEPTED, BookingStatus.CANCELLED]
        assert client_view.allowed_transitions == [BookingStatus.CANCELLED]
        assert len(client_view.history) == 1


class TestConflictRetry:
    async def test_retries_only_conflicts(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise exceptions.ConcurrentModificationException()
            return "done"

        assert await with_conflict_retry(flaky, attempts=3) == "done"
        assert len(calls) == 3

    async def test_gives_up_after_attempts(self):
        calls = []

        async def always_conflicts():
            calls.append(1)
            raise exceptions.ConcurrentModificationException()

        with pytest.raises(exceptions.ConcurrentModificationException):
            await with_conflict_retry(always_conflicts, attempts=2)

        assert len(calls) == 2

    async def test_other_errors_are_not_retried(self):
        calls = []

        async def illegal():
            calls.append(1)
            raise exceptions.IllegalTransitionException(BookingStatus.PENDING, BookingStatus.COMPLETED)

        with pytest.raises(exceptions.IllegalTransitionException):
            await with_conflict_retry(illegal, attempts=5)

        assert len(calls) == 1
