"""Tests for per-user unread counts and the chat service client."""

import httpx
import pytest

from servicehub import exceptions
from servicehub.enums import BookingStatus
from servicehub.services.booking_service import BookingService
from servicehub.services.chat_gateway import HttpChatGateway, NullChatGateway, build_chat_gateway
from servicehub.services.notification_service import NotificationCounter
from servicehub.services.quote_service import QuoteService


@pytest.fixture
def counter(db, chat_gateway):
    return NotificationCounter(db, chat_gateway)


@pytest.fixture
def bookings(db, hub):
    return BookingService(db, hub)


class TestBookingUnreadCount:
    async def test_new_booking_is_unread_for_the_provider_only(self, counter, seed, make_booking):
        await make_booking()

        assert await counter.booking_count(seed.provider.id) == 1
        assert await counter.booking_count(seed.client.id) == 0

    async def test_provider_change_is_unread_for_the_client(self, counter, bookings, seed, make_booking):
        booking = await make_booking()
        await bookings.transition(seed.provider, booking.id, BookingStatus.ACCEPTED)

        assert await counter.booking_count(seed.client.id) == 1
        assert await counter.booking_count(seed.provider.id) == 0

    async def test_acknowledge_clears_without_bumping_version(self, counter, bookings, seed, make_booking):
        booking = await make_booking()
        booking = await bookings.transition(seed.provider, booking.id, BookingStatus.ACCEPTED)
        version = booking.version

        booking = await bookings.acknowledge(seed.client, booking.id)

        assert booking.version == version
        assert await counter.booking_count(seed.client.id) == 0

    async def test_admin_change_is_unread_for_both_parties(self, counter, bookings, seed, make_booking):
        booking = await make_booking()
        await bookings.acknowledge(seed.provider, booking.id)

        await bookings.transition(seed.admin, booking.id, BookingStatus.CANCELLED, reason="Cliente sem contato")

        assert await counter.booking_count(seed.client.id) == 1
        assert await counter.booking_count(seed.provider.id) == 1
        assert await counter.booking_count(seed.admin.id) == 0

    async def test_recounts_on_every_call(self, counter, seed, make_booking):
        for expected in (1, 2, 3):
            await make_booking()
            assert await counter.booking_count(seed.provider.id) == expected

    async def test_unknown_user(self, counter):
        assert await counter.booking_count(9999) == 0


class TestQuoteUnreadCount:
    @pytest.fixture
    def quotes(self, db, hub):
        return QuoteService(db, hub)

    async def test_pending_request_counts_for_its_provider(self, counter, quotes, seed):
        await quotes.request_quote(seed.client, seed.renovation.id)

        assert await counter.quote_count(seed.provider.id) == 1
        assert await counter.quote_count(seed.client.id) == 0
        assert await counter.quote_count(seed.other_provider.id) == 0

        unread = await counter.unread_count(seed.provider)
        assert unread.quotes == 1
        assert unread.total == 1

    @pytest.mark.parametrize("close", ["respond", "reject"])
    async def test_closed_request_drops_out(self, counter, quotes, seed, close):
        request = await quotes.request_quote(seed.client, seed.renovation.id)

        if close == "respond":
            await quotes.respond(seed.provider, request.id, 700)
        else:
            await quotes.reject(seed.provider, request.id)

        assert await counter.quote_count(seed.provider.id) == 0


class TestUnreadCount:
    async def test_merges_chat_messages(self, counter, chat_gateway, seed, make_booking):
        await make_booking()
        chat_gateway.counts[seed.provider.id] = 3

        unread = await counter.unread_count(seed.provider)

        assert unread.bookings == 1
        assert unread.messages == 3
        assert unread.total == 4
        assert chat_gateway.calls == [seed.provider.id]

    async def test_without_chat_service(self, db, seed):
        unread = await NotificationCounter(db).unread_count(seed.client)

        assert unread.total == 0


class TestHttpChatGateway:
    async def test_reads_count(self):
        def handler(request):
            assert request.url.path == "/chat/users/7/unread-count"
            return httpx.Response(200, json={"count": 4})

        gateway = HttpChatGateway("http://chat.local/chat/", transport=httpx.MockTransport(handler))

        assert await gateway.unread_count(7) == 4

    async def test_negative_count_is_floored(self):
        gateway = HttpChatGateway(
            "http://chat.local", transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"count": -2}))
        )

        assert await gateway.unread_count(7) == 0

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(503),
            httpx.Response(200, json={"count": "many"}),
            httpx.Response(200, json=["not", "an", "object"]),
        ],
    )
    async def test_failures_surface_as_upstream_errors(self, response):
        gateway = HttpChatGateway("http://chat.local", transport=httpx.MockTransport(lambda request: response))

        with pytest.raises(exceptions.UpstreamServiceException):
            await gateway.unread_count(7)

    def test_factory(self):
        assert isinstance(build_chat_gateway(""), NullChatGateway)
        assert isinstance(build_chat_gateway("http://chat.local"), HttpChatGateway)
