from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from servicehub import app
from servicehub.core.dependencies import Actor, get_chat_gateway, get_db, get_invalidation_hub
from servicehub.db.base import Base
from servicehub.db.database import enable_sqlite_foreign_keys
from servicehub.enums import ChargingType, UserRole
from servicehub.models import CatalogService, ServiceCategory, ServiceChargingType, User
from servicehub.services.booking_service import BookingService
from servicehub.services.invalidation import InvalidationHub


class FakeChatGateway:
    """Chat collaborator stand-in with fixed unread counts per user."""

    def __init__(self):
        self.counts = {}
        self.calls = []

    async def unread_count(self, user_id: int) -> int:
        self.calls.append(user_id)
        return self.counts.get(user_id, 0)


@pytest.fixture
async def engine(tmp_path):
    engine = enable_sqlite_foreign_keys(
        create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'servicehub-test.db'}")
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def hub():
    return InvalidationHub()


@pytest.fixture
def events(hub):
    """Every invalidation published on ``hub`` during the test, as (scope, user_id)."""
    received = []
    hub.subscribe(lambda event: received.append((event.scope, event.user_id)))
    return received


@pytest.fixture
async def seed(db):
    client = User(name="Ana Souza", email="ana@example.com", role=UserRole.CLIENT)
    other_client = User(name="Bruno Lima", email="bruno@example.com", role=UserRole.CLIENT)
    provider = User(name="Carlos Encanador", email="carlos@example.com", role=UserRole.PROVIDER)
    other_provider = User(name="Daniela Reparos", email="daniela@example.com", role=UserRole.PROVIDER)
    admin = User(name="Admin", email="admin@example.com", role=UserRole.ADMIN)
    category = ServiceCategory(name="Encanamento")
    db.add_all([client, other_client, provider, other_provider, admin, category])
    await db.flush()

    sink = CatalogService(
        category_id=category.id,
        provider_id=provider.id,
        name="Desentupimento de Pia",
        description="Desentupimento de pia de cozinha ou banheiro",
        price=None,
    )
    renovation = CatalogService(
        category_id=category.id,
        provider_id=provider.id,
        name="Reforma de Banheiro",
        description="Reforma completa, orçamento sob consulta",
        price=None,
    )
    shower = CatalogService(
        category_id=category.id,
        provider_id=provider.id,
        name="Instalação de Chuveiro",
        description="Instalação de chuveiro elétrico",
        price=120.0,
    )
    retired = CatalogService(
        category_id=category.id,
        provider_id=provider.id,
        name="Conserto de Aquecedor",
        description="Fora de catálogo",
        price=200.0,
        is_active=False,
    )
    db.add_all([sink, renovation, shower, retired])
    await db.flush()

    sink_visit = ServiceChargingType(service_id=sink.id, charging_type=ChargingType.VISIT, price=80.0)
    sink_hour = ServiceChargingType(service_id=sink.id, charging_type=ChargingType.HOUR, price=45.0)
    renovation_quote = ServiceChargingType(service_id=renovation.id, charging_type=ChargingType.QUOTE, price=None)
    db.add_all([sink_visit, sink_hour, renovation_quote])
    await db.commit()

    return SimpleNamespace(
        client=Actor(client.id, UserRole.CLIENT),
        other_client=Actor(other_client.id, UserRole.CLIENT),
        provider=Actor(provider.id, UserRole.PROVIDER),
        other_provider=Actor(other_provider.id, UserRole.PROVIDER),
        admin=Actor(admin.id, UserRole.ADMIN),
        category=category,
        sink=sink,
        sink_visit=sink_visit,
        sink_hour=sink_hour,
        renovation=renovation,
        renovation_quote=renovation_quote,
        shower=shower,
        retired=retired,
    )


@pytest.fixture
def make_booking(db, seed, hub):
    """Open and commit a pending booking for ``service`` without going through the cart."""

    async def _make_booking(service=None, client=None, charging_type_id=None, unit_price=80.0, quantity=1):
        service = service or seed.sink
        client = client or seed.client

        booking = await BookingService(db, hub).open_booking(
            client,
            client_id=client.id,
            provider_id=seed.provider.id,
            service=service,
            unit_price=unit_price,
            quantity=quantity,
            charging_type_id=charging_type_id,
        )
        await db.commit()
        return booking

    return _make_booking


@pytest.fixture
def chat_gateway():
    return FakeChatGateway()


@pytest.fixture
async def api(session_factory, seed, chat_gateway, hub):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_chat_gateway] = lambda: chat_gateway
    app.dependency_overrides[get_invalidation_hub] = lambda: hub

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
