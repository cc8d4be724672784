"""
Shared test fixtures for the order lifecycle test suite.

Every test gets a fresh in-memory SQLite database (aiosqlite), a seeded
demo catalog, an in-process event distributor and, for HTTP tests, an
httpx client bound to the FastAPI app with its dependencies overridden.
"""

from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
from argon2 import PasswordHasher
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

import restaurant_orders.main as main_module
import restaurant_orders.models  # noqa: F401
from restaurant_orders.core.security import (
    AuthenticatedUser,
    CredentialVerifier,
    PasswordService,
    get_credential_verifier,
    get_password_service,
)
from restaurant_orders.database import Base, get_db, get_session_factory
from restaurant_orders.main import app
from restaurant_orders.models import (
    Customization,
    Location,
    MenuItem,
    User,
    UserRole,
)
from restaurant_orders.services.catalog import SqlCatalogReader
from restaurant_orders.services.lifecycle import OrderLifecycleManager
from restaurant_orders.services.realtime import (
    EventDistributor,
    LocalEventRelay,
    get_event_distributor,
)
from restaurant_orders.services.store import SqlOrderStore

TEST_SECRET = "test-signing-secret-with-enough-bytes-for-hs256"


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory, catalog):
    async with session_factory() as session:
        yield session


@pytest.fixture
def passwords():
    # Minimal Argon2 cost
    return PasswordService(PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


@pytest.fixture
async def catalog(session_factory, passwords):
    """
    Seed two active locations, one inactive location and one user per role.

    menu:
        burger  10.00 @ main     (customization cheese 2.00, bacon 1.25)
        fries    3.50 @ main     unavailable
        taco     4.25 @ harbor   (customization salsa 0.75)
        soup     6.00 @ closed
    """
    async with session_factory() as session:
        main = Location(name="Main Street", address="1 Main St")
        harbor = Location(name="Harbor", address="48 Pier Rd")
        closed = Location(name="Closed Site", address="9 Old Rd", is_active=False)
        session.add_all([main, harbor, closed])
        await session.flush()

        burger = MenuItem(title="Burger", price=Decimal("10.00"), category="Mains", location_id=main.id)
        fries = MenuItem(
            title="Fries", price=Decimal("3.50"), category="Sides",
            location_id=main.id, is_available=False,
        )
        taco = MenuItem(title="Taco", price=Decimal("4.25"), category="Mains", location_id=harbor.id)
        soup = MenuItem(title="Soup", price=Decimal("6.00"), category="Soup", location_id=closed.id)
        session.add_all([burger, fries, taco, soup])
        await session.flush()

        cheese = Customization(name="Cheese", price=Decimal("2.00"), category="Extras", menu_item_id=burger.id)
        bacon = Customization(name="Bacon", price=Decimal("1.25"), category="Extras", menu_item_id=burger.id)
        salsa = Customization(name="Salsa", price=Decimal("0.75"), category="Extras", menu_item_id=taco.id)
        session.add_all([cheese, bacon, salsa])

        users = {}
        for key, role in [
            ("customer", UserRole.CUSTOMER),
            ("other_customer", UserRole.CUSTOMER),
            ("waiter", UserRole.WAITER),
            ("kitchen", UserRole.KITCHEN),
            ("admin", UserRole.ADMIN),
        ]:
            user = User(
                email=f"{key}@example.com",
                password_hash=passwords.hash("secret123"),
                first_name=key.title(),
                role=role,
            )
            session.add(user)
            users[key] = user
        await session.commit()

        return SimpleNamespace(
            main=main.id,
            harbor=harbor.id,
            closed=closed.id,
            burger=burger.id,
            fries=fries.id,
            taco=taco.id,
            soup=soup.id,
            cheese=cheese.id,
            bacon=bacon.id,
            salsa=salsa.id,
            users={
                key: AuthenticatedUser(user_id=user.id, email=user.email, role=user.role)
                for key, user in users.items()
            },
        )


@pytest.fixture
def users(catalog):
    return SimpleNamespace(**catalog.users)


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def distributor():
    return EventDistributor(LocalEventRelay(), outbox_size=10)


@pytest.fixture
def lifecycle(db, distributor):
    return OrderLifecycleManager(
        catalog=SqlCatalogReader(db),
        store=SqlOrderStore(db),
        distributor=distributor,
        default_page_size=20,
        max_page_size=50,
    )


@pytest.fixture
def verifier():
    return CredentialVerifier(TEST_SECRET)


@pytest.fixture
def token_for(verifier):
    def issue(user: AuthenticatedUser) -> str:
        return verifier.issue(user.user_id, user.email, user.role)
    return issue


def _drain(handle) -> list[dict]:
    messages = []
    while not handle.outbox.empty():
        messages.append(handle.outbox.get_nowait())
    return messages


@pytest.fixture
def drain():
    """Return every push currently queued for a connection."""
    return _drain


# ============================================================================
# HTTP client
# ============================================================================


@pytest.fixture
async def client(session_factory, catalog, verifier, passwords, distributor):
    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_credential_verifier] = lambda: verifier
    app.dependency_overrides[get_password_service] = lambda: passwords
    app.dependency_overrides[get_event_distributor] = lambda: distributor

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()


# ============================================================================
# WebSocket client
# ============================================================================


@pytest.fixture
def socket_app(monkeypatch, verifier, token_for):
    """
    Synchronous TestClient whose HTTP requests, WebSocket sessions and
    database all live on the client's own event loop.
    """
    async def skip_init_db():
        pass

    monkeypatch.setattr(main_module, "init_db", skip_init_db)

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    distributor = EventDistributor(LocalEventRelay(), outbox_size=10)

    async def seed():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with factory() as session:
            location = Location(name="Main Street", address="1 Main St")
            session.add(location)
            await session.flush()
            burger = MenuItem(title="Burger", price=Decimal("10.00"), category="Mains", location_id=location.id)
            customer = User(email="customer@example.com", password_hash="unused", role=UserRole.CUSTOMER)
            kitchen = User(email="kitchen@example.com", password_hash="unused", role=UserRole.KITCHEN)
            session.add_all([burger, customer, kitchen])
            await session.commit()
            return SimpleNamespace(
                location=location.id,
                burger=burger.id,
                customer=AuthenticatedUser(customer.id, customer.email, customer.role),
                kitchen=AuthenticatedUser(kitchen.id, kitchen.email, kitchen.role),
            )

    async def override_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_session_factory] = lambda: factory
    app.dependency_overrides[get_credential_verifier] = lambda: verifier
    app.dependency_overrides[get_event_distributor] = lambda: distributor

    with TestClient(app) as http:
        seeded = http.portal.call(seed)
        yield SimpleNamespace(http=http, distributor=distributor, token_for=token_for, **vars(seeded))
        http.portal.call(engine.dispose)

    app.dependency_overrides.clear()
