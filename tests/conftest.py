"""
Pytest configuration and fixtures for the bookstore core tests.

Every test gets its own throw-away SQLite file database. The engine opens
each transaction with BEGIN IMMEDIATE, so writers are serialized the same
way row locks serialize them on PostgreSQL.

Set BOOKSTORE_TEST_DATABASE_URL (postgresql+asyncpg://...) to run the suite
against a scratch PostgreSQL database instead. Its tables are dropped and
recreated for every test.
"""
import os
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./bookstore-unused.db"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DB_CREATE_TABLES"] = "false"

from sqlalchemy import select  # noqa: E402

from bookstore.core.database import Base, build_engine, build_sessionmaker, create_tables, get_db  # noqa: E402
from bookstore.core.security import create_access_token  # noqa: E402
from bookstore.main import app  # noqa: E402
from bookstore.models import Inventory, Order, ShoppingCart, User  # noqa: E402
from bookstore.models.cart import CartStatus  # noqa: E402
from bookstore.models.user import UserStatus  # noqa: E402
from bookstore.services import catalog_service  # noqa: E402
from bookstore.services.inventory_service import inventory_ledger  # noqa: E402


# Optional PostgreSQL run: real row locks instead of SQLite's whole-database lock
TEST_DATABASE_URL = os.environ.get("BOOKSTORE_TEST_DATABASE_URL")


@pytest.fixture
async def engine(tmp_path):
    if TEST_DATABASE_URL:
        engine = build_engine(TEST_DATABASE_URL)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    else:
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory):
    """A single session for service-level tests. Callers commit explicitly."""
    async with session_factory() as session:
        yield session
        await session.rollback()


class Store:
    """Seeds and inspects the database through short-lived sessions."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._counter = 0

    async def user(self, is_admin: bool = False, status: UserStatus = UserStatus.ACTIVE) -> int:
        self._counter += 1
        async with self.session_factory() as session:
            user = User(
                email=f"user{self._counter}@example.com",
                name=f"User {self._counter}",
                is_admin=is_admin,
                status=status,
            )
            session.add(user)
            await session.commit()
            return user.id

    async def sku(
        self,
        code: Optional[str] = None,
        base_price="20.00",
        stock: int = 0,
        price_override=None,
        title: Optional[str] = None,
    ) -> int:
        self._counter += 1
        code = code or f"SKU-{self._counter:04d}"
        async with self.session_factory() as session:
            book = await catalog_service.create_book(session, title or f"Book {code}", base_price)
            sku = await catalog_service.create_sku(
                session, book, code, format="paperback", price_override=price_override,
            )
            if stock:
                await inventory_ledger.adjust(session, sku.id, stock=stock)
            await session.commit()
            return sku.id

    async def book_id(self, sku_id: int) -> int:
        async with self.session_factory() as session:
            level = await inventory_ledger.availability(session, sku_id)
            return level.book_id

    async def inventory(self, sku_id: int) -> tuple:
        """(stock, reserved) for a SKU."""
        async with self.session_factory() as session:
            row = await session.get(Inventory, sku_id)
            return row.stock, row.reserved

    async def set_price(self, sku_id: int, price) -> None:
        async with self.session_factory() as session:
            await catalog_service.set_price_override(session, sku_id, price)
            await session.commit()

    async def order_count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(Order.id))
            return len(result.all())

    async def active_carts(self, user_id: int) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ShoppingCart.id).where(
                    ShoppingCart.user_id == user_id,
                    ShoppingCart.status == CartStatus.ACTIVE,
                )
            )
            return len(result.all())


@pytest.fixture
def store(session_factory):
    return Store(session_factory)


def _auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


@pytest.fixture
def auth():
    """Build bearer headers for a user id."""
    return _auth_headers


@pytest.fixture
async def client(session_factory):
    """HTTP client bound to the test database."""

    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()