"""
Order lifecycle tests: checkout, status graph and ledger side effects.
"""
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from bookstore.core.exceptions import ConflictError, InsufficientStockError, NotFoundError
from bookstore.models import Inventory, Order, OrderItem, OrderStatusEvent, ShoppingCart, User
from bookstore.models.cart import CartStatus
from bookstore.models.order import OPEN_ORDER_STATUSES, OrderStatus
from bookstore.schemas.order import OrderCreate
from bookstore.services.cart_service import cart_service
from bookstore.services.inventory_service import inventory_ledger
from bookstore.services.order_service import order_service


async def _stock(db, sku_id):
    result = await db.execute(
        select(Inventory).where(Inventory.sku_id == sku_id).execution_options(populate_existing=True)
    )
    row = result.scalar_one()
    return row.stock, row.reserved


async def _new_user(db):
    """Create a user inside an already-open transaction."""
    user = User(email="stranger@example.com", name="Stranger")
    db.add(user)
    await db.flush()
    return user.id


async def _open_quantity(db, sku_id):
    """Sum of quantities over orders that still hold a reservation."""
    total = await db.scalar(
        select(func.coalesce(func.sum(OrderItem.quantity), 0))
        .join(Order, Order.id == OrderItem.order_id)
        .where(OrderItem.sku_id == sku_id, Order.status.in_(list(OPEN_ORDER_STATUSES)))
    )
    return total


class TestCreateOrder:

    @pytest.mark.asyncio
    async def test_happy_checkout(self, store, db):
        user = await store.user()
        sku_id = await store.sku(base_price="20.00", stock=10)
        await cart_service.add_item(db, user, sku_id, 3)

        order = await order_service.create_order(
            db, user, OrderCreate(shipping_address="1 Main St", currency="usd"),
        )

        assert order.status == OrderStatus.PLACED
        assert order.total_amount == 60.0
        assert order.currency == "USD"
        assert order.shipping_address == "1 Main St"
        [item] = order.items
        assert (item.sku_id, item.quantity, item.unit_price, item.line_total) == (sku_id, 3, 20.0, 60.0)

        assert await _stock(db, sku_id) == (10, 3)

        cart = await db.get(ShoppingCart, order.cart_id)
        assert cart.status == CartStatus.COMPLETED
        assert cart.total_items == 0
        assert cart.subtotal == 0
        with pytest.raises(NotFoundError):
            await cart_service.get_cart(db, user)

    @pytest.mark.asyncio
    async def test_default_currency(self, store, db):
        user = await store.user()
        sku_id = await store.sku(stock=10)
        await cart_service.add_item(db, user, sku_id, 1)
        order = await order_service.create_order(db, user)
        assert order.currency == "USD"

    @pytest.mark.asyncio
    async def test_items_sorted_by_sku_code(self, store, db):
        user = await store.user()
        later = await store.sku(code="ZZ-1", stock=10)
        earlier = await store.sku(code="AA-1", stock=10)
        await cart_service.add_item(db, user, later, 1)
        await cart_service.add_item(db, user, earlier, 1)

        order = await order_service.create_order(db, user)
        assert [i.sku for i in order.items] == ["AA-1", "ZZ-1"]

    @pytest.mark.asyncio
    async def test_total_uses_snapshot_prices(self, store, db):
        user = await store.user()
        a = await store.sku(base_price="20.00", stock=10)
        b = await store.sku(base_price="7.25", stock=10)
        await cart_service.add_item(db, user, a, 1)
        await cart_service.add_item(db, user, b, 2)

        order = await order_service.create_order(db, user)
        persisted = await db.get(Order, order.order_id)
        line_sum = sum(Decimal(i.unit_price) * i.quantity for i in order.items)
        assert order.total_amount == 34.5
        assert Decimal(persisted.total_amount) == line_sum.quantize(Decimal("0.01"))

    @pytest.mark.asyncio
    async def test_no_cart(self, store, db):
        user = await store.user()
        with pytest.raises(ConflictError):
            await order_service.create_order(db, user)

    @pytest.mark.asyncio
    async def test_empty_cart(self, store, db):
        user = await store.user()
        sku_id = await store.sku(stock=10)
        await cart_service.add_item(db, user, sku_id, 1)
        await cart_service.clear(db, user)
        with pytest.raises(ConflictError):
            await order_service.create_order(db, user)

    @pytest.mark.asyncio
    async def test_all_or_nothing(self, store, db):
        user = await store.user()
        plenty = await store.sku(stock=10)
        scarce = await store.sku(stock=5)
        await cart_service.add_item(db, user, plenty, 2)
        await cart_service.add_item(db, user, scarce, 3)
        await db.commit()

        # Stock disappears between add-to-cart and checkout
        await inventory_ledger.adjust(db, scarce, stock=1)
        await db.commit()

        with pytest.raises(InsufficientStockError):
            await order_service.create_order(db, user)
        await db.rollback()

        assert await _stock(db, plenty) == (10, 0)
        assert await _stock(db, scarce) == (1, 0)
        assert await db.scalar(select(func.count(Order.id))) == 0
        cart = await cart_service.get_cart(db, user)
        assert cart.total_items == 5


class TestStatusTransitions:

    async def _placed_order(self, store, db, stock=10, qty=3):
        user = await store.user()
        sku_id = await store.sku(stock=stock)
        await cart_service.add_item(db, user, sku_id, qty)
        order = await order_service.create_order(db, user)
        return user, sku_id, order

    @pytest.mark.asyncio
    async def test_cancel_releases_reservation(self, store, db):
        user, sku_id, order = await self._placed_order(store, db)

        cancelled = await order_service.cancel_order(db, user, order.order_id)

        assert cancelled.status == OrderStatus.CANCELLED
        assert await _stock(db, sku_id) == (10, 0)

    @pytest.mark.asyncio
    async def test_confirmed_order_can_be_cancelled(self, store, db):
        user, sku_id, order = await self._placed_order(store, db)
        await order_service.update_status(db, order.order_id, OrderStatus.CONFIRMED)
        await order_service.cancel_order(db, user, order.order_id)
        assert await _stock(db, sku_id) == (10, 0)

    @pytest.mark.asyncio
    async def test_full_fulfilment_decrements_stock(self, store, db):
        user, sku_id, order = await self._placed_order(store, db)

        for target in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED):
            await order_service.update_status(db, order.order_id, target)
            assert await _stock(db, sku_id) == (10, 3)

        delivered = await order_service.update_status(db, order.order_id, OrderStatus.DELIVERED)
        assert delivered.status == OrderStatus.DELIVERED
        assert await _stock(db, sku_id) == (7, 0)

    @pytest.mark.asyncio
    async def test_returned_does_not_restock(self, store, db):
        user, sku_id, order = await self._placed_order(store, db)
        for target in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED):
            await order_service.update_status(db, order.order_id, target)

        await order_service.update_status(db, order.order_id, OrderStatus.RETURNED)
        assert await _stock(db, sku_id) == (10, 3)

    @pytest.mark.asyncio
    async def test_processing_cannot_be_cancelled(self, store, db):
        user, sku_id, order = await self._placed_order(store, db)
        await order_service.update_status(db, order.order_id, OrderStatus.CONFIRMED)
        await order_service.update_status(db, order.order_id, OrderStatus.PROCESSING)

        with pytest.raises(ConflictError):
            await order_service.update_status(db, order.order_id, OrderStatus.CANCELLED)
        with pytest.raises(ConflictError):
            await order_service.cancel_order(db, user, order.order_id)

        current = await order_service.get_order(db, user, order.order_id)
        assert current.status == OrderStatus.PROCESSING
        assert await _stock(db, sku_id) == (10, 3)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal_path", [
        [OrderStatus.CANCELLED],
        [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED],
        [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.RETURNED],
    ])
    async def test_terminal_orders_never_move(self, store, db, terminal_path):
        user, sku_id, order = await self._placed_order(store, db)
        for target in terminal_path:
            await order_service.update_status(db, order.order_id, target)
        before = await _stock(db, sku_id)

        for target in OrderStatus:
            with pytest.raises(ConflictError):
                await order_service.update_status(db, order.order_id, target)

        assert await _stock(db, sku_id) == before

    @pytest.mark.asyncio
    async def test_skipping_states_rejected(self, store, db):
        user, sku_id, order = await self._placed_order(store, db)
        with pytest.raises(ConflictError):
            await order_service.update_status(db, order.order_id, OrderStatus.SHIPPED)

    @pytest.mark.asyncio
    async def test_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            await order_service.update_status(db, 9999, OrderStatus.CONFIRMED)

    @pytest.mark.asyncio
    async def test_cancel_someone_elses_order(self, store, db):
        user, sku_id, order = await self._placed_order(store, db)
        stranger = await _new_user(db)

        with pytest.raises(NotFoundError):
            await order_service.cancel_order(db, stranger, order.order_id)
        with pytest.raises(NotFoundError):
            await order_service.get_order(db, stranger, order.order_id)
        assert await _stock(db, sku_id) == (10, 3)

    @pytest.mark.asyncio
    async def test_status_events_recorded(self, store, db):
        user, sku_id, order = await self._placed_order(store, db)
        await order_service.update_status(db, order.order_id, OrderStatus.CONFIRMED, actor_id=user)
        await order_service.cancel_order(db, user, order.order_id)

        result = await db.execute(
            select(OrderStatusEvent)
            .where(OrderStatusEvent.order_id == order.order_id)
            .order_by(OrderStatusEvent.id)
        )
        events = [(e.from_status, e.to_status) for e in result.scalars().all()]
        assert events == [
            (None, OrderStatus.PLACED),
            (OrderStatus.PLACED, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
        ]

    @pytest.mark.asyncio
    async def test_reserved_matches_open_orders(self, store, db):
        sku_id = await store.sku(stock=50)
        users = [await store.user() for _ in range(4)]
        orders = []
        for i, user in enumerate(users, start=1):
            await cart_service.add_item(db, user, sku_id, i)
            orders.append(await order_service.create_order(db, user))

        await order_service.cancel_order(db, users[0], orders[0].order_id)
        for target in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            await order_service.update_status(db, orders[1].order_id, target)
        await order_service.update_status(db, orders[2].order_id, OrderStatus.CONFIRMED)

        stock, reserved = await _stock(db, sku_id)
        assert reserved == await _open_quantity(db, sku_id) == 3 + 4
        assert stock == 50 - 2
        assert 0 <= reserved <= stock


class TestReads:

    @pytest.mark.asyncio
    async def test_list_orders_newest_first(self, store, db):
        user = await store.user()
        sku_id = await store.sku(stock=10)
        ids = []
        for _ in range(3):
            await cart_service.add_item(db, user, sku_id, 1)
            ids.append((await order_service.create_order(db, user)).order_id)

        orders = await order_service.list_orders(db, user)
        assert [o.order_id for o in orders] == list(reversed(ids))

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_user(self, store, db):
        a = await store.user()
        b = await store.user()
        sku_id = await store.sku(stock=10)
        await cart_service.add_item(db, a, sku_id, 1)
        await order_service.create_order(db, a)

        assert await order_service.list_orders(db, b) == []

    @pytest.mark.asyncio
    async def test_admin_list_filters_and_pages(self, store, db):
        sku_id = await store.sku(stock=20)
        users = [await store.user() for _ in range(3)]
        created = []
        for user in users:
            await cart_service.add_item(db, user, sku_id, 1)
            created.append(await order_service.create_order(db, user))
        await order_service.update_status(db, created[0].order_id, OrderStatus.CONFIRMED)

        everything = await order_service.list_orders_admin(db)
        assert everything.total == 3

        placed = await order_service.list_orders_admin(db, status=OrderStatus.PLACED, limit=1, offset=0)
        assert placed.total == 2
        assert len(placed.orders) == 1
        assert placed.orders[0].order_id == created[2].order_id

        detail = await order_service.get_order_admin(db, created[0].order_id)
        assert detail.status == OrderStatus.CONFIRMED
        with pytest.raises(NotFoundError):
            await order_service.get_order_admin(db, 9999)