"""
OrderService - checkout and the order status lifecycle

Single source of truth for turning a cart into an order and for moving an
order through its status graph. The ledger side effects are tied to the
transitions:

    creation       -> reserve every line
    -> CANCELLED   -> release every line
    -> DELIVERED   -> fulfill every line
    anything else  -> no stock effect (RETURNED does not restock)

Lock order within one transaction: cart row, then order row, then
inventory rows ascending by sku_id. Nothing here commits; a raised error
leaves the caller to roll the whole transaction back.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bookstore.core.config import settings
from bookstore.core.exceptions import ConflictError, NotFoundError
from bookstore.core.utils import to_money, utcnow
from bookstore.models import (
    CartItem,
    Order,
    OrderItem,
    OrderStatusEvent,
    ProductSku,
    ShoppingCart,
)
from bookstore.models.cart import CartStatus
from bookstore.models.order import (
    OrderStatus,
    TERMINAL_ORDER_STATUSES,
    USER_CANCELLABLE_STATUSES,
    can_transition,
)
from bookstore.schemas.order import AdminOrderList, OrderCreate, OrderItemView, OrderView
from bookstore.services.inventory_service import inventory_ledger

logger = logging.getLogger(__name__)


def build_order_view(order: Order) -> OrderView:
    items = sorted(order.items, key=lambda item: item.sku.sku_code)
    return OrderView(
        order_id=order.id,
        status=order.status,
        currency=order.currency,
        total_amount=float(to_money(order.total_amount)),
        placed_at=order.placed_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
        cart_id=order.cart_id,
        shipping_address=order.shipping_address,
        shipping_phone=order.shipping_phone,
        billing_address=order.billing_address,
        billing_phone=order.billing_phone,
        items=[
            OrderItemView(
                sku_id=item.sku_id,
                book_id=item.book_id,
                title=item.sku.book.title,
                sku=item.sku.sku_code,
                quantity=item.quantity,
                unit_price=float(to_money(item.unit_price)),
                line_total=float(to_money(item.line_total)),
            )
            for item in items
        ],
    )


class OrderService:
    """Order creation, status transitions and reads."""

    @staticmethod
    def _order_query():
        return select(Order).options(
            selectinload(Order.items)
            .selectinload(OrderItem.sku)
            .selectinload(ProductSku.book)
        )

    async def _load_order(self, db: AsyncSession, order_id: int, lock: bool = False) -> Optional[Order]:
        query = self._order_query().where(Order.id == order_id).execution_options(populate_existing=True)
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(
        self,
        db: AsyncSession,
        user_id: int,
        request: Optional[OrderCreate] = None,
    ) -> OrderView:
        """
        Turn the user's ACTIVE cart into a PLACED order.

        All lines are reserved or none are: any failed reservation raises and
        the surrounding transaction discards the order row with it.
        """
        request = request or OrderCreate()

        result = await db.execute(
            select(ShoppingCart)
            .options(
                selectinload(ShoppingCart.items)
                .selectinload(CartItem.sku)
                .selectinload(ProductSku.book)
            )
            .where(
                ShoppingCart.user_id == user_id,
                ShoppingCart.status == CartStatus.ACTIVE,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        cart = result.scalar_one_or_none()
        if cart is None or not cart.items:
            raise ConflictError("Cart is empty")

        currency = (request.currency or settings.DEFAULT_CURRENCY).upper()
        now = utcnow()

        order_items = []
        total = Decimal("0")
        for line in cart.items:
            unit_price = to_money(line.unit_price)
            line_total = to_money(unit_price * line.quantity)
            total += line_total
            order_items.append(OrderItem(
                sku_id=line.sku_id,
                sku=line.sku,
                book_id=line.sku.book_id,
                quantity=line.quantity,
                unit_price=unit_price,
                line_total=line_total,
            ))

        order = Order(
            user_id=user_id,
            cart_id=cart.id,
            status=OrderStatus.PLACED,
            currency=currency,
            total_amount=to_money(total),
            shipping_address=request.shipping_address,
            shipping_phone=request.shipping_phone,
            billing_address=request.billing_address,
            billing_phone=request.billing_phone,
            placed_at=now,
            items=order_items,
            status_events=[],
        )
        db.add(order)
        # Flush first so reservations can reference the order id
        await db.flush()

        quantities = {}
        for line in cart.items:
            quantities[line.sku_id] = quantities.get(line.sku_id, 0) + line.quantity

        # Ascending sku_id: the deadlock-free lock order shared by all checkouts
        await inventory_ledger.lock_rows(db, quantities.keys())
        for sku_id in sorted(quantities):
            await inventory_ledger.reserve(
                db, sku_id, quantities[sku_id],
                reference_type="order", reference_id=order.id, user_id=user_id,
            )

        order.status_events.append(OrderStatusEvent(
            from_status=None,
            to_status=OrderStatus.PLACED,
            actor_id=user_id,
        ))

        cart.status = CartStatus.COMPLETED
        cart.items.clear()
        cart.subtotal = Decimal("0.00")
        cart.total_items = 0

        await db.flush()
        logger.info(
            "Order placed order_id=%s user_id=%s cart_id=%s lines=%s total=%s %s",
            order.id, user_id, cart.id, len(order_items), order.total_amount, currency,
        )
        return build_order_view(order)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def _transition(
        self,
        db: AsyncSession,
        order: Order,
        target: OrderStatus,
        actor_id: Optional[int],
    ) -> OrderView:
        source = order.status
        if source in TERMINAL_ORDER_STATUSES:
            raise ConflictError(
                f"Order {order.id} is {source.value} and can no longer change status",
                details={"order_id": order.id, "from": source.value, "to": target.value},
            )
        if not can_transition(source, target):
            raise ConflictError(
                f"Invalid status transition from {source.value} to {target.value}",
                details={"order_id": order.id, "from": source.value, "to": target.value},
            )

        quantities = {}
        for item in order.items:
            quantities[item.sku_id] = quantities.get(item.sku_id, 0) + item.quantity

        if target in (OrderStatus.CANCELLED, OrderStatus.DELIVERED):
            await inventory_ledger.lock_rows(db, quantities.keys())
            apply = inventory_ledger.release if target == OrderStatus.CANCELLED else inventory_ledger.fulfill
            for sku_id in sorted(quantities):
                await apply(
                    db, sku_id, quantities[sku_id],
                    reference_type="order", reference_id=order.id, user_id=actor_id,
                )

        order.status = target
        order.updated_at = utcnow()
        db.add(OrderStatusEvent(
            order_id=order.id,
            from_status=source,
            to_status=target,
            actor_id=actor_id,
        ))
        await db.flush()

        logger.info(
            "Order status changed order_id=%s %s->%s actor_id=%s",
            order.id, source.value, target.value, actor_id,
        )
        return build_order_view(order)

    async def update_status(
        self,
        db: AsyncSession,
        order_id: int,
        target: OrderStatus,
        actor_id: Optional[int] = None,
    ) -> OrderView:
        """Administrative transition along the status graph."""
        order = await self._load_order(db, order_id, lock=True)
        if not order:
            raise NotFoundError(f"Order not found: {order_id}")
        return await self._transition(db, order, target, actor_id)

    async def cancel_order(self, db: AsyncSession, user_id: int, order_id: int) -> OrderView:
        """Customer cancel. Only the owner may cancel, and only before processing."""
        order = await self._load_order(db, order_id, lock=True)
        if not order or order.user_id != user_id:
            raise NotFoundError("Order not found")
        if order.status not in USER_CANCELLABLE_STATUSES:
            raise ConflictError(
                f"Order cannot be cancelled in status {order.status.value}",
                details={"order_id": order.id, "status": order.status.value},
            )
        return await self._transition(db, order, OrderStatus.CANCELLED, user_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, db: AsyncSession, user_id: int, order_id: int) -> OrderView:
        order = await self._load_order(db, order_id)
        if not order or order.user_id != user_id:
            raise NotFoundError("Order not found")
        return build_order_view(order)

    async def list_orders(self, db: AsyncSession, user_id: int) -> List[OrderView]:
        result = await db.execute(
            self._order_query()
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return [build_order_view(order) for order in result.scalars().all()]

    async def get_order_admin(self, db: AsyncSession, order_id: int) -> OrderView:
        order = await self._load_order(db, order_id)
        if not order:
            raise NotFoundError(f"Order not found: {order_id}")
        return build_order_view(order)

    async def list_orders_admin(
        self,
        db: AsyncSession,
        status: Optional[OrderStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> AdminOrderList:
        query = self._order_query()
        count_query = select(func.count(Order.id))
        if status is not None:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)

        total = await db.scalar(count_query)
        result = await db.execute(
            query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit)
        )
        return AdminOrderList(
            orders=[build_order_view(order) for order in result.scalars().all()],
            total=total or 0,
            limit=limit,
            offset=offset,
        )


# Singleton instance
order_service = OrderService()
