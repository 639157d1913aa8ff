"""
Order models

Orders are immutable snapshots of a checkout. Only `status` and
`updated_at` change after creation, and every status change is recorded
in order_status_events.

State machine:
    PLACED      -> CONFIRMED | CANCELLED
    CONFIRMED   -> PROCESSING | CANCELLED
    PROCESSING  -> SHIPPED
    SHIPPED     -> DELIVERED | RETURNED
    DELIVERED, CANCELLED, RETURNED are terminal
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Index
from sqlalchemy.orm import relationship

from bookstore.core.database import Base
from bookstore.core.utils import utcnow


class OrderStatus(str, PyEnum):
    PLACED = "PLACED"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


VALID_ORDER_TRANSITIONS = {
    OrderStatus.PLACED: [OrderStatus.CONFIRMED, OrderStatus.CANCELLED],
    OrderStatus.CONFIRMED: [OrderStatus.PROCESSING, OrderStatus.CANCELLED],
    OrderStatus.PROCESSING: [OrderStatus.SHIPPED],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED, OrderStatus.RETURNED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELLED: [],
    OrderStatus.RETURNED: [],
}

TERMINAL_ORDER_STATUSES = frozenset(
    status for status, targets in VALID_ORDER_TRANSITIONS.items() if not targets
)

OPEN_ORDER_STATUSES = frozenset(OrderStatus) - TERMINAL_ORDER_STATUSES

# Statuses a customer may still cancel from
USER_CANCELLABLE_STATUSES = frozenset({OrderStatus.PLACED, OrderStatus.CONFIRMED})


def can_transition(source: OrderStatus, target: OrderStatus) -> bool:
    return target in VALID_ORDER_TRANSITIONS.get(source, [])


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    cart_id = Column(Integer, ForeignKey("shopping_carts.id", ondelete="SET NULL"), nullable=True)

    status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False, default=OrderStatus.PLACED, index=True)
    currency = Column(String(10), nullable=False, default="USD")

    # DB-001: Numeric(12,2)
    total_amount = Column(Numeric(12, 2), nullable=False)

    # Opaque pass-through text
    shipping_address = Column(String(500), nullable=True)
    shipping_phone = Column(String(20), nullable=True)
    billing_address = Column(String(500), nullable=True)
    billing_phone = Column(String(20), nullable=True)

    placed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    status_events = relationship(
        "OrderStatusEvent",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusEvent.id",
    )

    def __repr__(self):
        return f"<Order {self.id}: {self.status}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    sku_id = Column(Integer, ForeignKey("product_skus.id", ondelete="RESTRICT"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="RESTRICT"), nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    sku = relationship("ProductSku")
    book = relationship("Book")


class OrderStatusEvent(Base):
    """Audit row per status change. from_status is NULL for the creation event."""
    __tablename__ = "order_status_events"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    from_status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=True)
    to_status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", back_populates="status_events")

    __table_args__ = (
        Index("ix_order_status_events_order", "order_id", "created_at"),
    )
