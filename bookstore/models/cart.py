"""
Cart models

A user owns at most one ACTIVE cart; COMPLETED carts are kept as the
context of the order they became. The partial unique index enforces the
single-active-cart rule in storage.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, DateTime, ForeignKey, Numeric, Enum, Index,
    CheckConstraint, UniqueConstraint, text
)
from sqlalchemy.orm import relationship

from bookstore.core.database import Base
from bookstore.core.utils import utcnow


class CartStatus(str, PyEnum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class ShoppingCart(Base):
    __tablename__ = "shopping_carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(CartStatus, native_enum=False, length=20), nullable=False, default=CartStatus.ACTIVE)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    total_items = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="carts")
    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    __table_args__ = (
        Index(
            "uq_shopping_carts_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    def __repr__(self):
        return f"<ShoppingCart {self.id}: user={self.user_id} {self.status}>"


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("shopping_carts.id", ondelete="CASCADE"), nullable=False, index=True)
    sku_id = Column(Integer, ForeignKey("product_skus.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False, default=1)
    # Effective price when the line was first added; never refreshed
    unit_price = Column(Numeric(12, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    cart = relationship("ShoppingCart", back_populates="items")
    sku = relationship("ProductSku")

    __table_args__ = (
        UniqueConstraint("cart_id", "sku_id", name="uq_cart_items_cart_sku"),
        CheckConstraint("quantity >= 1 AND quantity <= 99", name="chk_cart_items_quantity"),
    )
