"""
Stock Movement model for inventory tracking and audit

Append-only. One row per ledger mutation with before/after values for both
stock and reserved, the reference that caused it and the acting user.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Index
from sqlalchemy.orm import relationship

from bookstore.core.database import Base
from bookstore.core.utils import utcnow


class MovementType(str, PyEnum):
    RESERVE = "reserve"
    RELEASE = "release"
    FULFILL = "fulfill"
    ADJUST = "adjust"


class StockMovement(Base):
    """Audit trail for inventory changes"""
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)

    sku_id = Column(
        Integer,
        ForeignKey("product_skus.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    movement_type = Column(
        Enum(MovementType, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )

    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    previous_reserved = Column(Integer, nullable=False)
    new_reserved = Column(Integer, nullable=False)

    reason = Column(String(255), nullable=True)

    # order, admin
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    sku = relationship("ProductSku")
    user = relationship("User")

    __table_args__ = (
        Index("ix_stock_movements_sku_created", sku_id, created_at.desc()),
    )

    def __repr__(self):
        return f"<StockMovement {self.id}: {self.movement_type} {self.quantity} on sku {self.sku_id}>"
