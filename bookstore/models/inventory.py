"""
Inventory ledger row

One row per SKU, sharing its primary key. `stock` counts units physically
owned, `reserved` counts units allocated to open orders. The CHECK
constraints keep 0 <= reserved <= stock even if a code path misbehaves.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from bookstore.core.database import Base
from bookstore.core.utils import utcnow


class StockStatus(str, PyEnum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"
    IN_STOCK = "IN_STOCK"


class AdjustMode(str, PyEnum):
    ADD = "ADD"
    SET = "SET"


def stock_status_for(available: int, low_stock_threshold: int) -> StockStatus:
    if available <= 0:
        return StockStatus.OUT_OF_STOCK
    if available <= low_stock_threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


class Inventory(Base):
    __tablename__ = "inventory"

    sku_id = Column(Integer, ForeignKey("product_skus.id", ondelete="CASCADE"), primary_key=True)
    stock = Column(Integer, nullable=False, default=0)
    reserved = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    sku = relationship("ProductSku", back_populates="inventory")

    __table_args__ = (
        CheckConstraint("stock >= 0", name="chk_inventory_stock_non_negative"),
        CheckConstraint("reserved >= 0", name="chk_inventory_reserved_non_negative"),
        CheckConstraint("reserved <= stock", name="chk_inventory_reserved_le_stock"),
    )

    @property
    def available(self) -> int:
        return self.stock - self.reserved

    def __repr__(self):
        return f"<Inventory sku={self.sku_id} stock={self.stock} reserved={self.reserved}>"
