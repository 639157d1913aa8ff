"""
Inventory schemas
"""
from datetime import datetime
from typing import List, Optional

from bookstore.models.inventory import StockStatus, AdjustMode
from bookstore.models.stock_movement import MovementType
from bookstore.schemas.common import CamelModel


class StockLevel(CamelModel):
    sku_id: int
    sku: str
    book_id: int
    stock: int
    reserved: int
    available: int
    in_stock: bool
    status: StockStatus


class InventoryEntry(CamelModel):
    sku_id: int
    sku: str
    book_id: int
    book_title: str
    format: Optional[str] = None
    total_stock: int
    reserved_stock: int
    available_stock: int
    status: StockStatus
    last_updated: Optional[datetime] = None


class InventoryPage(CamelModel):
    items: List[InventoryEntry]
    total: int
    limit: int
    offset: int


class InventoryUpdate(CamelModel):
    """Admin adjustment. Negative values are rejected by the ledger."""
    stock: Optional[int] = None
    reserved: Optional[int] = None
    action: AdjustMode = AdjustMode.SET
    reason: Optional[str] = None


class StockMovementView(CamelModel):
    id: int
    sku_id: int
    movement_type: MovementType
    quantity: int
    previous_stock: int
    new_stock: int
    previous_reserved: int
    new_reserved: int
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    user_id: Optional[int] = None
    reason: Optional[str] = None
    created_at: datetime
