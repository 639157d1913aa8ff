"""
Cart schemas
"""
from typing import List, Optional
from pydantic import Field

from bookstore.models.cart import CartStatus
from bookstore.schemas.common import CamelModel


class CartItemAdd(CamelModel):
    sku_id: int
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(CamelModel):
    quantity: int = Field(ge=1)


class CartItemView(CamelModel):
    item_id: int
    sku_id: int
    book_id: int
    title: str
    sku: str
    format: Optional[str] = None
    quantity: int
    # Snapshot price captured when the line was first added
    unit_price: float
    current_price: float
    price_changed: bool
    price_diff: Optional[float] = None
    line_total: float


class CartView(CamelModel):
    cart_id: Optional[int] = None
    status: CartStatus
    subtotal: float
    total_items: int
    items: List[CartItemView] = []
