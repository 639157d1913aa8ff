"""
Order schemas
"""
from datetime import datetime
from typing import List, Optional
from pydantic import Field

from bookstore.models.order import OrderStatus
from bookstore.schemas.common import CamelModel


class OrderCreate(CamelModel):
    # Addresses are opaque text passed through to the order
    shipping_address: Optional[str] = Field(default=None, max_length=500)
    shipping_phone: Optional[str] = Field(default=None, max_length=20)
    billing_address: Optional[str] = Field(default=None, max_length=500)
    billing_phone: Optional[str] = Field(default=None, max_length=20)
    currency: Optional[str] = Field(default=None, min_length=1, max_length=10)


class OrderStatusUpdate(CamelModel):
    status: OrderStatus


class OrderItemView(CamelModel):
    sku_id: int
    book_id: int
    title: str
    sku: str
    quantity: int
    unit_price: float
    line_total: float


class OrderView(CamelModel):
    order_id: int
    status: OrderStatus
    currency: str
    total_amount: float
    placed_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cart_id: Optional[int] = None
    shipping_address: Optional[str] = None
    shipping_phone: Optional[str] = None
    billing_address: Optional[str] = None
    billing_phone: Optional[str] = None
    items: List[OrderItemView]


class AdminOrderList(CamelModel):
    orders: List[OrderView]
    total: int
    limit: int
    offset: int
