from bookstore.schemas.common import CamelModel, ErrorResponse
from bookstore.schemas.cart import CartItemAdd, CartItemUpdate, CartItemView, CartView
from bookstore.schemas.inventory import StockLevel, InventoryEntry, InventoryPage, InventoryUpdate, StockMovementView
from bookstore.schemas.order import OrderCreate, OrderStatusUpdate, OrderItemView, OrderView, AdminOrderList
