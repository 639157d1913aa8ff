from bookstore.models.user import User, UserStatus
from bookstore.models.book import Book, ProductSku
from bookstore.models.inventory import Inventory, StockStatus, AdjustMode
from bookstore.models.stock_movement import StockMovement, MovementType
from bookstore.models.cart import ShoppingCart, CartItem, CartStatus
from bookstore.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusEvent,
    VALID_ORDER_TRANSITIONS,
    TERMINAL_ORDER_STATUSES,
    OPEN_ORDER_STATUSES,
)
