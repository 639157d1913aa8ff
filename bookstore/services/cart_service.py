"""
CartService - the user's single ACTIVE shopping cart

Mutations lock the ACTIVE cart row (and its item rows) FOR UPDATE before
touching any line, so concurrent edits by the same user are serialized and
always see consistent totals.

Validation runs on the target quantity of the affected line, in this order:
    1. 1 <= quantity <= CART_MAX_QUANTITY_PER_ITEM       -> ConflictError
    2. sum of quantities <= CART_MAX_TOTAL_ITEMS          -> ConflictError
    3. ledger available >= quantity (read only)           -> InsufficientStockError

Prices are captured when a line is first added and never refreshed. Views
report the current effective price next to the snapshot so drift is visible.
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bookstore.core.config import settings
from bookstore.core.exceptions import ConflictError, InsufficientStockError, NotFoundError
from bookstore.core.utils import to_money
from bookstore.models import CartItem, ProductSku, ShoppingCart
from bookstore.models.cart import CartStatus
from bookstore.schemas.cart import CartItemView, CartView
from bookstore.services.inventory_service import inventory_ledger

logger = logging.getLogger(__name__)


def build_cart_view(cart: ShoppingCart) -> CartView:
    items = []
    for item in cart.items:
        sku = item.sku
        unit_price = to_money(item.unit_price)
        current_price = to_money(sku.effective_price)
        diff = current_price - unit_price
        price_changed = diff != 0
        items.append(CartItemView(
            item_id=item.id,
            sku_id=item.sku_id,
            book_id=sku.book_id,
            title=sku.book.title,
            sku=sku.sku_code,
            format=sku.format,
            quantity=item.quantity,
            unit_price=float(unit_price),
            current_price=float(current_price),
            price_changed=price_changed,
            price_diff=float(diff) if price_changed else None,
            line_total=float(unit_price * item.quantity),
        ))

    return CartView(
        cart_id=cart.id,
        status=cart.status,
        subtotal=float(to_money(cart.subtotal)),
        total_items=cart.total_items or 0,
        items=items,
    )


class CartService:
    """Cart operations on behalf of a single user."""

    @staticmethod
    def _cart_query(user_id: int):
        return (
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
            .execution_options(populate_existing=True)
        )

    async def _find_active_cart(
        self,
        db: AsyncSession,
        user_id: int,
        lock: bool = False,
    ) -> Optional[ShoppingCart]:
        query = self._cart_query(user_id)
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        cart = result.scalar_one_or_none()

        if cart is not None and lock:
            # Item rows follow the cart row in lock order
            await db.execute(
                select(CartItem.id)
                .where(CartItem.cart_id == cart.id)
                .order_by(CartItem.id)
                .with_for_update()
            )
        return cart

    async def _require_active_cart(self, db: AsyncSession, user_id: int, lock: bool = False) -> ShoppingCart:
        cart = await self._find_active_cart(db, user_id, lock=lock)
        if cart is None:
            raise NotFoundError("Shopping cart not found")
        return cart

    async def _get_or_create_cart(self, db: AsyncSession, user_id: int) -> ShoppingCart:
        cart = await self._find_active_cart(db, user_id, lock=True)
        if cart is not None:
            return cart

        cart = ShoppingCart(
            user_id=user_id,
            status=CartStatus.ACTIVE,
            subtotal=Decimal("0.00"),
            total_items=0,
            items=[],
        )
        try:
            async with db.begin_nested():
                db.add(cart)
        except IntegrityError:
            # Another request created the ACTIVE cart first; use theirs
            logger.info("Concurrent cart creation for user_id=%s, re-reading", user_id)
            winner = await self._find_active_cart(db, user_id, lock=True)
            if winner is None:
                raise
            return winner

        logger.info("Created cart cart_id=%s user_id=%s", cart.id, user_id)
        return cart

    @staticmethod
    async def _load_sku(db: AsyncSession, sku_id: int) -> ProductSku:
        result = await db.execute(
            select(ProductSku)
            .options(selectinload(ProductSku.book))
            .where(ProductSku.id == sku_id)
        )
        sku = result.scalar_one_or_none()
        if not sku:
            raise NotFoundError("Product SKU not found")
        return sku

    @staticmethod
    def _find_item(cart: ShoppingCart, item_id: int) -> CartItem:
        for item in cart.items:
            if item.id == item_id:
                return item
        raise NotFoundError("Cart item not found")

    @staticmethod
    def _validate_line_quantity(quantity: int) -> None:
        if quantity < 1:
            raise ConflictError("Quantity must be at least 1")
        if quantity > settings.CART_MAX_QUANTITY_PER_ITEM:
            raise ConflictError(
                f"Quantity cannot exceed {settings.CART_MAX_QUANTITY_PER_ITEM} per item"
            )

    async def _validate(
        self,
        db: AsyncSession,
        cart: ShoppingCart,
        sku: ProductSku,
        target: int,
        line: Optional[CartItem] = None,
    ) -> None:
        self._validate_line_quantity(target)

        other_lines = sum(item.quantity for item in cart.items if item is not line)
        if other_lines + target > settings.CART_MAX_TOTAL_ITEMS:
            raise ConflictError(
                f"Cart cannot exceed {settings.CART_MAX_TOTAL_ITEMS} total items"
            )

        available = await inventory_ledger.available(db, sku.id)
        if available < target:
            raise InsufficientStockError(
                f"Insufficient stock for SKU {sku.sku_code}. "
                f"Available: {available}, requested: {target}",
                sku_id=sku.id,
                available=available,
                requested=target,
            )

    @staticmethod
    def _recalculate(cart: ShoppingCart) -> None:
        cart.subtotal = to_money(sum(
            (Decimal(item.unit_price) * item.quantity for item in cart.items),
            Decimal("0"),
        ))
        cart.total_items = sum(item.quantity for item in cart.items)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_cart(self, db: AsyncSession, user_id: int) -> CartView:
        cart = await self._require_active_cart(db, user_id)
        return build_cart_view(cart)

    async def add_item(self, db: AsyncSession, user_id: int, sku_id: int, quantity: int) -> CartView:
        """
        Add `quantity` units of a SKU. An existing line for the same SKU is
        incremented; a new line captures the SKU's effective price.
        """
        self._validate_line_quantity(quantity)
        sku = await self._load_sku(db, sku_id)
        cart = await self._get_or_create_cart(db, user_id)

        line = next((item for item in cart.items if item.sku_id == sku_id), None)
        target = line.quantity + quantity if line else quantity
        await self._validate(db, cart, sku, target, line)

        if line:
            line.quantity = target
        else:
            line = CartItem(
                sku_id=sku.id,
                sku=sku,
                quantity=target,
                unit_price=to_money(sku.effective_price),
            )
            cart.items.append(line)

        self._recalculate(cart)
        await db.flush()
        logger.info(
            "Cart add cart_id=%s user_id=%s sku_id=%s qty=%s line_qty=%s total_items=%s",
            cart.id, user_id, sku_id, quantity, target, cart.total_items,
        )
        return build_cart_view(cart)

    async def update_item(self, db: AsyncSession, user_id: int, item_id: int, quantity: int) -> CartView:
        cart = await self._require_active_cart(db, user_id, lock=True)
        line = self._find_item(cart, item_id)
        await self._validate(db, cart, line.sku, quantity, line)

        line.quantity = quantity
        self._recalculate(cart)
        await db.flush()
        logger.info(
            "Cart update cart_id=%s user_id=%s item_id=%s qty=%s total_items=%s",
            cart.id, user_id, item_id, quantity, cart.total_items,
        )
        return build_cart_view(cart)

    async def remove_item(self, db: AsyncSession, user_id: int, item_id: int) -> CartView:
        cart = await self._require_active_cart(db, user_id, lock=True)
        line = self._find_item(cart, item_id)

        cart.items.remove(line)
        self._recalculate(cart)
        await db.flush()
        logger.info("Cart remove cart_id=%s user_id=%s item_id=%s", cart.id, user_id, item_id)
        return build_cart_view(cart)

    async def clear(self, db: AsyncSession, user_id: int) -> CartView:
        cart = await self._require_active_cart(db, user_id, lock=True)

        cart.items.clear()
        self._recalculate(cart)
        await db.flush()
        logger.info("Cart cleared cart_id=%s user_id=%s", cart.id, user_id)
        return build_cart_view(cart)


# Singleton instance
cart_service = CartService()
