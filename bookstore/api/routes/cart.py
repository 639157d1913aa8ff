"""
Cart routes

All operations act on the caller's single ACTIVE cart.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.database import get_db
from bookstore.models.user import User
from bookstore.schemas.cart import CartItemAdd, CartItemUpdate, CartView
from bookstore.services.cart_service import cart_service
from bookstore.api.deps import get_current_user

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartView)
async def get_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the active cart"""
    return await cart_service.get_cart(db, user.id)


@router.post("/items", response_model=CartView, status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    item: CartItemAdd,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Add a SKU to the cart, creating the cart on first use"""
    cart = await cart_service.add_item(db, user.id, item.sku_id, item.quantity)
    await db.commit()
    return cart


@router.patch("/items/{item_id}", response_model=CartView)
async def update_cart_item(
    item_id: int,
    update: CartItemUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Set a line's quantity"""
    cart = await cart_service.update_item(db, user.id, item_id, update.quantity)
    await db.commit()
    return cart


@router.delete("/items/{item_id}", response_model=CartView)
async def remove_from_cart(
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    cart = await cart_service.remove_item(db, user.id, item_id)
    await db.commit()
    return cart


@router.delete("", response_model=CartView)
async def clear_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    cart = await cart_service.clear(db, user.id)
    await db.commit()
    return cart
