"""
Order routes

Checkout turns the caller's active cart into an order and reserves its
stock in the same transaction.
"""
from typing import List, Optional
from fastapi import APIRouter, Body, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.config import settings
from bookstore.core.database import get_db
from bookstore.core.rate_limit import limiter
from bookstore.models.user import User
from bookstore.schemas.order import OrderCreate, OrderView
from bookstore.services.order_service import order_service
from bookstore.api.deps import get_current_user

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderView, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def create_order(
    request: Request,
    payload: Optional[OrderCreate] = Body(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Place an order from the active cart.

    Every line is reserved or the whole request fails (409) and nothing
    is persisted.
    """
    order = await order_service.create_order(db, user.id, payload)
    await db.commit()
    return order


@router.get("", response_model=List[OrderView])
async def list_orders(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current user's orders, newest first"""
    return await order_service.list_orders(db, user.id)


@router.get("/{order_id}", response_model=OrderView)
async def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get single order"""
    return await order_service.get_order(db, user.id, order_id)


@router.patch("/{order_id}/cancel", response_model=OrderView)
async def cancel_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel an order that has not started processing; releases its stock"""
    order = await order_service.cancel_order(db, user.id, order_id)
    await db.commit()
    return order
