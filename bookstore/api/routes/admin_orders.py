"""
Admin Orders Routes

Fulfillment endpoints over all orders. Requires admin authentication.
Status changes follow the same graph and stock side effects as customer
cancels.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.config import settings
from bookstore.core.database import get_db
from bookstore.models.order import OrderStatus
from bookstore.models.user import User
from bookstore.schemas.order import AdminOrderList, OrderStatusUpdate, OrderView
from bookstore.services.order_service import order_service
from bookstore.api.deps import get_current_admin

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])


@router.get("", response_model=AdminOrderList)
async def list_all_orders(
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    status_filter: Optional[OrderStatus] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    """Get all orders, newest first (admin only)."""
    return await order_service.list_orders_admin(db, status_filter, limit, offset)


@router.get("/{order_id}", response_model=OrderView)
async def get_order_detail(
    order_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.get_order_admin(db, order_id)


@router.patch("/{order_id}/status", response_model=OrderView)
async def update_order_status(
    order_id: int,
    update: OrderStatusUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Move an order along its status graph (admin only)."""
    order = await order_service.update_status(db, order_id, update.status, actor_id=admin.id)
    await db.commit()
    return order
