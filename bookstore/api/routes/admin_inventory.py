"""
Admin Inventory Routes

Stock listings and manual corrections. Requires admin authentication.
"""
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.config import settings
from bookstore.core.database import get_db
from bookstore.models.user import User
from bookstore.schemas.inventory import InventoryEntry, InventoryPage, InventoryUpdate, StockMovementView
from bookstore.services.inventory_service import inventory_ledger
from bookstore.api.deps import get_current_admin

router = APIRouter(prefix="/admin/inventory", tags=["admin-inventory"])


@router.get("", response_model=InventoryPage)
async def list_inventory(
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    """All SKUs' stock, most recently updated first."""
    return await inventory_ledger.list_inventory(db, limit, offset)


@router.get("/low-stock", response_model=List[InventoryEntry])
async def low_stock(
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    return await inventory_ledger.low_stock(db)


@router.put("/{sku_id}", response_model=InventoryEntry)
async def update_inventory(
    sku_id: int,
    update: InventoryUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Manual stock correction.

    action=ADD adds `stock` to the current count (receiving), action=SET
    replaces it (stocktake). `reserved` replaces the reserved count.
    """
    entry = await inventory_ledger.adjust(
        db,
        sku_id,
        stock=update.stock,
        reserved=update.reserved,
        mode=update.action,
        user_id=admin.id,
        reason=update.reason,
    )
    await db.commit()
    return entry


@router.get("/{sku_id}/movements", response_model=List[StockMovementView])
async def stock_movements(
    sku_id: int,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    limit: int = Query(50, ge=1, le=settings.MAX_PAGE_SIZE),
):
    movements = await inventory_ledger.movements(db, sku_id, limit)
    return [StockMovementView.model_validate(m) for m in movements]
