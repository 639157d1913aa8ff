"""
Public stock level routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.core.database import get_db
from bookstore.schemas.inventory import StockLevel
from bookstore.services.inventory_service import inventory_ledger

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("/skus/{sku_id}", response_model=StockLevel)
async def get_sku_stock(sku_id: int, db: AsyncSession = Depends(get_db)):
    return await inventory_ledger.availability(db, sku_id)


@router.get("/books/{book_id}", response_model=StockLevel)
async def get_book_stock(book_id: int, db: AsyncSession = Depends(get_db)):
    """Stock of the book's default SKU"""
    return await inventory_ledger.availability_for_book(db, book_id)
