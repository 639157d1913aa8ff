"""
Catalog helpers

Minimal helpers for creating books, SKUs and the inventory row each SKU
owns. Only the test suite calls them; catalog management is not
part of the order core.
"""
import logging
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bookstore.core.exceptions import ConflictError, NotFoundError, ValidationError
from bookstore.core.utils import to_money
from bookstore.models import Book, Inventory, ProductSku

logger = logging.getLogger(__name__)

Price = Union[Decimal, str, int, float]


async def create_book(db: AsyncSession, title: str, base_price: Price) -> Book:
    if to_money(base_price) < 0:
        raise ValidationError("Price cannot be negative", fields=["base_price"])
    book = Book(title=title, base_price=to_money(base_price), skus=[])
    db.add(book)
    await db.flush()
    logger.info("Created book book_id=%s title=%r", book.id, title)
    return book


async def create_sku(
    db: AsyncSession,
    book: Book,
    sku_code: str,
    format: Optional[str] = None,
    price_override: Optional[Price] = None,
    make_default: bool = False,
) -> ProductSku:
    """Create a SKU and its inventory row (stock and reserved seeded at 0)."""
    existing = await db.scalar(select(ProductSku.id).where(ProductSku.sku_code == sku_code))
    if existing is not None:
        raise ConflictError(f"SKU code already exists: {sku_code}")

    sku = ProductSku(
        book=book,
        sku_code=sku_code,
        format=format,
        price_override=to_money(price_override) if price_override is not None else None,
    )
    db.add(sku)
    await db.flush()
    db.add(Inventory(sku_id=sku.id, stock=0, reserved=0))

    if make_default or book.default_sku_id is None:
        book.default_sku_id = sku.id
    await db.flush()

    logger.info("Created sku sku_id=%s code=%s book_id=%s", sku.id, sku_code, book.id)
    return sku


async def set_price_override(db: AsyncSession, sku_id: int, price: Optional[Price]) -> ProductSku:
    """Change (or clear, with None) a SKU's price override."""
    result = await db.execute(
        select(ProductSku)
        .options(selectinload(ProductSku.book))
        .where(ProductSku.id == sku_id)
        .with_for_update()
    )
    sku = result.scalar_one_or_none()
    if not sku:
        raise NotFoundError(f"SKU not found: {sku_id}")

    sku.price_override = to_money(price) if price is not None else None
    await db.flush()
    logger.info("Price override changed sku_id=%s price_override=%s", sku_id, sku.price_override)
    return sku
