"""
InventoryLedger - per-SKU (stock, reserved) bookkeeping

Every read-then-write takes the inventory row with SELECT ... FOR UPDATE
and keeps it until the surrounding transaction ends, so two concurrent
reservations on the same SKU can never both see the same `available`.

Lock ordering: whenever more than one inventory row is needed, rows are
acquired one at a time in ascending sku_id order (lock_rows). Concurrent
checkouts that share SKUs therefore always queue in the same order and
cannot deadlock.

None of these methods commit. The caller owns the transaction.
"""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bookstore.core.config import settings
from bookstore.core.exceptions import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from bookstore.core.utils import utcnow
from bookstore.models import Book, Inventory, ProductSku, StockMovement
from bookstore.models.inventory import AdjustMode, stock_status_for
from bookstore.models.stock_movement import MovementType
from bookstore.schemas.inventory import InventoryEntry, InventoryPage, StockLevel

logger = logging.getLogger(__name__)


def _require_positive(n: int) -> None:
    if n is None or n <= 0:
        raise ValidationError("Quantity must be positive", fields=["quantity"])


def build_inventory_entry(inventory: Inventory) -> InventoryEntry:
    sku = inventory.sku
    available = inventory.available
    return InventoryEntry(
        sku_id=inventory.sku_id,
        sku=sku.sku_code,
        book_id=sku.book_id,
        book_title=sku.book.title,
        format=sku.format,
        total_stock=inventory.stock,
        reserved_stock=inventory.reserved,
        available_stock=available,
        status=stock_status_for(available, settings.LOW_STOCK_THRESHOLD),
        last_updated=inventory.last_updated,
    )


class InventoryLedger:
    """Inventory reservation, release, fulfilment and admin adjustment."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def _get_sku(db: AsyncSession, sku_id: int) -> ProductSku:
        result = await db.execute(
            select(ProductSku)
            .options(selectinload(ProductSku.book))
            .where(ProductSku.id == sku_id)
        )
        sku = result.scalar_one_or_none()
        if not sku:
            raise NotFoundError(f"SKU not found: {sku_id}")
        return sku

    async def availability(self, db: AsyncSession, sku_id: int) -> StockLevel:
        """
        Current stock level for a SKU.

        A SKU without an inventory row reads as zero stock and zero reserved.
        """
        sku = await self._get_sku(db, sku_id)
        result = await db.execute(
            select(Inventory)
            .where(Inventory.sku_id == sku_id)
            .execution_options(populate_existing=True)
        )
        inventory = result.scalar_one_or_none()

        stock = inventory.stock if inventory else 0
        reserved = inventory.reserved if inventory else 0
        available = stock - reserved
        return StockLevel(
            sku_id=sku.id,
            sku=sku.sku_code,
            book_id=sku.book_id,
            stock=stock,
            reserved=reserved,
            available=available,
            in_stock=available > 0,
            status=stock_status_for(available, settings.LOW_STOCK_THRESHOLD),
        )

    async def available(self, db: AsyncSession, sku_id: int) -> int:
        level = await self.availability(db, sku_id)
        return level.available

    async def availability_for_book(self, db: AsyncSession, book_id: int) -> StockLevel:
        """Stock level of the book's default SKU, or its first SKU when none is set."""
        result = await db.execute(
            select(Book).options(selectinload(Book.skus)).where(Book.id == book_id)
        )
        book = result.scalar_one_or_none()
        if not book:
            raise NotFoundError(f"Book not found: {book_id}")

        sku_id = book.default_sku_id
        if sku_id is None and book.skus:
            sku_id = book.skus[0].id
        if sku_id is None:
            raise NotFoundError(f"No SKU found for book: {book_id}")

        return await self.availability(db, sku_id)

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @staticmethod
    async def _lock_row(db: AsyncSession, sku_id: int) -> Inventory:
        result = await db.execute(
            select(Inventory)
            .where(Inventory.sku_id == sku_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        inventory = result.scalar_one_or_none()
        if not inventory:
            raise NotFoundError(f"Inventory not found for SKU: {sku_id}")
        return inventory

    async def lock_rows(self, db: AsyncSession, sku_ids: Iterable[int]) -> Dict[int, Inventory]:
        """
        Lock inventory rows FOR UPDATE in ascending sku_id order.

        Rows are locked one statement at a time so the acquisition order is
        exactly the sorted order regardless of the query plan.
        """
        locked: Dict[int, Inventory] = {}
        for sku_id in sorted(set(sku_ids)):
            locked[sku_id] = await self._lock_row(db, sku_id)
        return locked

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @staticmethod
    def _record_movement(
        db: AsyncSession,
        inventory: Inventory,
        movement_type: MovementType,
        quantity: int,
        previous_stock: int,
        previous_reserved: int,
        reference_type: Optional[str],
        reference_id: Optional[int],
        user_id: Optional[int],
        reason: Optional[str] = None,
    ) -> None:
        inventory.last_updated = utcnow()
        db.add(StockMovement(
            sku_id=inventory.sku_id,
            movement_type=movement_type,
            quantity=quantity,
            previous_stock=previous_stock,
            new_stock=inventory.stock,
            previous_reserved=previous_reserved,
            new_reserved=inventory.reserved,
            reference_type=reference_type,
            reference_id=reference_id,
            user_id=user_id,
            reason=reason,
        ))

    async def reserve(
        self,
        db: AsyncSession,
        sku_id: int,
        n: int,
        reference_type: Optional[str] = "order",
        reference_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> Inventory:
        """Allocate n available units: reserved += n."""
        _require_positive(n)
        inventory = await self._lock_row(db, sku_id)

        available = inventory.available
        if available < n:
            raise InsufficientStockError(
                f"Insufficient stock. Available: {available}, Requested: {n}",
                sku_id=sku_id,
                available=available,
                requested=n,
            )

        previous_stock, previous_reserved = inventory.stock, inventory.reserved
        inventory.reserved = previous_reserved + n
        self._record_movement(
            db, inventory, MovementType.RESERVE, n,
            previous_stock, previous_reserved,
            reference_type, reference_id, user_id,
        )
        logger.info(
            "Reserved stock sku_id=%s qty=%s reserved=%s->%s ref=%s:%s",
            sku_id, n, previous_reserved, inventory.reserved, reference_type, reference_id,
        )
        return inventory

    async def release(
        self,
        db: AsyncSession,
        sku_id: int,
        n: int,
        reference_type: Optional[str] = "order",
        reference_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> Inventory:
        """Return n reserved units to available: reserved -= n."""
        _require_positive(n)
        inventory = await self._lock_row(db, sku_id)

        if inventory.reserved < n:
            raise ConflictError(
                f"Cannot release {n} units of SKU {sku_id}. Reserved: {inventory.reserved}",
                details={"sku_id": sku_id, "reserved": inventory.reserved, "requested": n},
            )

        previous_stock, previous_reserved = inventory.stock, inventory.reserved
        inventory.reserved = previous_reserved - n
        self._record_movement(
            db, inventory, MovementType.RELEASE, n,
            previous_stock, previous_reserved,
            reference_type, reference_id, user_id,
        )
        logger.info(
            "Released stock sku_id=%s qty=%s reserved=%s->%s ref=%s:%s",
            sku_id, n, previous_reserved, inventory.reserved, reference_type, reference_id,
        )
        return inventory

    async def fulfill(
        self,
        db: AsyncSession,
        sku_id: int,
        n: int,
        reference_type: Optional[str] = "order",
        reference_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> Inventory:
        """Ship n reserved units: stock -= n, reserved -= n."""
        _require_positive(n)
        inventory = await self._lock_row(db, sku_id)

        if inventory.stock < n or inventory.reserved < n:
            raise ConflictError(
                f"Cannot fulfill {n} units of SKU {sku_id}. "
                f"Stock: {inventory.stock}, Reserved: {inventory.reserved}",
                details={
                    "sku_id": sku_id,
                    "stock": inventory.stock,
                    "reserved": inventory.reserved,
                    "requested": n,
                },
            )

        previous_stock, previous_reserved = inventory.stock, inventory.reserved
        inventory.stock = previous_stock - n
        inventory.reserved = previous_reserved - n
        self._record_movement(
            db, inventory, MovementType.FULFILL, n,
            previous_stock, previous_reserved,
            reference_type, reference_id, user_id,
        )
        logger.info(
            "Fulfilled stock sku_id=%s qty=%s stock=%s->%s reserved=%s->%s ref=%s:%s",
            sku_id, n, previous_stock, inventory.stock,
            previous_reserved, inventory.reserved, reference_type, reference_id,
        )
        return inventory

    async def adjust(
        self,
        db: AsyncSession,
        sku_id: int,
        stock: Optional[int] = None,
        reserved: Optional[int] = None,
        mode: AdjustMode = AdjustMode.SET,
        user_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> InventoryEntry:
        """
        Administrative correction.

        ADD increments stock by `stock`, SET replaces it. `reserved`, when
        given, replaces the reserved count. The result must satisfy
        stock >= reserved.
        """
        negative = [
            name for name, value in (("stock", stock), ("reserved", reserved))
            if value is not None and value < 0
        ]
        if negative:
            raise ValidationError(
                f"Negative values are not allowed: {', '.join(negative)}",
                fields=negative,
            )

        inventory = await self._lock_row(db, sku_id)
        previous_stock, previous_reserved = inventory.stock, inventory.reserved

        new_stock = previous_stock
        if stock is not None:
            new_stock = previous_stock + stock if mode == AdjustMode.ADD else stock
        new_reserved = reserved if reserved is not None else previous_reserved

        if new_stock < new_reserved:
            raise ConflictError(
                f"Cannot set stock to {new_stock}. Reserved stock is {new_reserved}",
                details={"sku_id": sku_id, "stock": new_stock, "reserved": new_reserved},
            )

        if stock is not None or reserved is not None:
            inventory.stock = new_stock
            inventory.reserved = new_reserved
            delta = new_stock - previous_stock if stock is not None else new_reserved - previous_reserved
            self._record_movement(
                db, inventory, MovementType.ADJUST, delta,
                previous_stock, previous_reserved,
                "admin", None, user_id, reason or f"{mode.value} adjustment",
            )
            logger.info(
                "Adjusted inventory sku_id=%s mode=%s stock=%s->%s reserved=%s->%s user_id=%s",
                sku_id, mode.value, previous_stock, new_stock,
                previous_reserved, new_reserved, user_id,
            )
            await db.flush()

        result = await db.execute(
            select(Inventory)
            .options(selectinload(Inventory.sku).selectinload(ProductSku.book))
            .where(Inventory.sku_id == sku_id)
            .execution_options(populate_existing=True)
        )
        return build_inventory_entry(result.scalar_one())

    # ------------------------------------------------------------------
    # Admin views
    # ------------------------------------------------------------------

    async def list_inventory(
        self,
        db: AsyncSession,
        limit: int = 20,
        offset: int = 0,
    ) -> InventoryPage:
        """All inventory rows, most recently updated first."""
        total = await db.scalar(select(func.count()).select_from(Inventory))
        result = await db.execute(
            select(Inventory)
            .options(selectinload(Inventory.sku).selectinload(ProductSku.book))
            .order_by(Inventory.last_updated.desc(), Inventory.sku_id.desc())
            .offset(offset)
            .limit(limit)
        )
        items = [build_inventory_entry(inv) for inv in result.scalars().all()]
        return InventoryPage(items=items, total=total or 0, limit=limit, offset=offset)

    async def low_stock(self, db: AsyncSession) -> List[InventoryEntry]:
        """Rows whose available units are at or below LOW_STOCK_THRESHOLD, lowest first."""
        available = Inventory.stock - Inventory.reserved
        result = await db.execute(
            select(Inventory)
            .options(selectinload(Inventory.sku).selectinload(ProductSku.book))
            .where(available <= settings.LOW_STOCK_THRESHOLD)
            .order_by(available.asc(), Inventory.sku_id.asc())
        )
        return [build_inventory_entry(inv) for inv in result.scalars().all()]

    async def movements(self, db: AsyncSession, sku_id: int, limit: int = 50) -> List[StockMovement]:
        """Most recent stock movements for a SKU."""
        await self._get_sku(db, sku_id)
        result = await db.execute(
            select(StockMovement)
            .where(StockMovement.sku_id == sku_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


# Singleton instance
inventory_ledger = InventoryLedger()
