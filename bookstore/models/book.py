"""
Catalog models: Book and its sellable SKUs

Only the fields the order core reads live here. Browse, search and media
belong to the catalog service.

DB-001: Numeric(12,2) for monetary fields
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric
from sqlalchemy.orm import relationship

from bookstore.core.database import Base
from bookstore.core.utils import utcnow


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(500), nullable=False)
    base_price = Column(Numeric(12, 2), nullable=False)

    # Cycle with product_skus: the FK is added after both tables exist
    default_sku_id = Column(
        Integer,
        ForeignKey("product_skus.id", ondelete="SET NULL", use_alter=True, name="fk_books_default_sku_id"),
        nullable=True,
    )

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    skus = relationship(
        "ProductSku",
        back_populates="book",
        foreign_keys="ProductSku.book_id",
        order_by="ProductSku.id",
    )

    def __repr__(self):
        return f"<Book {self.id}: {self.title}>"


class ProductSku(Base):
    """Sellable variant of a book (format, binding). Owns one inventory row."""
    __tablename__ = "product_skus"

    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)

    # Case-sensitive, unique across the catalog
    sku_code = Column(String(100), unique=True, nullable=False, index=True)
    format = Column(String(50), nullable=True)
    price_override = Column(Numeric(12, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    book = relationship("Book", back_populates="skus", foreign_keys=[book_id])
    inventory = relationship("Inventory", back_populates="sku", uselist=False)

    @property
    def effective_price(self) -> Decimal:
        """price_override when set, otherwise the owning book's base price."""
        if self.price_override is not None:
            return Decimal(self.price_override)
        return Decimal(self.book.base_price)

    def __repr__(self):
        return f"<ProductSku {self.id}: {self.sku_code}>"
