"""
Product and category models for the catalog price tracker.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean, ForeignKey, Index, Integer,
    DECIMAL, String, Text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BaseModel, UTCDateTime, utcnow


class Category(Base, BaseModel):
    """카테고리 모델"""

    __tablename__ = "categories"

    category_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    url: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    products = relationship("Product", back_populates="category")

    __table_args__ = (
        Index('idx_categories_is_active', 'is_active'),
    )

    def __repr__(self) -> str:
        return f"<Category(category_id={self.category_id}, slug={self.slug})>"


class Product(Base, BaseModel):
    """상품 모델"""

    __tablename__ = "products"

    # 외부 식별자
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    stock_code: Mapped[Optional[str]] = mapped_column(String(100))
    barcode: Mapped[Optional[str]] = mapped_column(String(100))

    # 기본 정보
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    url: Mapped[Optional[str]] = mapped_column(Text)
    image_url: Mapped[Optional[str]] = mapped_column(Text)

    category_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("categories.id")
    )

    # 가격 정보
    current_price: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(12, 2))
    original_price: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(12, 2))
    discount_rate: Mapped[int] = mapped_column(Integer, default=0)

    # 재고 정보
    in_stock: Mapped[bool] = mapped_column(Boolean, default=False)
    total_stock: Mapped[int] = mapped_column(Integer, default=0)
    variant_count: Mapped[int] = mapped_column(Integer, default=0)

    first_seen_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow
    )

    # 관계 설정
    category = relationship("Category", back_populates="products")
    price_history = relationship("PriceHistory", back_populates="product")
    stock_history = relationship("StockHistory", back_populates="product")
    variant_stocks = relationship("VariantStock", back_populates="product")

    __table_args__ = (
        Index('idx_products_category_id', 'category_id'),
        Index('idx_products_stock_code', 'stock_code'),
        Index('idx_products_last_seen_at', 'last_seen_at'),
    )

    def __repr__(self) -> str:
        return f"<Product(product_id={self.product_id}, name={self.name[:50]})>"
