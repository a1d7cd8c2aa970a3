"""
Stock history models: append-only stock samples and the current
per-size variant stock snapshot.
"""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UTCDateTime, utcnow


class StockHistory(Base):
    """재고 변동 이력 모델"""

    __tablename__ = "stock_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id"),
        nullable=False
    )

    # 재고 정보
    total_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    in_stock: Mapped[bool] = mapped_column(Boolean, nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow
    )

    # 관계 설정
    product = relationship("Product", back_populates="stock_history")

    # 인덱스
    __table_args__ = (
        Index('idx_stock_history_product_id', 'product_id'),
        Index('idx_stock_history_recorded_at', 'recorded_at'),
        Index('idx_stock_history_product_recorded', 'product_id', 'recorded_at'),
    )

    def __repr__(self) -> str:
        return (
            f"<StockHistory(product_id={self.product_id}, total_stock={self.total_stock}, "
            f"in_stock={self.in_stock}, recorded_at={self.recorded_at})>"
        )


class VariantStock(Base):
    """색상/사이즈별 현재 재고 (기록할 때마다 전체 교체)"""

    __tablename__ = "variant_stocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id"),
        nullable=False
    )

    color: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    size: Mapped[str] = mapped_column(String(50), nullable=False)
    stock_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow
    )

    product = relationship("Product", back_populates="variant_stocks")

    __table_args__ = (
        Index('idx_variant_stocks_product_id', 'product_id'),
    )

    def __repr__(self) -> str:
        return f"<VariantStock(product_id={self.product_id}, color={self.color}, size={self.size})>"
