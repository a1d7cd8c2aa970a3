"""
Price history model for tracking product price transitions.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, DECIMAL
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UTCDateTime, utcnow


class PriceHistory(Base):
    """가격 변동 이력 모델

    연속된 두 레코드의 가격이 같지 않도록 기록 시점에 중복을 걸러낸다.
    """

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id"),
        nullable=False
    )

    # 가격 정보
    price: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    original_price: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(12, 2))
    discount_rate: Mapped[int] = mapped_column(Integer, default=0)

    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow
    )

    # 관계 설정
    product = relationship("Product", back_populates="price_history")

    # 인덱스
    __table_args__ = (
        Index('idx_price_history_product_id', 'product_id'),
        Index('idx_price_history_recorded_at', 'recorded_at'),
        Index('idx_price_history_product_recorded', 'product_id', 'recorded_at'),
    )

    def __repr__(self) -> str:
        return f"<PriceHistory(product_id={self.product_id}, price={self.price}, recorded_at={self.recorded_at})>"
