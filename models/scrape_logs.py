"""
Scrape run model for tracking category sweep results.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Enum as SAEnum, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ScrapeStatus, UTCDateTime, utcnow


class ScrapeRun(Base):
    """카테고리 스윕 실행 로그 모델

    스윕 시작 시 running 상태로 생성되고 종료 시 한 번만 확정된다.
    """

    __tablename__ = "scrape_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    category_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # 실행 결과
    status: Mapped[ScrapeStatus] = mapped_column(
        SAEnum(ScrapeStatus, values_callable=lambda e: [m.value for m in e],
               native_enum=False, length=20),
        nullable=False,
        default=ScrapeStatus.RUNNING
    )

    products_found: Mapped[int] = mapped_column(Integer, default=0)
    products_new: Mapped[int] = mapped_column(Integer, default=0)
    products_updated: Mapped[int] = mapped_column(Integer, default=0)

    # 오류 정보 (실패 시)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    # 성능 메트릭
    duration_ms: Mapped[Optional[int]] = mapped_column(
        Integer,
        comment="실행 시간 (밀리초)"
    )

    started_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())

    # 인덱스
    __table_args__ = (
        Index('idx_scrape_logs_category_id', 'category_id'),
        Index('idx_scrape_logs_status', 'status'),
        Index('idx_scrape_logs_started_at', 'started_at'),
    )

    def __repr__(self) -> str:
        return f"<ScrapeRun(category_id={self.category_id}, status={self.status}, started_at={self.started_at})>"
