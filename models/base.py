"""
Base model classes and enums for the catalog price tracker.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, Integer
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import Mapped, declarative_base, mapped_column
from sqlalchemy.sql import func


def utcnow() -> datetime:
    """UTC 현재 시각"""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """항상 UTC aware datetime으로 읽고 쓰는 컬럼 타입

    SQLite는 시간대 정보를 저장하지 않으므로 읽을 때 UTC를 다시 붙인다.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ScrapeStatus(str, Enum):
    """카테고리 스윕 실행 상태"""
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"     # 종료 신호로 중단됨


Base = declarative_base()


class BaseModel:
    """공통 기본 모델 믹스인"""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now()
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now()
    )
