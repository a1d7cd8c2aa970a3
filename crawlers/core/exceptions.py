"""
Error taxonomy for the scrape reconciliation engine.
"""

from typing import Optional


class ScraperError(Exception):
    """스크래퍼 예외 기본 클래스"""


class SourceUnavailable(ScraperError):
    """재시도 후에도 카탈로그 API에 접근할 수 없음 (카테고리 단위 치명적)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(ScraperError):
    """HTTP 429/503 - 백오프 후 재시도 대상"""

    def __init__(self, status_code: int):
        super().__init__(f"Rate limited by source (HTTP {status_code})")
        self.status_code = status_code


class RepositoryError(ScraperError):
    """저장소 작업 실패 (상품 단위 치명적)"""


class NotificationError(ScraperError):
    """알림 전송 실패 - 항상 로그만 남기고 무시"""


class ScrapeCancelled(ScraperError):
    """종료 신호로 스윕이 중단됨"""
