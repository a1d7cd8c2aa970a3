"""
Base source client for paginated catalog APIs.

Platform clients subclass ``CatalogSourceClient`` and only describe how to
build a page request and where the records live in the response. Retry,
backoff, rate limiting delays and pagination are shared here.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple

import httpx
from fake_useragent import UserAgent

from config.settings import SourceSettings, settings
from crawlers.core.catalog import CatalogItem, parse_catalog_page
from crawlers.core.exceptions import RateLimited, SourceUnavailable
from utils.logging import get_logger

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """재시도 정책

    429/503 응답은 base_delay * 2^attempt 만큼 기다린 뒤 max_attempts까지
    재시도한다. 그 외 실패는 other_failure_retries 번만 재시도한다.
    """
    max_attempts: int = 3
    base_delay: float = 1.5
    retry_statuses: FrozenSet[int] = frozenset({429, 503})
    other_failure_retries: int = 1

    def backoff(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    def is_rate_limited(self, status_code: int) -> bool:
        return status_code in self.retry_statuses

    @classmethod
    def from_settings(cls, config: SourceSettings) -> "RetryPolicy":
        return cls(max_attempts=config.max_retries, base_delay=config.backoff_base_delay)


class CatalogSourceClient(ABC):
    """페이지 단위 카탈로그 API 클라이언트 기본 클래스"""

    def __init__(
        self,
        config: Optional[SourceSettings] = None,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        self.config = config or settings.source
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.config)
        self.page_delay = self.config.page_delay
        self.category_delay = self.config.category_delay
        self.transport = transport
        self._sleep = sleep
        self.logger = get_logger(f"scraper.source.{self.name}")

        self.user_agent = (
            UserAgent().random if self.config.user_agent_rotation else self.config.user_agent
        )
        self.http_client: Optional[httpx.AsyncClient] = None

        # 성능 메트릭
        self.request_count = 0
        self.error_count = 0
        self.start_time = time.time()

    @property
    @abstractmethod
    def name(self) -> str:
        """로그용 소스 이름"""

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()

    async def initialize(self):
        """HTTP 클라이언트 초기화"""
        if self.http_client is not None:
            return
        self.http_client = httpx.AsyncClient(
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            timeout=self.config.timeout,
            follow_redirects=True,
            transport=self.transport
        )
        self.logger.info(f"{self.name} source client initialized")

    async def cleanup(self):
        """리소스 정리"""
        if self.http_client:
            await self.http_client.aclose()
            self.http_client = None
            self.logger.info(f"{self.name} source client closed")

    def category_url(self, slug: str) -> str:
        """카테고리 페이지 URL"""
        return f"{self.config.base_url.rstrip('/')}/{slug}"

    @abstractmethod
    def build_page_request(self, category_id: int, page_number: int) -> Tuple[str, Dict[str, str]]:
        """(URL, 쿼리 파라미터) 반환"""

    @abstractmethod
    def extract_records(self, payload: Any) -> List[Dict[str, Any]]:
        """응답 본문에서 상품 레코드 목록 추출"""

    async def _get_json(self, url: str, params: Dict[str, str]) -> Any:
        if self.http_client is None:
            await self.initialize()

        self.request_count += 1
        response = await self.http_client.get(url, params=params)
        if self.retry_policy.is_rate_limited(response.status_code):
            raise RateLimited(response.status_code)
        response.raise_for_status()
        return response.json()

    async def _request_with_retry(self, url: str, params: Dict[str, str]) -> Any:
        """재시도 정책을 적용한 요청"""
        policy = self.retry_policy
        other_failures = 0
        last_rate_limit: Optional[RateLimited] = None

        for attempt in range(policy.max_attempts):
            try:
                return await self._get_json(url, params)

            except RateLimited as e:
                last_rate_limit = e
                if attempt + 1 >= policy.max_attempts:
                    break
                wait_time = policy.backoff(attempt)
                self.logger.warning(f"Rate limited (HTTP {e.status_code}), waiting {wait_time:.1f}s")
                await self._sleep(wait_time)

            except (httpx.HTTPError, ValueError) as e:
                other_failures += 1
                self.error_count += 1
                status_code = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None

                if other_failures > policy.other_failure_retries or attempt + 1 >= policy.max_attempts:
                    raise SourceUnavailable(f"Request to {url} failed: {e}", status_code) from e

                self.logger.warning(
                    f"Request attempt {attempt + 1}/{policy.max_attempts} failed: {e}"
                )
                await self._sleep(policy.base_delay)

        self.error_count += 1
        raise SourceUnavailable(
            f"Request to {url} still rate limited after {policy.max_attempts} attempts",
            last_rate_limit.status_code if last_rate_limit else None
        ) from last_rate_limit

    async def _fetch_records(self, category_id: int, page_number: int) -> List[Dict[str, Any]]:
        url, params = self.build_page_request(category_id, page_number)
        payload = await self._request_with_retry(url, params)
        try:
            return self.extract_records(payload)
        except ValueError as e:
            raise SourceUnavailable(f"Malformed response for category {category_id}: {e}") from e

    async def fetch_page(self, category_id: int, page_number: int) -> List[CatalogItem]:
        """한 페이지 조회"""
        return parse_catalog_page(await self._fetch_records(category_id, page_number))

    async def fetch_all_pages(self, category_id: int) -> AsyncIterator[List[CatalogItem]]:
        """빈 페이지가 나올 때까지 페이지 단위로 반환"""
        page_number = 1
        total = 0

        while True:
            records = await self._fetch_records(category_id, page_number)
            if not records:
                self.logger.debug(f"Category {category_id}: {total} records in {page_number - 1} page(s)")
                return

            total += len(records)
            self.logger.debug(f"Category {category_id} page {page_number}: +{len(records)} (total: {total})")
            yield parse_catalog_page(records)

            page_number += 1
            await self._sleep(self.page_delay)

    async def wait_between_categories(self) -> None:
        """카테고리 스윕 사이 고정 지연"""
        if self.category_delay > 0:
            await self._sleep(self.category_delay)

    def get_stats(self) -> Dict[str, Any]:
        """소스 요청 통계"""
        runtime = time.time() - self.start_time
        return {
            "source": self.name,
            "runtime": runtime,
            "request_count": self.request_count,
            "error_count": self.error_count,
        }
