"""
Scrape reconciliation orchestrator.

Drives category sweeps: pulls pages from the source client, reconciles each
item against stored state, records history, aggregates the run report and
sequences notification dispatch. Categories, pages and items are processed
strictly one after another so the source's rate limits are respected and
replays are deterministic.
"""

import time
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from config.settings import ScraperSettings, settings
from crawlers.core.catalog import CatalogItem, CategoryInput
from crawlers.core.change_detector import ChangeSet, StockTransition, detect_changes
from crawlers.core.exceptions import (
    RepositoryError, ScrapeCancelled, ScraperError, SourceUnavailable
)
from crawlers.core.history import HistoryRecorder
from crawlers.core.notification_policy import NotificationEvent, NotificationPolicy
from crawlers.core.report import (
    CategoryResult, PriceChange, ScrapeError, ScrapeReport, StockChange
)
from crawlers.core.source_client import CatalogSourceClient
from models import ScrapeStatus
from notifiers.base import Notifier, NullNotifier
from storage.repository import ProductRepository, UpsertResult
from utils.logging import (
    get_logger, log_performance_metrics, log_sweep_complete,
    log_sweep_error, log_sweep_start
)


class SweepState(str, Enum):
    """카테고리 스윕 상태 머신: PENDING -> RUNNING -> {SUCCESS, ERROR, CANCELLED}"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class CancellationToken:
    """상품 사이마다 확인되는 중단 신호"""

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "Scrape cancelled") -> None:
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ScrapeCancelled(self.reason or "Scrape cancelled")


@dataclass(frozen=True)
class ItemOutcome:
    """상품 하나의 재조정 결과"""
    item: CatalogItem
    upsert: UpsertResult
    changes: ChangeSet


class ScrapeReconciler:
    """카테고리 스윕 오케스트레이터"""

    def __init__(
        self,
        repository: ProductRepository,
        source: CatalogSourceClient,
        notifier: Optional[Notifier] = None,
        config: Optional[ScraperSettings] = None,
        policy: Optional[NotificationPolicy] = None,
        history: Optional[HistoryRecorder] = None,
        cancel_token: Optional[CancellationToken] = None
    ):
        self.repository = repository
        self.source = source
        self.notifier = notifier or NullNotifier()
        self.config = config or settings.scraper
        self.policy = policy or NotificationPolicy(self.config)
        self.history = history or HistoryRecorder(repository)
        self.cancel_token = cancel_token or CancellationToken()
        self.logger = get_logger("scraper.reconciler")

        self.report = ScrapeReport()
        self.notifications_sent = 0

    # 상품 단위

    def reconcile_item(self, item: CatalogItem, category_db_id: Optional[int]) -> ItemOutcome:
        """upsert -> 변경 판정 -> 이력 기록"""
        upsert = self.repository.upsert_product(item, category_db_id)
        changes = detect_changes(item, upsert.previous)
        product_id = upsert.product.id

        # 중복 제거는 기록기 내부에서 처리
        self.history.record_price(
            product_id, item.sell_price, item.effective_list_price, changes.discount_percent
        )
        self.history.record_stock(product_id, item.total_stock, item.in_stock)

        # 빈 목록도 기록해야 사라진 사이즈가 지워진다
        if self.config.record_variants:
            self.history.record_variants(product_id, item.stock_code, item.variants)

        return ItemOutcome(item=item, upsert=upsert, changes=changes)

    def _accumulate(self, outcome: ItemOutcome, result: CategoryResult) -> None:
        item, changes = outcome.item, outcome.changes

        if changes.is_new:
            result.new += 1
            self.report.products_new += 1
            return

        result.updated += 1
        self.report.products_updated += 1

        if changes.price_changed:
            self.report.price_changes.append(PriceChange(
                product_id=item.external_id,
                name=item.name,
                url=item.url,
                old_price=changes.old_price,
                new_price=changes.new_price,
            ))

        if changes.stock_transition != StockTransition.NONE:
            self.report.stock_changes.append(StockChange(
                product_id=item.external_id,
                name=item.name,
                was_in_stock=not item.in_stock,
                in_stock=item.in_stock,
                total_stock=item.total_stock,
            ))

    async def _dispatch(self, events: Iterable[NotificationEvent]) -> None:
        """알림 전송 - 실패는 로그만 남김"""
        if not self.notifier.is_enabled():
            return

        for event in events:
            try:
                if await self.notifier.send_event(event.kind, event.payload):
                    self.notifications_sent += 1
                else:
                    self.logger.debug(f"Notification {event.kind.value} was not delivered")
            except Exception as e:
                self.logger.error(f"Notification {event.kind.value} failed: {e}")

    # 카테고리 단위

    async def scrape_category(self, category: CategoryInput) -> CategoryResult:
        """카테고리 하나의 전체 페이지 스윕"""
        start_time = time.perf_counter()
        result = CategoryResult(category_id=category.category_id)
        state = SweepState.PENDING

        try:
            run_id = self.repository.create_scrape_run(category.category_id)
        except RepositoryError as e:
            self.logger.error(f"Could not start scrape run for category {category.category_id}: {e}")
            result.status = SweepState.ERROR.value
            result.error = str(e)
            self.report.errors.append(ScrapeError(error=str(e), category_id=category.category_id))
            return result

        state = SweepState.RUNNING
        log_sweep_start({
            "category_id": category.category_id,
            "slug": category.slug,
            "name": category.name,
            "run_id": run_id,
        })

        try:
            category_db_id = self.repository.upsert_category(
                category, url=self.source.category_url(category.slug)
            )

            async with aclosing(self.source.fetch_all_pages(category.category_id)) as pages:
                async for page in pages:
                    for item in page:
                        self.cancel_token.raise_if_cancelled()
                        await self._process(item, category_db_id, result)

            state = SweepState.SUCCESS
            self.report.categories_processed += 1

        except ScrapeCancelled as e:
            state = SweepState.CANCELLED
            result.error = str(e)
            self.logger.warning(f"Sweep for category {category.category_id} cancelled")

        except (SourceUnavailable, RepositoryError) as e:
            state = SweepState.ERROR
            result.error = str(e)
            self.report.errors.append(ScrapeError(error=str(e), category_id=category.category_id))
            log_sweep_error(category.category_id, e)

        except Exception as e:
            # 예상하지 못한 실패도 실행을 ERROR로 마감하고 다음 카테고리로 진행
            state = SweepState.ERROR
            result.error = f"Unexpected error: {e}"
            self.report.errors.append(ScrapeError(error=result.error, category_id=category.category_id))
            log_sweep_error(category.category_id, e)

        result.status = state.value
        result.duration_ms = int((time.perf_counter() - start_time) * 1000)
        self._finalize_run(run_id, state, result)

        if state == SweepState.SUCCESS:
            log_sweep_complete(category.category_id, result.counts(), result.duration_ms)

        return result

    async def _process(self, item: CatalogItem, category_db_id: int, result: CategoryResult) -> None:
        result.found += 1
        self.report.products_found += 1

        try:
            outcome = self.reconcile_item(item, category_db_id)
        except Exception as e:
            # 상품 하나의 실패로 스윕을 중단하지 않음
            self.logger.warning(f"Failed to reconcile product {item.external_id}: {e}")
            self.report.errors.append(ScrapeError(error=str(e), product_id=item.external_id))
            return

        self._accumulate(outcome, result)
        await self._dispatch(self.policy.decide(item, outcome.changes))

    def _finalize_run(self, run_id: int, state: SweepState, result: CategoryResult) -> None:
        try:
            self.repository.finalize_scrape_run(
                run_id,
                ScrapeStatus(state.value),
                found=result.found,
                new=result.new,
                updated=result.updated,
                duration_ms=result.duration_ms,
                error_message=result.error
            )
        except ScraperError as e:
            self.logger.error(f"Failed to finalize scrape run {run_id}: {e}")
            self.report.errors.append(ScrapeError(error=str(e), category_id=result.category_id))

    # 전체 실행

    async def scrape_all(self, categories: Iterable[CategoryInput]) -> ScrapeReport:
        """카테고리를 순차적으로 스윕하고 통합 리포트 반환"""
        categories = list(categories)
        self.report = ScrapeReport()
        start_time = time.perf_counter()

        self.logger.info(f"Starting full scrape of {len(categories)} categories")

        for index, category in enumerate(categories):
            if self.cancel_token.cancelled:
                self.logger.warning(
                    f"Cancelled, skipping {len(categories) - index} remaining categories"
                )
                break
            if index > 0:
                await self.source.wait_between_categories()
            await self.scrape_category(category)

        duration = time.perf_counter() - start_time
        self._log_summary(duration)

        await self._dispatch(self.policy.summary_events(self.report))

        log_performance_metrics({
            "duration_seconds": round(duration, 2),
            "notifications_sent": self.notifications_sent,
            **self.source.get_stats()
        })
        return self.report

    async def scrape_categories(self, category_ids: Iterable[int]) -> ScrapeReport:
        """ID 목록만으로 스윕 (slug는 임시값)"""
        return await self.scrape_all(
            CategoryInput(category_id=cid, slug=f"category-{cid}") for cid in category_ids
        )

    def _log_summary(self, duration: float) -> None:
        report = self.report
        self.logger.info(
            f"Scrape finished in {duration / 60:.1f} min: "
            f"categories={report.categories_processed}, found={report.products_found}, "
            f"new={report.products_new}, updated={report.products_updated}, "
            f"price_changes={len(report.price_changes)}, errors={len(report.errors)}"
        )

        for change in report.price_changes[:10]:
            direction = "↑" if change.change > 0 else "↓"
            self.logger.info(
                f"  {direction} {change.name[:40]}: {change.old_price:.2f} -> {change.new_price:.2f} "
                f"({change.change_percent}%)"
            )
        if len(report.price_changes) > 10:
            self.logger.info(f"  ... and {len(report.price_changes) - 10} more price changes")

    def get_report(self) -> ScrapeReport:
        return self.report
