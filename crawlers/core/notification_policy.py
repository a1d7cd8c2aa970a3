"""
Notification policy: decides which events a reconciled item produces.

Decisions are pure; dispatching is left to the orchestrator and the
injected notifier.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Sequence

from config.settings import ScraperSettings, settings
from crawlers.core.catalog import CatalogItem
from crawlers.core.change_detector import ChangeSet, StockTransition
from crawlers.core.report import PriceChange, ScrapeReport


class NotificationKind(str, Enum):
    """알림 이벤트 종류"""
    NEW_PRODUCT = "new_product"
    PRICE_DROP = "price_drop"
    PRICE_INCREASE = "price_increase"
    BACK_IN_STOCK = "back_in_stock"
    OUT_OF_STOCK = "out_of_stock"
    SCRAPE_SUMMARY = "scrape_summary"
    TOP_PRICE_DROPS = "top_price_drops"


@dataclass(frozen=True)
class ProductNotice:
    """상품 알림 페이로드"""
    product_id: int
    name: str
    url: Optional[str]
    current_price: Decimal
    total_stock: int
    old_price: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None


@dataclass(frozen=True)
class NotificationEvent:
    kind: NotificationKind
    payload: Any


def percent_change(old_price: Decimal, new_price: Decimal) -> Optional[Decimal]:
    """변동률의 절댓값 (%)"""
    if not old_price:
        return None
    return abs((new_price - old_price) / old_price * 100)


class NotificationPolicy:
    """설정 임계값에 따라 알림 이벤트를 결정"""

    def __init__(self, config: Optional[ScraperSettings] = None):
        self.config = config or settings.scraper

    def decide(self, item: CatalogItem, changes: ChangeSet) -> List[NotificationEvent]:
        """신규 -> 가격 -> 재고 순서로 이벤트 반환"""
        events: List[NotificationEvent] = []

        if changes.is_new:
            if self.config.notify_new_products:
                events.append(NotificationEvent(
                    NotificationKind.NEW_PRODUCT, self._notice(item, changes)
                ))
            return events

        price_event = self._price_event(item, changes)
        if price_event is not None:
            events.append(price_event)

        stock_event = self._stock_event(item, changes)
        if stock_event is not None:
            events.append(stock_event)

        return events

    def _price_event(self, item: CatalogItem, changes: ChangeSet) -> Optional[NotificationEvent]:
        if not changes.price_changed:
            return None

        if changes.price_decreased:
            if not self.config.notify_price_drops:
                return None
            drop = percent_change(changes.old_price, changes.new_price)
            if drop is None or drop < Decimal(self.config.price_drop_threshold):
                return None
            return NotificationEvent(NotificationKind.PRICE_DROP, self._notice(item, changes))

        if changes.price_increased and self.config.notify_price_increases:
            return NotificationEvent(NotificationKind.PRICE_INCREASE, self._notice(item, changes))

        return None

    def _stock_event(self, item: CatalogItem, changes: ChangeSet) -> Optional[NotificationEvent]:
        if not self.config.notify_stock_changes:
            return None
        if changes.stock_transition == StockTransition.BECAME_IN_STOCK:
            return NotificationEvent(NotificationKind.BACK_IN_STOCK, self._notice(item, changes))
        if changes.stock_transition == StockTransition.BECAME_OUT_OF_STOCK:
            return NotificationEvent(NotificationKind.OUT_OF_STOCK, self._notice(item, changes))
        return None

    @staticmethod
    def _notice(item: CatalogItem, changes: ChangeSet) -> ProductNotice:
        change = None
        if changes.price_changed:
            change = percent_change(changes.old_price, changes.new_price)
        return ProductNotice(
            product_id=item.external_id,
            name=item.name,
            url=item.url,
            current_price=item.sell_price,
            total_stock=item.total_stock,
            old_price=changes.old_price,
            change_percent=change,
        )

    # 실행 종료 알림

    def summary_events(self, report: ScrapeReport) -> List[NotificationEvent]:
        """요약 알림과 최대 하락 다이제스트"""
        if not self.config.send_summary:
            return []

        events = [NotificationEvent(NotificationKind.SCRAPE_SUMMARY, report)]
        drops = top_price_drops(report.price_changes, self.config.top_drops_limit)
        if drops:
            events.append(NotificationEvent(NotificationKind.TOP_PRICE_DROPS, drops))
        return events


def top_price_drops(changes: Sequence[PriceChange], limit: int = 5) -> List[PriceChange]:
    """하락폭이 큰 순서로 N개 (동률은 원래 순서 유지)"""
    drops = [c for c in changes if c.change < 0]
    # sorted()는 안정 정렬
    return sorted(drops, key=lambda c: c.change)[:limit]
