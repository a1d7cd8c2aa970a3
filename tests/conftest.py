from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from config.settings import ScraperSettings
from crawlers.core.catalog import CatalogItem, CategoryInput
from crawlers.core.reconciler import CancellationToken, ScrapeReconciler
from storage.connection import DatabaseManager
from storage.repository import ProductSnapshot, SqlAlchemyProductRepository


class FakeClock:
    """Monotonic clock that advances one second per call."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


class FakeSource:
    """In-memory stand-in for a catalog source client."""

    def __init__(self):
        self.pages: Dict[int, List[List[CatalogItem]]] = {}
        self.failures: Dict[int, Exception] = {}
        self.fetched: List[int] = []
        self.category_waits = 0

    def category_url(self, slug: str) -> str:
        return f"https://shop.test/{slug}"

    async def fetch_all_pages(self, category_id: int):
        self.fetched.append(category_id)
        for page in self.pages.get(category_id, []):
            yield page
        if category_id in self.failures:
            raise self.failures[category_id]

    async def wait_between_categories(self) -> None:
        self.category_waits += 1

    def get_stats(self) -> Dict[str, Any]:
        return {"source": "fake", "request_count": len(self.fetched)}


class RecordingNotifier:
    """Notifier that remembers every event it was handed."""

    def __init__(self, enabled: bool = True, fail: bool = False):
        self.enabled = enabled
        self.fail = fail
        self.events = []

    def is_enabled(self) -> bool:
        return self.enabled

    async def send_event(self, kind, payload) -> bool:
        if self.fail:
            raise RuntimeError("telegram is down")
        self.events.append((kind, payload))
        return True

    @property
    def kinds(self):
        return [kind for kind, _ in self.events]


def make_item(product_id: int = 1, price="100", in_stock: bool = True, **extra) -> CatalogItem:
    raw = {
        "productId": product_id,
        "stockCode": f"A41Y{product_id:04d}-SIYAH",
        "name": f"Product {product_id}",
        "url": f"/product-{product_id}",
        "productCartPrice": price,
        "inStock": in_stock,
        "totalStockAmount": 10 if in_stock else 0,
    }
    raw.update(extra)
    return CatalogItem.model_validate(raw)


def make_snapshot(current_price="100", in_stock: Optional[bool] = True) -> ProductSnapshot:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return ProductSnapshot(
        id=1,
        external_id=1,
        stock_code="A41Y0001-SIYAH",
        name="Product 1",
        url="/product-1",
        current_price=Decimal(current_price) if current_price is not None else None,
        original_price=None,
        discount_rate=0,
        in_stock=in_stock,
        total_stock=10,
        category_id=None,
        first_seen_at=now,
        last_seen_at=now,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database():
    db = DatabaseManager("sqlite:///:memory:")
    db.create_all()
    yield db
    db.close()


@pytest.fixture
def repository(database, clock):
    return SqlAlchemyProductRepository(database, clock=clock, default_brand="AVVA")


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scraper_config():
    return ScraperSettings(send_summary=False)


@pytest.fixture
def category():
    return CategoryInput(category_id=1154, slug="erkek-t-shirt", name="T-Shirt")


@pytest.fixture
def reconciler(repository, source, notifier, scraper_config):
    return ScrapeReconciler(
        repository=repository,
        source=source,
        notifier=notifier,
        config=scraper_config,
        cancel_token=CancellationToken()
    )
