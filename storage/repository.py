"""
Product repository for the scrape reconciliation engine.

The engine only talks to the ``ProductRepository`` protocol. The SQLAlchemy
implementation below runs every operation in its own short transaction and
returns detached, immutable snapshots so callers never hold live ORM rows.
"""

from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from crawlers.core.catalog import CatalogItem, CategoryInput, product_fields
from crawlers.core.exceptions import RepositoryError
from models import (
    Category, PriceHistory, Product, ScrapeRun, ScrapeStatus,
    StockHistory, VariantStock, utcnow
)
from storage.connection import DatabaseManager, db_manager
from utils.logging import get_logger

logger = get_logger("scraper.repository")

# (color, size, stock_amount)
VariantRow = Tuple[str, str, int]


@dataclass(frozen=True)
class ProductSnapshot:
    """상품 행의 불변 사본"""
    id: int
    external_id: int
    stock_code: Optional[str]
    name: str
    url: Optional[str]
    current_price: Optional[Decimal]
    original_price: Optional[Decimal]
    discount_rate: int
    in_stock: Optional[bool]
    total_stock: int
    category_id: Optional[int]
    first_seen_at: datetime
    last_seen_at: datetime

    @classmethod
    def from_model(cls, product: Product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            external_id=product.product_id,
            stock_code=product.stock_code,
            name=product.name,
            url=product.url,
            current_price=product.current_price,
            original_price=product.original_price,
            discount_rate=product.discount_rate or 0,
            in_stock=product.in_stock,
            total_stock=product.total_stock or 0,
            category_id=product.category_id,
            first_seen_at=product.first_seen_at,
            last_seen_at=product.last_seen_at,
        )


@dataclass(frozen=True)
class UpsertResult:
    """upsert 결과: 저장된 상태와 갱신 전 상태"""
    product: ProductSnapshot
    previous: Optional[ProductSnapshot]

    @property
    def is_new(self) -> bool:
        return self.previous is None


@dataclass(frozen=True)
class PriceSample:
    id: int
    product_id: int
    price: Decimal
    original_price: Optional[Decimal]
    discount_rate: int
    recorded_at: datetime

    @classmethod
    def from_model(cls, row: PriceHistory) -> "PriceSample":
        return cls(
            id=row.id,
            product_id=row.product_id,
            price=row.price,
            original_price=row.original_price,
            discount_rate=row.discount_rate or 0,
            recorded_at=row.recorded_at,
        )


@dataclass(frozen=True)
class StockSample:
    id: int
    product_id: int
    total_stock: int
    in_stock: bool
    recorded_at: datetime

    @classmethod
    def from_model(cls, row: StockHistory) -> "StockSample":
        return cls(
            id=row.id,
            product_id=row.product_id,
            total_stock=row.total_stock,
            in_stock=row.in_stock,
            recorded_at=row.recorded_at,
        )


@dataclass(frozen=True)
class ScrapeRunSnapshot:
    id: int
    category_id: int
    status: ScrapeStatus
    products_found: int
    products_new: int
    products_updated: int
    duration_ms: Optional[int]
    error_message: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime]

    @classmethod
    def from_model(cls, row: ScrapeRun) -> "ScrapeRunSnapshot":
        return cls(
            id=row.id,
            category_id=row.category_id,
            status=ScrapeStatus(row.status),
            products_found=row.products_found or 0,
            products_new=row.products_new or 0,
            products_updated=row.products_updated or 0,
            duration_ms=row.duration_ms,
            error_message=row.error_message,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )


@dataclass(frozen=True)
class RepositoryStats:
    total_products: int
    total_categories: int
    total_price_records: int
    total_stock_records: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class ProductRepository(Protocol):
    """재조정 엔진이 사용하는 저장소 인터페이스"""

    def find_by_external_id(self, external_id: int) -> Optional[ProductSnapshot]: ...

    def upsert_product(self, item: CatalogItem, category_db_id: Optional[int]) -> UpsertResult: ...

    def latest_price_sample(self, product_id: int) -> Optional[PriceSample]: ...

    def append_price_sample(self, product_id: int, price: Decimal,
                            original_price: Optional[Decimal], discount_rate: int) -> PriceSample: ...

    def latest_stock_sample(self, product_id: int) -> Optional[StockSample]: ...

    def append_stock_sample(self, product_id: int, total_stock: int, in_stock: bool) -> StockSample: ...

    def replace_variant_stock(self, product_id: int, rows: Sequence[VariantRow]) -> int: ...

    def upsert_category(self, category: CategoryInput, url: Optional[str] = None) -> int: ...

    def list_active_categories(self) -> List[CategoryInput]: ...

    def create_scrape_run(self, category_id: int) -> int: ...

    def finalize_scrape_run(self, run_id: int, status: ScrapeStatus, *, found: int, new: int,
                            updated: int, duration_ms: int,
                            error_message: Optional[str] = None) -> None: ...

    def get_stats(self) -> RepositoryStats: ...


class SqlAlchemyProductRepository:
    """SQLAlchemy 기반 저장소 구현"""

    def __init__(
        self,
        db: Optional[DatabaseManager] = None,
        clock: Callable[[], datetime] = utcnow,
        default_brand: Optional[str] = None
    ):
        self._db = db or db_manager
        self._clock = clock
        self._default_brand = default_brand or settings.source.default_brand

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        try:
            with self._db.get_session() as session:
                yield session
        except SQLAlchemyError as e:
            raise RepositoryError(f"{operation} failed: {e}") from e

    # 상품

    def find_by_external_id(self, external_id: int) -> Optional[ProductSnapshot]:
        with self._session("find_by_external_id") as session:
            product = session.scalar(
                select(Product).where(Product.product_id == external_id)
            )
            return ProductSnapshot.from_model(product) if product else None

    def upsert_product(self, item: CatalogItem, category_db_id: Optional[int]) -> UpsertResult:
        now = self._clock()
        fields = product_fields(item, self._default_brand)

        with self._session("upsert_product") as session:
            product = session.scalar(
                select(Product).where(Product.product_id == item.external_id)
            )

            if product is not None:
                previous = ProductSnapshot.from_model(product)
                for key, value in fields.items():
                    setattr(product, key, value)
                product.category_id = category_db_id
                product.last_seen_at = now
            else:
                previous = None
                product = Product(
                    product_id=item.external_id,
                    category_id=category_db_id,
                    first_seen_at=now,
                    last_seen_at=now,
                    **fields
                )
                session.add(product)

            session.flush()
            return UpsertResult(product=ProductSnapshot.from_model(product), previous=previous)

    # 가격/재고 이력

    def latest_price_sample(self, product_id: int) -> Optional[PriceSample]:
        with self._session("latest_price_sample") as session:
            row = session.scalar(
                select(PriceHistory)
                .where(PriceHistory.product_id == product_id)
                .order_by(PriceHistory.recorded_at.desc(), PriceHistory.id.desc())
                .limit(1)
            )
            return PriceSample.from_model(row) if row else None

    def append_price_sample(self, product_id: int, price: Decimal,
                            original_price: Optional[Decimal], discount_rate: int) -> PriceSample:
        with self._session("append_price_sample") as session:
            row = PriceHistory(
                product_id=product_id,
                price=price,
                original_price=original_price,
                discount_rate=discount_rate or 0,
                recorded_at=self._clock()
            )
            session.add(row)
            session.flush()
            return PriceSample.from_model(row)

    def list_price_samples(self, product_id: int) -> List[PriceSample]:
        with self._session("list_price_samples") as session:
            rows = session.scalars(
                select(PriceHistory)
                .where(PriceHistory.product_id == product_id)
                .order_by(PriceHistory.recorded_at, PriceHistory.id)
            )
            return [PriceSample.from_model(row) for row in rows]

    def latest_stock_sample(self, product_id: int) -> Optional[StockSample]:
        with self._session("latest_stock_sample") as session:
            row = session.scalar(
                select(StockHistory)
                .where(StockHistory.product_id == product_id)
                .order_by(StockHistory.recorded_at.desc(), StockHistory.id.desc())
                .limit(1)
            )
            return StockSample.from_model(row) if row else None

    def append_stock_sample(self, product_id: int, total_stock: int, in_stock: bool) -> StockSample:
        with self._session("append_stock_sample") as session:
            row = StockHistory(
                product_id=product_id,
                total_stock=total_stock,
                in_stock=in_stock,
                recorded_at=self._clock()
            )
            session.add(row)
            session.flush()
            return StockSample.from_model(row)

    def list_stock_samples(self, product_id: int) -> List[StockSample]:
        with self._session("list_stock_samples") as session:
            rows = session.scalars(
                select(StockHistory)
                .where(StockHistory.product_id == product_id)
                .order_by(StockHistory.recorded_at, StockHistory.id)
            )
            return [StockSample.from_model(row) for row in rows]

    def replace_variant_stock(self, product_id: int, rows: Sequence[VariantRow]) -> int:
        now = self._clock()
        with self._session("replace_variant_stock") as session:
            session.execute(delete(VariantStock).where(VariantStock.product_id == product_id))
            session.add_all([
                VariantStock(
                    product_id=product_id,
                    color=color,
                    size=size,
                    stock_amount=stock_amount,
                    recorded_at=now
                )
                for color, size, stock_amount in rows
            ])
            return len(rows)

    def list_variant_stock(self, product_id: int) -> List[VariantRow]:
        with self._session("list_variant_stock") as session:
            rows = session.scalars(
                select(VariantStock)
                .where(VariantStock.product_id == product_id)
                .order_by(VariantStock.id)
            )
            return [(row.color, row.size, row.stock_amount) for row in rows]

    # 카테고리

    def upsert_category(self, category: CategoryInput, url: Optional[str] = None) -> int:
        with self._session("upsert_category") as session:
            row = session.scalar(
                select(Category).where(Category.category_id == category.category_id)
            )
            if row is None:
                row = Category(category_id=category.category_id)
                session.add(row)

            row.slug = category.slug
            row.name = category.name or category.slug
            row.url = url
            session.flush()
            return row.id

    def list_active_categories(self) -> List[CategoryInput]:
        with self._session("list_active_categories") as session:
            rows = session.scalars(
                select(Category)
                .where(Category.is_active.is_(True))
                .order_by(Category.id)
            )
            return [
                CategoryInput(category_id=row.category_id, slug=row.slug, name=row.name)
                for row in rows
            ]

    # 스크랩 실행 로그

    def create_scrape_run(self, category_id: int) -> int:
        with self._session("create_scrape_run") as session:
            run = ScrapeRun(
                category_id=category_id,
                status=ScrapeStatus.RUNNING,
                started_at=self._clock()
            )
            session.add(run)
            session.flush()
            return run.id

    def finalize_scrape_run(self, run_id: int, status: ScrapeStatus, *, found: int, new: int,
                            updated: int, duration_ms: int,
                            error_message: Optional[str] = None) -> None:
        if status == ScrapeStatus.RUNNING:
            raise RepositoryError("Scrape run cannot be finalized as running")

        with self._session("finalize_scrape_run") as session:
            run = session.get(ScrapeRun, run_id)
            if run is None:
                raise RepositoryError(f"Scrape run {run_id} not found")
            if run.status != ScrapeStatus.RUNNING:
                raise RepositoryError(f"Scrape run {run_id} already finalized as {run.status.value}")

            run.status = status
            run.products_found = found
            run.products_new = new
            run.products_updated = updated
            run.duration_ms = duration_ms
            run.error_message = error_message
            run.completed_at = self._clock()

    def get_scrape_run(self, run_id: int) -> Optional[ScrapeRunSnapshot]:
        with self._session("get_scrape_run") as session:
            run = session.get(ScrapeRun, run_id)
            return ScrapeRunSnapshot.from_model(run) if run else None

    def get_stats(self) -> RepositoryStats:
        with self._session("get_stats") as session:
            return RepositoryStats(
                total_products=session.scalar(select(func.count()).select_from(Product)) or 0,
                total_categories=session.scalar(select(func.count()).select_from(Category)) or 0,
                total_price_records=session.scalar(select(func.count()).select_from(PriceHistory)) or 0,
                total_stock_records=session.scalar(select(func.count()).select_from(StockHistory)) or 0,
            )
