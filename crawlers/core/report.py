"""
Scrape report: the aggregated outcome handed back to the CLI.
"""

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class PriceChange:
    """가격 변동 이벤트 (메모리 전용)"""
    product_id: int
    name: str
    url: Optional[str]
    old_price: Decimal
    new_price: Decimal

    @property
    def change(self) -> Decimal:
        return self.new_price - self.old_price

    @property
    def change_percent(self) -> Optional[Decimal]:
        if not self.old_price:
            return None
        return (self.change / self.old_price * 100).quantize(Decimal("0.01"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "url": self.url,
            "old_price": float(self.old_price),
            "new_price": float(self.new_price),
            "change": float(self.change),
        }


@dataclass(frozen=True)
class StockChange:
    """재고 전이 이벤트 (메모리 전용)"""
    product_id: int
    name: str
    was_in_stock: bool
    in_stock: bool
    total_stock: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScrapeError:
    """상품 또는 카테고리 단위 오류"""
    error: str
    product_id: Optional[int] = None
    category_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ScrapeReport:
    """전체 스크랩 결과"""
    categories_processed: int = 0
    products_found: int = 0
    products_new: int = 0
    products_updated: int = 0
    price_changes: List[PriceChange] = field(default_factory=list)
    stock_changes: List[StockChange] = field(default_factory=list)
    errors: List[ScrapeError] = field(default_factory=list)

    @property
    def price_drops(self) -> List[PriceChange]:
        return [c for c in self.price_changes if c.change < 0]

    @property
    def price_increases(self) -> List[PriceChange]:
        return [c for c in self.price_changes if c.change > 0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categories_processed": self.categories_processed,
            "products_found": self.products_found,
            "products_new": self.products_new,
            "products_updated": self.products_updated,
            "price_changes": [c.to_dict() for c in self.price_changes],
            "stock_changes": [c.to_dict() for c in self.stock_changes],
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class CategoryResult:
    """카테고리 한 번의 스윕 통계"""
    category_id: int
    status: str = "pending"
    found: int = 0
    new: int = 0
    updated: int = 0
    duration_ms: int = 0
    error: Optional[str] = None

    def counts(self) -> Dict[str, int]:
        return {"found": self.found, "new": self.new, "updated": self.updated}
