"""
History recording with adjacent-duplicate suppression.
"""

from decimal import Decimal
from typing import List, Optional, Sequence

from crawlers.core.catalog import STOCK_CODE_SEPARATOR, VariantGroup
from storage.repository import PriceSample, ProductRepository, StockSample, VariantRow
from utils.logging import get_logger

PRICE_QUANTUM = Decimal("0.01")


def normalize_price(value) -> Decimal:
    """두 자리 고정소수점으로 정규화"""
    return Decimal(str(value)).quantize(PRICE_QUANTUM)


def color_from_stock_code(stock_code: Optional[str]) -> str:
    if not stock_code:
        return ""
    parts = stock_code.split(STOCK_CODE_SEPARATOR)
    return parts[1] if len(parts) > 1 else ""


class HistoryRecorder:
    """가격/재고 이력 기록기"""

    def __init__(self, repository: ProductRepository):
        self.repository = repository
        self.logger = get_logger("scraper.history")

    def record_price(self, product_id: int, price, original_price=None,
                     discount_rate: int = 0) -> Optional[PriceSample]:
        """직전 샘플과 가격이 같으면 기록하지 않고 None 반환"""
        price = normalize_price(price)
        last = self.repository.latest_price_sample(product_id)

        if last is not None and normalize_price(last.price) == price:
            return None

        sample = self.repository.append_price_sample(
            product_id,
            price,
            normalize_price(original_price) if original_price is not None else price,
            discount_rate or 0
        )
        self.logger.debug(f"Recorded price {price} for product {product_id}")
        return sample

    def record_stock(self, product_id: int, total_stock: int, in_stock: bool) -> Optional[StockSample]:
        """직전 샘플과 (총재고, 재고여부)가 같으면 기록하지 않음"""
        total_stock = int(total_stock or 0)
        in_stock = bool(in_stock)
        last = self.repository.latest_stock_sample(product_id)

        if last is not None and last.total_stock == total_stock and last.in_stock == in_stock:
            return None

        return self.repository.append_stock_sample(product_id, total_stock, in_stock)

    def record_variants(self, product_id: int, stock_code: Optional[str],
                        variants: Sequence[VariantGroup]) -> int:
        """사이즈별 재고를 현재 상태로 전체 교체"""
        color = color_from_stock_code(stock_code)
        rows: List[VariantRow] = [
            (color, sub.name, sub.stock_amount)
            for group in variants
            for sub in group.sub_variants
        ]
        return self.repository.replace_variant_stock(product_id, rows)
