"""
Change detection between a freshly fetched catalog item and the stored
product state. Pure functions only.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from crawlers.core.catalog import CatalogItem, discount_percent
from storage.repository import ProductSnapshot

# 부동소수점 노이즈 방지용 절대 허용 오차
PRICE_TOLERANCE = Decimal("0.01")


class StockTransition(str, Enum):
    """재고 상태 전이"""
    NONE = "none"
    BECAME_IN_STOCK = "became_in_stock"
    BECAME_OUT_OF_STOCK = "became_out_of_stock"


@dataclass(frozen=True)
class ChangeSet:
    """한 상품의 변경 판정 결과"""
    is_new: bool
    price_changed: bool
    old_price: Optional[Decimal]
    new_price: Decimal
    stock_transition: StockTransition
    discount_percent: int

    @property
    def price_delta(self) -> Optional[Decimal]:
        if self.old_price is None:
            return None
        return self.new_price - self.old_price

    @property
    def price_decreased(self) -> bool:
        return self.price_changed and self.new_price < self.old_price

    @property
    def price_increased(self) -> bool:
        return self.price_changed and self.new_price > self.old_price


def is_price_changed(old_price: Optional[Decimal], new_price: Decimal) -> bool:
    """허용 오차를 초과하는 가격 변동인지"""
    if old_price is None:
        return False
    return abs(Decimal(old_price) - Decimal(new_price)) > PRICE_TOLERANCE


def stock_transition(was_in_stock: Optional[bool], now_in_stock: bool) -> StockTransition:
    """이전/현재 재고 여부로 전이 방향 판정"""
    if was_in_stock is None or was_in_stock == now_in_stock:
        return StockTransition.NONE
    if now_in_stock:
        return StockTransition.BECAME_IN_STOCK
    return StockTransition.BECAME_OUT_OF_STOCK


def detect_changes(incoming: CatalogItem, previous: Optional[ProductSnapshot]) -> ChangeSet:
    """갱신 전 스냅샷 대비 변경 사항 계산"""
    discount = discount_percent(incoming.effective_list_price, incoming.sell_price)

    if previous is None:
        return ChangeSet(
            is_new=True,
            price_changed=False,
            old_price=None,
            new_price=incoming.sell_price,
            stock_transition=StockTransition.NONE,
            discount_percent=discount,
        )

    return ChangeSet(
        is_new=False,
        price_changed=is_price_changed(previous.current_price, incoming.sell_price),
        old_price=previous.current_price,
        new_price=incoming.sell_price,
        stock_transition=stock_transition(previous.in_stock, incoming.in_stock),
        discount_percent=discount,
    )
