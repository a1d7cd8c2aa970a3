"""
Typed catalog records.

Raw product dicts from the catalog API are parsed into immutable
``CatalogItem`` models here; nothing downstream touches the raw payload.
Unknown fields are ignored, missing optional fields fall back to neutral
defaults and records without an id or sell price are rejected.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from utils.logging import get_logger

logger = get_logger("scraper.catalog")

# 재고 코드 형식: <모델>-<색상>, 예: A41Y2087-SIYAH
STOCK_CODE_SEPARATOR = "-"


class SubVariant(BaseModel):
    """사이즈 단위 재고"""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str = ""
    stock_amount: int = Field(default=0, alias="stockAmount")

    @field_validator("name", mode="before")
    @classmethod
    def _name_default(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("stock_amount", mode="before")
    @classmethod
    def _stock_default(cls, value: Any) -> int:
        return 0 if value in (None, "") else value


class VariantGroup(BaseModel):
    """색상 단위 변형 그룹"""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: Optional[str] = None
    sub_variants: List[SubVariant] = Field(default_factory=list, alias="subVariantValues")

    @field_validator("sub_variants", mode="before")
    @classmethod
    def _subs_default(cls, value: Any) -> Any:
        return [] if value is None else value


class CatalogItem(BaseModel):
    """카탈로그 API 상품 레코드 (조회마다 새로 생성, 불변)"""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    external_id: int = Field(alias="productId")
    stock_code: str = Field(default="", alias="stockCode")
    barcode: Optional[str] = None
    name: str = ""
    brand: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageThumbPath")

    list_price: Optional[Decimal] = Field(default=None, alias="productPriceOriginal")
    sell_price: Decimal = Field(alias="productCartPrice")
    discount_rate: Decimal = Field(default=Decimal("0"), alias="discountRate")

    in_stock: bool = Field(default=False, alias="inStock")
    total_stock: int = Field(default=0, alias="totalStockAmount")
    variant_count: int = Field(default=0, alias="variantCount")
    variants: List[VariantGroup] = Field(default_factory=list, alias="variantTypeValues")

    @field_validator("stock_code", "name", mode="before")
    @classmethod
    def _text_default(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("barcode", mode="before")
    @classmethod
    def _barcode_text(cls, value: Any) -> Optional[str]:
        return None if value in (None, "") else str(value)

    @field_validator("list_price", mode="before")
    @classmethod
    def _list_price_default(cls, value: Any) -> Any:
        # 0 또는 빈 값은 정가 없음으로 취급
        return None if value in (None, "", 0) else value

    @field_validator("discount_rate", mode="before")
    @classmethod
    def _discount_default(cls, value: Any) -> Any:
        return Decimal("0") if value in (None, "") else value

    @field_validator("in_stock", mode="before")
    @classmethod
    def _in_stock_default(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("total_stock", "variant_count", mode="before")
    @classmethod
    def _count_default(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value

    @field_validator("variants", mode="before")
    @classmethod
    def _variants_default(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def effective_list_price(self) -> Decimal:
        """정가가 없으면 판매가를 정가로 본다"""
        return self.list_price if self.list_price is not None else self.sell_price


@dataclass(frozen=True)
class CategoryInput:
    """스윕 대상 카테고리"""
    category_id: int
    slug: str
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategoryInput":
        category_id = data.get("categoryId", data.get("category_id"))
        if category_id is None:
            raise ValueError(f"Category record has no id: {data}")
        category_id = int(category_id)
        return cls(
            category_id=category_id,
            slug=data.get("slug") or f"category-{category_id}",
            name=data.get("name"),
        )


def parse_catalog_item(raw: Dict[str, Any]) -> Optional[CatalogItem]:
    """원시 레코드를 CatalogItem으로 변환, 필수 필드가 없으면 None"""
    try:
        return CatalogItem.model_validate(raw)
    except ValidationError as e:
        record_id = raw.get("productId", "?") if isinstance(raw, dict) else "?"
        logger.warning(
            f"Rejected catalog record {record_id}: "
            f"{e.error_count()} validation error(s)"
        )
        logger.debug(str(e))
        return None


def parse_catalog_page(records: Iterable[Dict[str, Any]]) -> List[CatalogItem]:
    """페이지 단위 변환 (거부된 레코드는 제외, 순서 유지)"""
    items = []
    for raw in records:
        item = parse_catalog_item(raw)
        if item is not None:
            items.append(item)
    return items


def discount_percent(original_price: Optional[Decimal], current_price: Optional[Decimal]) -> int:
    """정가 대비 할인율 (%) - 반올림, 정가가 없거나 할인이 아니면 0"""
    if not original_price or current_price is None:
        return 0
    if original_price <= current_price:
        return 0
    ratio = (original_price - current_price) / original_price * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def product_fields(item: CatalogItem, default_brand: str) -> Dict[str, Any]:
    """CatalogItem -> products 테이블 컬럼 매핑"""
    original_price = item.effective_list_price
    return {
        "stock_code": item.stock_code or None,
        "barcode": item.barcode,
        "name": item.name,
        "brand": item.brand or default_brand,
        "url": item.url,
        "image_url": item.image_url,
        "current_price": item.sell_price,
        "original_price": original_price,
        "discount_rate": discount_percent(original_price, item.sell_price),
        "in_stock": item.in_stock,
        "total_stock": item.total_stock,
        "variant_count": item.variant_count,
    }
