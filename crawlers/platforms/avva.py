"""
AVVA catalog client.

Talks to the storefront's ``GetProductList`` endpoint, which takes the
category filter and paging as JSON encoded query parameters.
"""

import json
from typing import Any, Dict, List, Tuple

from crawlers.core.source_client import CatalogSourceClient


class AvvaCatalogClient(CatalogSourceClient):
    """AVVA 상품 목록 API 클라이언트"""

    # 스토어 프론트엔드가 보내는 필터 기본값 (-1 = 필터 없음)
    FILTER_DEFAULTS: Dict[str, Any] = {
        "BrandIdList": [],
        "SupplierIdList": [],
        "TagIdList": [],
        "TagId": -1,
        "FilterObject": [],
        "MinStockAmount": -1,
        "IsShowcaseProduct": -1,
        "IsOpportunityProduct": -1,
        "FastShipping": -1,
        "IsNewProduct": -1,
        "IsDiscountedProduct": -1,
        "IsShippingFree": -1,
        "IsProductCombine": -1,
        "MinPrice": 0,
        "MaxPrice": 0,
        "Point": -1,
        "SearchKeyword": "",
        "StrProductIds": "",
        "IsSimilarProduct": False,
        "RelatedProductId": 0,
        "ProductKeyword": "",
        "PageContentId": 0,
        "StrProductIDNotEqual": "",
        "IsVariantList": -1,
        "IsVideoProduct": -1,
        "ShowBlokVideo": -1,
        "VideoSetting": {"ShowProductVideo": -1, "AutoPlayVideo": -1},
        "ShowList": 1,
        "VisibleImageCount": 0,
        "ShowCounterProduct": -1,
        "ImageSliderActive": True,
        "ProductListPageId": 0,
        "ShowGiftHintActive": False,
        "IsInStock": False,
        "IsPriceRequest": True,
        "IsProductListPage": True,
        "NonStockShowEnd": 0,
    }

    ORDER_BY = "KATEGORISIRA"

    @property
    def name(self) -> str:
        return "avva"

    @property
    def api_url(self) -> str:
        return self.config.base_url.rstrip("/") + self.config.api_path

    def build_page_request(self, category_id: int, page_number: int) -> Tuple[str, Dict[str, str]]:
        filter_json = {"CategoryIdList": [category_id], **self.FILTER_DEFAULTS}
        paging_json = {
            "PageItemCount": self.config.page_item_count,
            "PageNumber": page_number,
            "OrderBy": self.ORDER_BY,
            "OrderDirection": "ASC",
        }
        params = {
            "c": "trtry0000",
            "FilterJson": json.dumps(filter_json, separators=(",", ":")),
            "PagingJson": json.dumps(paging_json, separators=(",", ":")),
            "CreateFilter": "false",
            "TransitionOrder": "0",
            "PageType": "1",
            "PageId": str(category_id),
        }
        return self.api_url, params

    def extract_records(self, payload: Any) -> List[Dict[str, Any]]:
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected catalog response type: {type(payload).__name__}")
        records = payload.get("products") or []
        if not isinstance(records, list):
            raise ValueError(f"Unexpected products type: {type(records).__name__}")
        return records
