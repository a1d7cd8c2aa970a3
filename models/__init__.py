"""
Database models package for the catalog price tracker.
"""

from .base import Base, BaseModel, ScrapeStatus, utcnow
from .product import Category, Product
from .price_history import PriceHistory
from .stock_history import StockHistory, VariantStock
from .scrape_logs import ScrapeRun

__all__ = [
    "Base",
    "BaseModel",
    "ScrapeStatus",
    "utcnow",
    "Category",
    "Product",
    "PriceHistory",
    "StockHistory",
    "VariantStock",
    "ScrapeRun"
]
