"""
Storage package for database and Redis connections.
"""

from .connection import (
    DatabaseManager,
    db_manager,
    init_db,
    close_db
)
from .redis_client import (
    redis_manager,
    ScrapeLock,
    ReportCache,
    init_redis,
    close_redis
)

__all__ = [
    "DatabaseManager",
    "db_manager",
    "init_db",
    "close_db",
    "redis_manager",
    "ScrapeLock",
    "ReportCache",
    "init_redis",
    "close_redis"
]
