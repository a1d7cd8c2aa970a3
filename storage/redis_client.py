"""
Redis helpers for the catalog price tracker.

Only two things live in Redis: a run lock that keeps a single sweep active
across worker processes, and the last scrape report for other consumers.
"""

import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from redis import ConnectionPool, Redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError

from config.settings import settings

logger = logging.getLogger(__name__)


class RedisManager:
    """Redis 연결 관리자"""

    def __init__(self):
        self._pool: ConnectionPool = None
        self._client: Redis = None
        self._initialized = False

    def initialize(self) -> None:
        """Redis 연결 초기화"""
        if self._initialized:
            return

        try:
            self._pool = ConnectionPool.from_url(
                settings.redis.url,
                socket_timeout=settings.redis.socket_timeout,
                socket_connect_timeout=settings.redis.socket_connect_timeout,
                decode_responses=True
            )
            self._client = Redis(connection_pool=self._pool)

            # 연결 테스트
            self._client.ping()

            self._initialized = True
            logger.info("Redis connection initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis connection: {e}")
            raise

    @property
    def client(self) -> Redis:
        if not self._initialized:
            self.initialize()
        return self._client

    def close(self) -> None:
        """Redis 연결 종료"""
        if self._pool:
            self._pool.disconnect()
            logger.info("Redis connection pool disconnected")
        self._initialized = False


class ScrapeLock:
    """프로세스 간 단일 스윕 보장을 위한 잠금 (SET NX EX)"""

    # 토큰이 일치할 때만 삭제
    _RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    end
    return 0
    """

    def __init__(self, client: Redis, key: Optional[str] = None, ttl: Optional[int] = None):
        self.client = client
        self.key = key or settings.redis.lock_key
        self.ttl = ttl or settings.redis.lock_ttl
        self.token: Optional[str] = None

    def acquire(self) -> bool:
        """잠금 획득 시도, 이미 다른 워커가 보유 중이면 False"""
        token = uuid.uuid4().hex
        try:
            acquired = bool(self.client.set(self.key, token, nx=True, ex=self.ttl))
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Redis connection error while acquiring lock: {e}")
            raise

        if acquired:
            self.token = token
            logger.info(f"Acquired scrape lock {self.key}")
        else:
            logger.warning(f"Scrape lock {self.key} is held by another worker")
        return acquired

    def release(self) -> None:
        """보유 중인 잠금 해제"""
        if self.token is None:
            return
        try:
            self.client.eval(self._RELEASE_SCRIPT, 1, self.key, self.token)
            logger.info(f"Released scrape lock {self.key}")
        except RedisError as e:
            # TTL이 지나면 자동 해제됨
            logger.error(f"Failed to release scrape lock: {e}")
        finally:
            self.token = None

    @contextmanager
    def hold(self):
        """with 블록 동안 잠금 유지, 획득 여부를 반환"""
        acquired = self.acquire()
        try:
            yield acquired
        finally:
            if acquired:
                self.release()


class ReportCache:
    """마지막 스크랩 리포트 저장"""

    def __init__(self, client: Redis, key: Optional[str] = None):
        self.client = client
        self.key = key or settings.redis.report_key

    def save(self, report: Dict[str, Any]) -> bool:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **report
        }
        try:
            self.client.set(self.key, json.dumps(payload, ensure_ascii=False, default=str))
            return True
        except RedisError as e:
            logger.error(f"Failed to cache scrape report: {e}")
            return False

    def load(self) -> Optional[Dict[str, Any]]:
        try:
            data = self.client.get(self.key)
        except RedisError as e:
            logger.error(f"Failed to read cached scrape report: {e}")
            return None
        return json.loads(data) if data else None


# 전역 Redis 매니저 인스턴스
redis_manager = RedisManager()


def init_redis() -> None:
    """Redis 연결 초기화"""
    redis_manager.initialize()


def close_redis() -> None:
    """Redis 연결 종료"""
    redis_manager.close()
