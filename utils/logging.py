"""
Logging configuration and utilities for the catalog price tracker.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from config.settings import settings


class JsonFormatter(logging.Formatter):
    """JSON 형태로 로그를 포맷하는 커스텀 포맷터"""

    def format(self, record: logging.LogRecord) -> str:
        """로그 레코드를 JSON 형태로 변환"""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process_id": record.process,
        }

        # 예외 정보가 있는 경우 추가
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # 추가 필드가 있는 경우 포함
        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ScraperLogger:
    """스크래퍼 전용 로거 설정 및 관리"""

    def __init__(self, level: Optional[str] = None):
        self._loggers: Dict[str, logging.Logger] = {}
        self._setup_root_logger(level or settings.logging.level)

    def _setup_root_logger(self, level: str) -> None:
        """루트 로거 설정"""
        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, level.upper()))

        # 기존 핸들러 제거
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(self._build_formatter())
        root_logger.addHandler(console_handler)

        if settings.logging.file_path:
            self._add_file_handler(root_logger)

        # httpx는 요청마다 INFO 로그를 남김
        logging.getLogger("httpx").setLevel(logging.WARNING)

    def _build_formatter(self) -> logging.Formatter:
        if settings.logging.json_logging:
            return JsonFormatter()
        return logging.Formatter(settings.logging.format)

    def _add_file_handler(self, logger: logging.Logger) -> None:
        """파일 핸들러 추가"""
        log_file = Path(settings.logging.file_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=settings.logging.max_file_size,
            backupCount=settings.logging.backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(self._build_formatter())

        logger.addHandler(file_handler)

    def get_logger(self, name: str) -> logging.Logger:
        """특정 이름의 로거 반환"""
        if name not in self._loggers:
            self._loggers[name] = logging.getLogger(name)

        return self._loggers[name]

    def _emit(self, logger: logging.Logger, level: int, message: str,
              extra_fields: Dict[str, Any], exc_info=None) -> None:
        record = logger.makeRecord(
            logger.name, level, __file__, 0, message, (), exc_info
        )
        record.extra_fields = extra_fields
        logger.handle(record)

    def log_sweep_start(self, logger: logging.Logger, category: Dict[str, Any]) -> None:
        """카테고리 스윕 시작 로그"""
        self._emit(
            logger, logging.INFO,
            f"Started sweep for category {category.get('category_id')} "
            f"({category.get('name') or category.get('slug')})",
            {
                "event_type": "sweep_start",
                "category_id": category.get("category_id"),
                "slug": category.get("slug"),
                "run_id": category.get("run_id"),
            }
        )

    def log_sweep_complete(self, logger: logging.Logger, category_id: int,
                           counts: Dict[str, Any], duration_ms: int) -> None:
        """카테고리 스윕 완료 로그"""
        self._emit(
            logger, logging.INFO,
            f"Sweep finished for category {category_id}: "
            f"found={counts.get('found')}, new={counts.get('new')}, "
            f"updated={counts.get('updated')} in {duration_ms / 1000:.1f}s",
            {
                "event_type": "sweep_complete",
                "category_id": category_id,
                "duration_ms": duration_ms,
                **counts
            }
        )

    def log_sweep_error(self, logger: logging.Logger, category_id: int,
                        error: Exception) -> None:
        """카테고리 스윕 에러 로그"""
        self._emit(
            logger, logging.ERROR,
            f"Sweep failed for category {category_id} - {error}",
            {
                "event_type": "sweep_error",
                "category_id": category_id,
                "error_type": type(error).__name__,
                "error_message": str(error),
            },
            exc_info=(type(error), error, error.__traceback__)
        )

    def log_performance_metrics(self, logger: logging.Logger, metrics: Dict[str, Any]) -> None:
        """성능 메트릭 로그"""
        self._emit(
            logger, logging.INFO,
            "Performance metrics collected",
            {"event_type": "performance_metrics", **metrics}
        )


# 전역 로거 인스턴스
scraper_logger = ScraperLogger()


def get_logger(name: str) -> logging.Logger:
    """로거 획득 함수"""
    return scraper_logger.get_logger(name)


def setup_logging(level: Optional[str] = None) -> None:
    """로깅 시스템 초기화"""
    global scraper_logger
    scraper_logger = ScraperLogger(level)

    logger = get_logger(__name__)
    logger.info("Logging system initialized")


# 편의 함수들
def log_sweep_start(category: Dict[str, Any]) -> None:
    """스윕 시작 로그 (편의 함수)"""
    scraper_logger.log_sweep_start(get_logger("scraper.sweep"), category)


def log_sweep_complete(category_id: int, counts: Dict[str, Any], duration_ms: int) -> None:
    """스윕 완료 로그 (편의 함수)"""
    scraper_logger.log_sweep_complete(get_logger("scraper.sweep"), category_id, counts, duration_ms)


def log_sweep_error(category_id: int, error: Exception) -> None:
    """스윕 에러 로그 (편의 함수)"""
    scraper_logger.log_sweep_error(get_logger("scraper.sweep"), category_id, error)


def log_performance_metrics(metrics: Dict[str, Any]) -> None:
    """성능 메트릭 로그 (편의 함수)"""
    scraper_logger.log_performance_metrics(get_logger("scraper.performance"), metrics)
