"""
Main entry point for running catalog scrapes.

Loads the category list, runs the reconciliation engine once over it and
writes the resulting report. SIGINT/SIGTERM stop the sweep between items so
the current scrape run is finalized instead of being left ``running``.
"""

import argparse
import asyncio
import json
import signal
import sys
from contextlib import nullcontext
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.settings import settings
from crawlers.core.catalog import CategoryInput
from crawlers.core.notification_policy import NotificationKind, ProductNotice
from crawlers.core.reconciler import CancellationToken, ScrapeReconciler
from crawlers.core.report import ScrapeReport
from crawlers.platforms.avva import AvvaCatalogClient
from notifiers import TelegramNotifier
from storage.connection import close_db, db_manager, init_db
from storage.redis_client import ReportCache, ScrapeLock, close_redis, init_redis, redis_manager
from storage.repository import SqlAlchemyProductRepository
from utils.logging import get_logger, setup_logging

# --test 모드에서 사용하는 남성 티셔츠 카테고리
TEST_CATEGORY = CategoryInput(category_id=1154, slug="erkek-t-shirt", name="T-Shirt")
QUICK_CATEGORY_COUNT = 5


def load_categories_file(path: Path) -> List[CategoryInput]:
    """JSON 파일에서 카테고리 목록 로드"""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("categories", [])
    return [CategoryInput.from_dict(entry) for entry in data]


def select_categories(
    categories: List[CategoryInput],
    category_id: Optional[int] = None,
    quick: bool = False,
    test: bool = False
) -> List[CategoryInput]:
    """CLI 옵션에 따른 카테고리 필터링"""
    if category_id is not None:
        selected = [c for c in categories if c.category_id == category_id]
        if not selected:
            raise ValueError(f"Category not found: {category_id}")
        return selected

    if test:
        selected = [c for c in categories if c.category_id == TEST_CATEGORY.category_id][:1]
        return selected or [TEST_CATEGORY]

    if quick:
        return categories[:QUICK_CATEGORY_COUNT]

    return categories


def build_report_document(report: ScrapeReport) -> Dict[str, Any]:
    """리포트 파일 내용"""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stats": {
            "categories_processed": report.categories_processed,
            "products_found": report.products_found,
            "products_new": report.products_new,
            "products_updated": report.products_updated,
            "price_changes": len(report.price_changes),
            "stock_changes": len(report.stock_changes),
            "errors": len(report.errors),
        },
        "price_changes": [c.to_dict() for c in report.price_changes],
        "errors": [e.to_dict() for e in report.errors],
    }


def write_report(report: ScrapeReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(build_report_document(report), ensure_ascii=False, indent=2),
        encoding="utf-8"
    )


class ScrapeWorker:
    """한 번의 전체 스크랩 실행 관리"""

    def __init__(
        self,
        repository: Optional[SqlAlchemyProductRepository] = None,
        notifier: Optional[TelegramNotifier] = None,
        record_variants: Optional[bool] = None
    ):
        self.logger = get_logger("scrape_worker")
        self.repository = repository or SqlAlchemyProductRepository(db_manager)
        self.notifier = notifier or TelegramNotifier()
        self.cancel_token = CancellationToken()

        self.config = settings.scraper
        if record_variants is not None:
            self.config = self.config.model_copy(update={"record_variants": record_variants})

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """시그널 핸들러 - Graceful shutdown"""
        self.logger.info(f"Received signal {signum}, stopping after the current item...")
        self.cancel_token.cancel(f"Stopped by signal {signum}")

    def load_categories(self, categories_file: Path) -> List[CategoryInput]:
        """DB 카테고리 우선, 없으면 JSON 파일"""
        categories = self.repository.list_active_categories()
        if categories:
            return categories

        if not categories_file.exists():
            raise FileNotFoundError(
                f"No categories in database and {categories_file} does not exist"
            )
        return load_categories_file(categories_file)

    async def run(self, categories: List[CategoryInput]) -> ScrapeReport:
        """소스 클라이언트를 열고 재조정 엔진 실행"""
        async with AvvaCatalogClient() as source:
            reconciler = ScrapeReconciler(
                repository=self.repository,
                source=source,
                notifier=self.notifier,
                config=self.config,
                cancel_token=self.cancel_token
            )
            return await reconciler.scrape_all(categories)

    def log_database_stats(self) -> None:
        stats = self.repository.get_stats()
        self.logger.info(
            f"Database: products={stats.total_products}, categories={stats.total_categories}, "
            f"price_records={stats.total_price_records}, stock_records={stats.total_stock_records}"
        )


async def send_test_notifications(notifier: TelegramNotifier) -> bool:
    """텔레그램 설정 확인용 테스트 메시지"""
    logger = get_logger("telegram_test")

    if not notifier.is_enabled():
        logger.error("Telegram is not configured: set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID")
        return False

    sample = ProductNotice(
        product_id=0,
        name="Test product - White T-Shirt",
        url="/test-product-123",
        current_price=Decimal("599.99"),
        total_stock=15,
        old_price=Decimal("799.99"),
        change_percent=Decimal("25.0"),
    )
    results = [
        await notifier.send("🧪 <b>Test message</b>\n\nTracker connection OK"),
        await notifier.send_event(NotificationKind.PRICE_DROP, sample),
        await notifier.send_event(NotificationKind.BACK_IN_STOCK, sample),
    ]
    logger.info(f"Telegram test: {sum(results)}/{len(results)} messages delivered")
    return all(results)


def create_argument_parser():
    """CLI 인자 파서 생성"""
    parser = argparse.ArgumentParser(
        description='AVVA catalog price tracker',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # 모든 카테고리 스크랩
  %(prog)s --quick                  # 처음 5개 카테고리만
  %(prog)s --category 1154          # 특정 카테고리
  %(prog)s --telegram-test          # 텔레그램 설정 확인
        """
    )

    parser.add_argument('--category', type=int, help='Scrape a single category id')
    parser.add_argument('--quick', action='store_true', help='Scrape the first 5 categories only')
    parser.add_argument('--test', action='store_true', help='Scrape the T-shirt test category only')
    parser.add_argument(
        '--categories-file',
        type=Path,
        default=Path(settings.scraper.categories_file),
        help='Category list used when the database has none'
    )
    parser.add_argument(
        '--output',
        type=Path,
        default=Path(settings.scraper.report_file),
        help='Where to write the scrape report JSON'
    )
    parser.add_argument(
        '--record-variants',
        action='store_true',
        default=None,
        help='Record per-size variant stock'
    )
    parser.add_argument('--init-db', action='store_true', help='Create missing tables before scraping')
    parser.add_argument('--telegram-test', action='store_true', help='Send test notifications and exit')
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Log level (default: from settings)'
    )

    return parser


def run_scrape(args: argparse.Namespace) -> int:
    """스크랩 실행 - 종료 코드 반환"""
    logger = get_logger("scrape_worker")

    init_db(create_schema=args.init_db)
    if not db_manager.check_connection():
        logger.error("Database is not reachable, aborting scrape")
        return 1

    if settings.redis.enabled:
        init_redis()

    worker = ScrapeWorker(record_variants=args.record_variants)
    categories = select_categories(
        worker.load_categories(args.categories_file),
        category_id=args.category,
        quick=args.quick,
        test=args.test
    )
    logger.info(f"{len(categories)} categories selected")

    # Redis가 꺼져 있으면 잠금 없이 실행
    lock = ScrapeLock(redis_manager.client).hold() if settings.redis.enabled else nullcontext(True)

    with lock as acquired:
        if not acquired:
            logger.warning("Another scrape is already running, exiting")
            return 0

        worker.install_signal_handlers()
        report = asyncio.run(worker.run(categories))

    write_report(report, args.output)
    logger.info(f"Report written to {args.output}")

    if settings.redis.enabled:
        ReportCache(redis_manager.client).save(build_report_document(report))

    worker.log_database_stats()
    return 0


def main():
    """메인 함수"""
    parser = create_argument_parser()
    args = parser.parse_args()

    setup_logging(args.log_level)

    try:
        if args.telegram_test:
            ok = asyncio.run(send_test_notifications(TelegramNotifier()))
            sys.exit(0 if ok else 1)

        sys.exit(run_scrape(args))

    except KeyboardInterrupt:
        print("\nShutdown complete")
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        close_db()
        if settings.redis.enabled:
            close_redis()


if __name__ == "__main__":
    main()
