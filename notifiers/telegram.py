"""
Telegram notifier.

Sends HTML formatted messages through the Bot API ``sendMessage`` endpoint.
Delivery is best effort: every failure is logged and reported as ``False``.
"""

from datetime import datetime
from decimal import Decimal
from html import escape
from typing import Any, Callable, Dict, Optional, Sequence

import httpx

from config.settings import SourceSettings, TelegramSettings, settings
from crawlers.core.exceptions import NotificationError
from crawlers.core.notification_policy import NotificationKind, ProductNotice
from crawlers.core.report import PriceChange, ScrapeReport
from utils.logging import get_logger


def _money(value) -> str:
    return f"{Decimal(value):.2f} TL"


def _shorten(text: str, length: int) -> str:
    return text if len(text) <= length else text[:length] + "..."


class TelegramNotifier:
    """텔레그램 봇 알림 전송기"""

    def __init__(
        self,
        config: Optional[TelegramSettings] = None,
        source: Optional[SourceSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config or settings.telegram
        self.base_url = (source or settings.source).base_url.rstrip("/")
        self.transport = transport
        self.logger = get_logger("notifier.telegram")

        self._formatters: Dict[NotificationKind, Callable[[Any], Optional[str]]] = {
            NotificationKind.NEW_PRODUCT: self.format_new_product,
            NotificationKind.PRICE_DROP: self.format_price_drop,
            NotificationKind.PRICE_INCREASE: self.format_price_increase,
            NotificationKind.BACK_IN_STOCK: self.format_back_in_stock,
            NotificationKind.OUT_OF_STOCK: self.format_out_of_stock,
            NotificationKind.SCRAPE_SUMMARY: self.format_summary,
            NotificationKind.TOP_PRICE_DROPS: self.format_top_drops,
        }

    def is_enabled(self) -> bool:
        return bool(self.config.bot_token and self.config.chat_id)

    @property
    def endpoint(self) -> str:
        return f"{self.config.api_url.rstrip('/')}/bot{self.config.bot_token}/sendMessage"

    async def send(self, message: str) -> bool:
        """단순 메시지 전송"""
        if not self.is_enabled():
            self.logger.info(f"[Telegram disabled] {message}")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout, transport=self.transport) as client:
                response = await client.post(self.endpoint, json={
                    "chat_id": self.config.chat_id,
                    "text": message,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                })
                response.raise_for_status()
                body = response.json()

            if not isinstance(body, dict):
                raise NotificationError(f"Unexpected Telegram response: {body!r}")
            if not body.get("ok", False):
                raise NotificationError(f"Telegram API rejected message: {body.get('description')}")
            return True

        except (httpx.HTTPError, ValueError, NotificationError) as e:
            self.logger.error(f"Telegram send failed: {e}")
            return False

    async def send_event(self, kind: NotificationKind, payload: Any) -> bool:
        """이벤트 종류에 맞게 포맷 후 전송 (예외를 던지지 않음)"""
        try:
            message = self._formatters[kind](payload)
        except Exception as e:
            self.logger.error(f"Failed to format {kind.value} notification: {e}")
            return False

        if not message:
            return False
        return await self.send(message)

    # 메시지 포맷

    def _link(self, url: Optional[str]) -> str:
        if not url:
            return ""
        return f'\n\n🔗 <a href="{escape(self.base_url + url)}">View product</a>'

    def format_price_drop(self, notice: ProductNotice) -> str:
        change = notice.old_price - notice.current_price
        return (
            "🔻 <b>PRICE DROP</b>\n\n"
            f"📦 {escape(notice.name)}\n"
            f"💰 <s>{_money(notice.old_price)}</s> → <b>{_money(notice.current_price)}</b>\n"
            f"📉 {_money(change)} (-{notice.change_percent:.1f}%)"
            f"{self._link(notice.url)}"
        )

    def format_price_increase(self, notice: ProductNotice) -> str:
        change = notice.current_price - notice.old_price
        percent = f" (+{notice.change_percent:.1f}%)" if notice.change_percent is not None else ""
        return (
            "🔺 <b>PRICE INCREASE</b>\n\n"
            f"📦 {escape(notice.name)}\n"
            f"💰 {_money(notice.old_price)} → <b>{_money(notice.current_price)}</b>\n"
            f"📈 +{_money(change)}{percent}"
            f"{self._link(notice.url)}"
        )

    def format_back_in_stock(self, notice: ProductNotice) -> str:
        return (
            "✅ <b>BACK IN STOCK</b>\n\n"
            f"📦 {escape(notice.name)}\n"
            f"💰 {_money(notice.current_price)}\n"
            f"📊 Stock: {notice.total_stock}"
            f"{self._link(notice.url)}"
        )

    def format_out_of_stock(self, notice: ProductNotice) -> str:
        return (
            "❌ <b>OUT OF STOCK</b>\n\n"
            f"📦 {escape(notice.name)}\n"
            f"💰 {_money(notice.current_price)}"
            f"{self._link(notice.url)}"
        )

    def format_new_product(self, notice: ProductNotice) -> str:
        return (
            "🆕 <b>NEW PRODUCT</b>\n\n"
            f"📦 {escape(notice.name)}\n"
            f"💰 {_money(notice.current_price)}\n"
            f"📊 Stock: {notice.total_stock}"
            f"{self._link(notice.url)}"
        )

    def format_summary(self, report: ScrapeReport) -> str:
        return (
            "📊 <b>SCRAPE COMPLETE</b>\n\n"
            f"🕐 {datetime.now().strftime('%Y-%m-%d %H:%M')}\n"
            f"📁 Categories: {report.categories_processed}\n"
            f"📦 Products: {report.products_found}\n"
            f"🆕 New: {report.products_new}\n"
            f"🔄 Updated: {report.products_updated}\n\n"
            f"💰 Price changes: {len(report.price_changes)}\n"
            f"   🔻 Down: {len(report.price_drops)}\n"
            f"   🔺 Up: {len(report.price_increases)}\n\n"
            f"❌ Errors: {len(report.errors)}"
        )

    def format_top_drops(self, drops: Sequence[PriceChange]) -> Optional[str]:
        if not drops:
            return None

        lines = ["🏆 <b>TOP PRICE DROPS</b>", ""]
        for drop in drops:
            percent = abs(drop.change_percent) if drop.change_percent is not None else Decimal("0")
            lines.append(f"• {escape(_shorten(drop.name, 35))}")
            lines.append(
                f"  <s>{_money(drop.old_price)}</s> → <b>{_money(drop.new_price)}</b> (-{percent:.0f}%)"
            )
            lines.append("")
        return "\n".join(lines).rstrip()
