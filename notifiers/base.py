"""
Notifier interface consumed by the reconciliation engine.
"""

from typing import Any, Protocol

from crawlers.core.notification_policy import NotificationKind
from utils.logging import get_logger


class Notifier(Protocol):
    """알림 채널 인터페이스 - send_event는 예외를 던지지 않는다"""

    def is_enabled(self) -> bool: ...

    async def send_event(self, kind: NotificationKind, payload: Any) -> bool: ...


class NullNotifier:
    """알림 채널이 설정되지 않았을 때 사용 (로그만 남김)"""

    def __init__(self):
        self.logger = get_logger("notifier.null")

    def is_enabled(self) -> bool:
        return False

    async def send_event(self, kind: NotificationKind, payload: Any) -> bool:
        self.logger.debug(f"Notifier disabled, dropping {kind.value} event")
        return False
