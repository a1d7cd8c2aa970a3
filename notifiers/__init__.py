"""
Notification channels for the catalog price tracker.
"""

from .base import Notifier, NullNotifier
from .telegram import TelegramNotifier

__all__ = [
    "Notifier",
    "NullNotifier",
    "TelegramNotifier"
]
