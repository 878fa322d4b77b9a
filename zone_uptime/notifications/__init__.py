"""Alert channels and fan-out."""

from .dispatch import dispatch_alerts
from .email import ResendEmailNotifier
from .telegram import TelegramNotifier

__all__ = ["ResendEmailNotifier", "TelegramNotifier", "dispatch_alerts"]
