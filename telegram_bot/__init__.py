"""Telegram front-end: ``/start`` onboarding with referral deep links."""

from .handlers import build_dispatcher, create_router, run_bot, welcome_text
from .notifier import TelegramNotifier

__all__ = [
    "build_dispatcher",
    "create_router",
    "run_bot",
    "welcome_text",
    "TelegramNotifier",
]
