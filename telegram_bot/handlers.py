from typing import Optional

from aiogram import Bot, Dispatcher, Router
from aiogram.filters import CommandObject, CommandStart
from aiogram.types import Message

from ledger.config import Settings
from ledger.logging_config import get_logger
from referrals.engine import ReferralEngine
from referrals.onboarding import Greeting, greet_user

from .notifier import TelegramNotifier

logger = get_logger(__name__)


def referral_link(settings: Settings, user_id: str) -> str:
    return f"https://t.me/{settings.bot_username}?start={user_id}"


def welcome_text(greeting: Greeting, settings: Settings) -> str:
    link = referral_link(settings, greeting.account.id)
    if greeting.joined_via_referral:
        intro = (
            "Welcome to Space Runner! 🚀\n"
            f"You joined via a referral and earned {settings.referred_user_bonus} coins!"
        )
    else:
        intro = "Welcome to Space Runner! 🚀\nPlay the game, earn coins, and win SM tokens!"
    return (
        f"{intro}\n\n"
        f"Game: {settings.game_url}\n"
        f"Referral Link: {link}\n\n"
        f"Refer friends to earn {settings.referrer_bonus} coins "
        f"(they get {settings.referred_user_bonus} coins)!"
    )


def display_name_for(message: Message) -> Optional[str]:
    user = message.from_user
    return user.username or user.first_name or None


async def handle_start(
    message: Message,
    command: CommandObject,
    engine: ReferralEngine,
    notifier: TelegramNotifier,
    settings: Settings,
) -> None:
    user_id = str(message.from_user.id)
    greeting = greet_user(engine, user_id, display_name_for(message), referral_payload=command.args)

    if greeting.notification is not None:
        await notifier.deliver(greeting.notification)

    await message.answer(welcome_text(greeting, settings))


def create_router() -> Router:
    router = Router(name="start")
    router.message.register(handle_start, CommandStart())
    return router


def build_dispatcher(engine: ReferralEngine, notifier: TelegramNotifier, settings: Settings) -> Dispatcher:
    dp = Dispatcher(engine=engine, notifier=notifier, settings=settings)
    dp.include_router(create_router())
    return dp


async def run_bot(engine: ReferralEngine, settings: Settings) -> None:
    """Poll Telegram until cancelled, sharing ``engine`` with the HTTP API."""
    bot = Bot(token=settings.telegram_bot_token)
    dp = build_dispatcher(engine, TelegramNotifier(bot), settings)
    logger.info("bot_started", bot_username=settings.bot_username)
    try:
        await dp.start_polling(bot, handle_signals=False)
    finally:
        await bot.session.close()
