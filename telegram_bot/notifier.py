from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from ledger.logging_config import get_logger
from ledger.models import ReferralNotification

logger = get_logger(__name__)


class TelegramNotifier:
    """Delivers referral notifications as Telegram messages.

    A failed delivery is logged and reported as ``False``; the referral it
    announces has already been applied and stays applied.
    """

    def __init__(self, bot: Bot):
        self.bot = bot

    async def deliver(self, notification: ReferralNotification) -> bool:
        try:
            await self.bot.send_message(chat_id=notification.recipient_id, text=notification.text)
        except TelegramAPIError as e:
            logger.warning(
                "notification_failed", recipient_id=notification.recipient_id,
                new_user_id=notification.new_user_id, error=str(e),
            )
            return False
        return True
