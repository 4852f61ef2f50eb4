from datetime import datetime
from typing import Optional

from ledger.config import Settings
from ledger.logging_config import get_logger
from ledger.models import RankedEntry, ReferralNotification, ReferralOutcome, ReferralResult
from ledger.service import LedgerService

logger = get_logger(__name__)


class ReferralEngine:
    """Referral attribution and leaderboard ranking over a ``LedgerService``."""

    def __init__(self, ledger: LedgerService, settings: Optional[Settings] = None):
        self.ledger = ledger
        self.settings = settings or ledger.settings

    def attribute_referral(self, new_user_id: str, referrer_id: Optional[str],
                           now: Optional[datetime] = None) -> ReferralResult:
        """Credit ``referrer_id`` for bringing in ``new_user_id``.

        Skipped attempts leave every account untouched and are reported
        through the outcome. Past the self-referral check the new user's
        account must exist.
        """
        if not referrer_id:
            return self._skip(ReferralOutcome.SKIPPED_NO_REFERRER, new_user_id, referrer_id)
        if referrer_id == new_user_id:
            return self._skip(ReferralOutcome.SKIPPED_SELF, new_user_id, referrer_id)

        with self.ledger.transaction():
            if not self.ledger.has_account(referrer_id):
                return self._skip(ReferralOutcome.SKIPPED_UNKNOWN_REFERRER, new_user_id, referrer_id)
            new_user = self.ledger.get_account(new_user_id)
            if new_user.referred_by is not None:
                return self._skip(ReferralOutcome.SKIPPED_ALREADY_REFERRED, new_user_id, referrer_id)

            self.ledger.set_referred_by(new_user_id, referrer_id)
            self.ledger.credit_raw(
                new_user_id, self.settings.referred_user_bonus, count_toward_today=True, now=now,
            )
            referral_count = self.ledger.increment_referrals(referrer_id)
            self.ledger.credit_raw(referrer_id, self.settings.referrer_bonus)

        logger.info(
            "referral_processed", new_user_id=new_user_id, referrer_id=referrer_id,
            referral_count=referral_count,
        )
        notification = ReferralNotification(
            recipient_id=referrer_id,
            new_user_id=new_user_id,
            new_user_name=new_user.display_name,
            bonus=self.settings.referrer_bonus,
        )
        return ReferralResult(outcome=ReferralOutcome.ATTRIBUTED, notification=notification)

    def top_ranked(self, limit: Optional[int] = None) -> list[RankedEntry]:
        """Accounts with enough referrals, best first.

        Ordered by coins, then referrals (both descending), then by join
        time (earliest first). Accounts tied on all three keep their
        registration order.
        """
        if limit is None:
            limit = self.settings.leaderboard_limit
        if limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}")

        accounts = self.ledger.list_accounts()
        eligible = [a for a in accounts if a.referral_count >= self.settings.leaderboard_min_referrals]
        eligible.sort(key=lambda a: (-a.coin_balance, -a.referral_count, a.joined_at))
        return [RankedEntry.from_account(a) for a in eligible[:limit]]

    def _skip(self, outcome: ReferralOutcome, new_user_id: str, referrer_id: Optional[str]) -> ReferralResult:
        logger.debug("referral_skipped", outcome=outcome.value, new_user_id=new_user_id, referrer_id=referrer_id)
        return ReferralResult(outcome=outcome)
