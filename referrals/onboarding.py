"""Start/greet flow shared by every channel that can onboard a user."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ledger.models import Account, ReferralNotification, ReferralResult

from .engine import ReferralEngine


@dataclass
class Greeting:
    account: Account
    referral: Optional[ReferralResult] = None

    @property
    def joined_via_referral(self) -> bool:
        # Mirrors the welcome text rule: a referral link was used and the
        # account carries a referrer, whether set now or earlier.
        return self.referral is not None and self.account.referred_by is not None

    @property
    def notification(self) -> Optional[ReferralNotification]:
        return self.referral.notification if self.referral else None


def parse_referral_payload(payload: Optional[str]) -> Optional[str]:
    """Referrer id carried by a ``/start <payload>`` deep link, if any."""
    if payload is None:
        return None
    payload = payload.strip()
    return payload or None


def greet_user(engine: ReferralEngine, user_id: str, display_name: Optional[str] = None,
               referral_payload: Optional[str] = None, now: Optional[datetime] = None) -> Greeting:
    engine.ledger.get_or_create(user_id, display_name, now=now)

    referrer_id = parse_referral_payload(referral_payload)
    referral = None
    if referrer_id is not None:
        referral = engine.attribute_referral(user_id, referrer_id, now=now)

    return Greeting(account=engine.ledger.get_account(user_id), referral=referral)
