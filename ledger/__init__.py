"""
Coin Ledger for a Referral Rewards Program

This module provides:
- Per-user accounts with get-or-create registration
- Coin credits with a daily earning cap
- Uncapped credits for referral bonuses
- A single lock guarding every account mutation
"""

from .models import (
    Account,
    RankedEntry,
    ReferralNotification,
    ReferralOutcome,
    ReferralResult,
)
from .service import (
    AccountNotFoundError,
    InMemoryStorage,
    InvalidAmountError,
    LedgerService,
    LedgerServiceError,
)

__all__ = [
    "Account",
    "RankedEntry",
    "ReferralNotification",
    "ReferralOutcome",
    "ReferralResult",
    "AccountNotFoundError",
    "InMemoryStorage",
    "InvalidAmountError",
    "LedgerService",
    "LedgerServiceError",
]
