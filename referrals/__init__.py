"""
Referral Engine Package

Provides referral attribution (write-once referrer, bonus payouts,
notification intents), the leaderboard ranking, and the start/greet
onboarding flow used by the bot.
"""

from .engine import ReferralEngine
from .onboarding import Greeting, greet_user, parse_referral_payload

__all__ = [
    "ReferralEngine",
    "Greeting",
    "greet_user",
    "parse_referral_payload",
]
