from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


DEFAULT_DISPLAY_NAME = "Anonymous"


class Account(BaseModel):
    id: str
    display_name: str = DEFAULT_DISPLAY_NAME
    coin_balance: int = 0
    referral_count: int = 0
    joined_at: datetime
    last_coin_credit_at: datetime
    coins_credited_today: int = 0
    referred_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, validate_assignment=True)


class ReferralOutcome(str, Enum):
    ATTRIBUTED = "attributed"
    SKIPPED_NO_REFERRER = "skipped_no_referrer"
    SKIPPED_SELF = "skipped_self"
    SKIPPED_UNKNOWN_REFERRER = "skipped_unknown_referrer"
    SKIPPED_ALREADY_REFERRED = "skipped_already_referred"


class ReferralNotification(BaseModel):
    """Message intent for the referrer; delivery belongs to the messaging layer."""

    recipient_id: str
    new_user_id: str
    new_user_name: str
    bonus: int

    model_config = ConfigDict(frozen=True)

    @property
    def text(self) -> str:
        return f"You referred a new player ({self.new_user_name})! You earned {self.bonus} coins."


class ReferralResult(BaseModel):
    outcome: ReferralOutcome
    notification: Optional[ReferralNotification] = None

    @property
    def attributed(self) -> bool:
        return self.outcome == ReferralOutcome.ATTRIBUTED


class RankedEntry(BaseModel):
    user_id: str = Field(alias="userId")
    username: str
    coins: int
    referrals: int
    join_date: datetime = Field(alias="joinDate")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_account(cls, account: Account) -> "RankedEntry":
        return cls(
            user_id=account.id,
            username=account.display_name,
            coins=account.coin_balance,
            referrals=account.referral_count,
            join_date=account.joined_at,
        )


class RegisterRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    username: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, json_schema_extra={
        "example": {"userId": "123456789", "username": "space_runner"}
    })


class UpdateCoinsRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    coins: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, json_schema_extra={
        "example": {"userId": "123456789", "coins": 40}
    })


class RegisterResponse(BaseModel):
    success: bool = True


class UpdateCoinsResponse(BaseModel):
    success: bool = True
    coins_added: int = Field(alias="coinsAdded")

    model_config = ConfigDict(populate_by_name=True)
