import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Optional

from .config import Settings, get_settings
from .logging_config import get_logger
from .models import Account

logger = get_logger(__name__)


class LedgerServiceError(Exception):
    pass


class AccountNotFoundError(LedgerServiceError):
    pass


class InvalidAmountError(LedgerServiceError):
    pass


def local_now() -> datetime:
    return datetime.now().astimezone()


class InMemoryStorage:
    """Process-wide account store.

    All reads and writes go through ``lock``; it is reentrant so a caller
    holding it for a multi-account update can still use the single-account
    helpers.
    """

    def __init__(self):
        self.accounts: dict[str, Account] = {}
        self.lock = threading.RLock()


class LedgerService:
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = local_now,
    ):
        self.storage = storage or InMemoryStorage()
        self.settings = settings or get_settings()
        self.clock = clock

    @property
    def daily_cap(self) -> int:
        return self.settings.daily_coin_cap

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.storage.lock:
            yield

    def get_or_create(self, user_id: str, display_name: Optional[str] = None,
                      now: Optional[datetime] = None) -> Account:
        with self.storage.lock:
            account = self.storage.accounts.get(user_id)
            if account is None:
                now = now or self.clock()
                account = Account(
                    id=user_id,
                    display_name=display_name or self.settings.default_display_name,
                    joined_at=now,
                    last_coin_credit_at=now,
                )
                self.storage.accounts[user_id] = account
                logger.info("user_registered", user_id=user_id, display_name=account.display_name)
            return account.model_copy()

    def credit_with_daily_cap(self, user_id: str, requested_amount: int,
                              now: Optional[datetime] = None) -> int:
        _validate_amount(requested_amount)
        now = now or self.clock()
        with self.storage.lock:
            account = self._require(user_id)
            is_same_day = account.last_coin_credit_at.date() == now.date()

            if is_same_day:
                remaining = max(0, self.daily_cap - account.coins_credited_today)
                granted = min(requested_amount, remaining)
                account.coins_credited_today += granted
            else:
                # First credit of a new day resets the counter without capping it.
                granted = requested_amount
                account.coins_credited_today = granted

            if granted > 0:
                account.coin_balance += granted
                account.last_coin_credit_at = now
                logger.info(
                    "coins_updated", user_id=user_id, granted=granted,
                    requested=requested_amount, total=account.coin_balance,
                )
            else:
                logger.debug("coins_capped", user_id=user_id, requested=requested_amount)
            return granted

    def credit_raw(self, user_id: str, amount: int, count_toward_today: bool = False,
                   now: Optional[datetime] = None) -> None:
        """Credit ``amount`` without the daily cap check.

        With ``count_toward_today`` the amount also counts as credited on
        ``now``'s day, reducing the headroom left for capped credits that
        day. A counter left over from an earlier day is restarted first.
        """
        _validate_amount(amount)
        with self.storage.lock:
            account = self._require(user_id)
            account.coin_balance += amount
            if count_toward_today:
                now = now or self.clock()
                if account.last_coin_credit_at.date() == now.date():
                    account.coins_credited_today += amount
                else:
                    account.coins_credited_today = amount
                    account.last_coin_credit_at = now

    def set_referred_by(self, user_id: str, referrer_id: str) -> None:
        with self.storage.lock:
            account = self._require(user_id)
            if account.referred_by is not None:
                raise LedgerServiceError(f"Account {user_id} is already referred by {account.referred_by}")
            if referrer_id == user_id:
                raise LedgerServiceError(f"Account {user_id} cannot refer itself")
            self._require(referrer_id)
            account.referred_by = referrer_id

    def increment_referrals(self, user_id: str) -> int:
        with self.storage.lock:
            account = self._require(user_id)
            account.referral_count += 1
            return account.referral_count

    def get_account(self, user_id: str) -> Account:
        with self.storage.lock:
            return self._require(user_id).model_copy()

    def has_account(self, user_id: str) -> bool:
        with self.storage.lock:
            return user_id in self.storage.accounts

    def list_accounts(self) -> list[Account]:
        with self.storage.lock:
            return [a.model_copy() for a in self.storage.accounts.values()]

    def _require(self, user_id: str) -> Account:
        account = self.storage.accounts.get(user_id)
        if account is None:
            raise AccountNotFoundError(f"Account {user_id} not found")
        return account


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"Amount must be an integer, got {amount!r}")
    if amount < 0:
        raise InvalidAmountError(f"Amount must not be negative, got {amount}")
