"""
Unit Tests for the Referral Engine

Tests cover:
1. Referral attribution and bonuses
2. Skipped attempts (self, unknown referrer, already referred)
3. Leaderboard filtering and ordering
4. Atomicity against concurrent leaderboard reads
"""

import threading
from datetime import datetime, timedelta

import pytest

from ledger.config import Settings
from ledger.models import ReferralOutcome
from ledger.service import AccountNotFoundError, LedgerService
from referrals.engine import ReferralEngine


T0 = datetime(2024, 5, 1, 8, 0)


def make_engine() -> ReferralEngine:
    ledger = LedgerService(settings=Settings(_env_file=None), clock=lambda: T0)
    return ReferralEngine(ledger)


def snapshot(engine: ReferralEngine) -> dict:
    return {a.id: a for a in engine.ledger.list_accounts()}


class TestAttributeReferral:
    """Tests for successful attribution."""

    def test_bonuses_and_counters(self):
        engine = make_engine()
        engine.ledger.get_or_create("r1", "referrer")
        engine.ledger.get_or_create("u2", "newbie")

        result = engine.attribute_referral("u2", "r1")

        assert result.outcome == ReferralOutcome.ATTRIBUTED
        assert result.attributed
        new_user = engine.ledger.get_account("u2")
        referrer = engine.ledger.get_account("r1")
        assert new_user.coin_balance == 50
        assert new_user.referred_by == "r1"
        assert new_user.coins_credited_today == 50
        assert referrer.coin_balance == 100
        assert referrer.referral_count == 1

    def test_emits_notification_for_referrer(self):
        engine = make_engine()
        engine.ledger.get_or_create("r1")
        engine.ledger.get_or_create("u2", "newbie")

        notification = engine.attribute_referral("u2", "r1").notification

        assert notification is not None
        assert notification.recipient_id == "r1"
        assert notification.new_user_id == "u2"
        assert notification.text == "You referred a new player (newbie)! You earned 100 coins."

    def test_bonus_reduces_new_user_daily_headroom(self):
        engine = make_engine()
        engine.ledger.get_or_create("r1")
        engine.ledger.get_or_create("u2")
        engine.attribute_referral("u2", "r1")

        assert engine.ledger.credit_with_daily_cap("u2", 100, now=T0) == 50

    def test_referrer_bonus_leaves_referrer_headroom(self):
        engine = make_engine()
        engine.ledger.get_or_create("r1")
        engine.ledger.get_or_create("u2")
        engine.attribute_referral("u2", "r1")

        assert engine.ledger.credit_with_daily_cap("r1", 100, now=T0) == 100

    def test_new_user_must_exist(self):
        engine = make_engine()
        engine.ledger.get_or_create("r1")

        with pytest.raises(AccountNotFoundError):
            engine.attribute_referral("ghost", "r1")

    def test_bonus_on_later_day_counts_toward_that_day(self):
        """Registered on one day, referred on the next: the bonus uses the new day's headroom."""
        engine = make_engine()
        engine.ledger.get_or_create("r1")
        engine.ledger.get_or_create("u2")
        engine.ledger.credit_with_daily_cap("u2", 100, now=T0)
        next_day = T0 + timedelta(days=1)

        engine.attribute_referral("u2", "r1", now=next_day)

        account = engine.ledger.get_account("u2")
        assert account.coins_credited_today == 50
        assert account.last_coin_credit_at == next_day
        assert engine.ledger.credit_with_daily_cap("u2", 100, now=next_day + timedelta(hours=2)) == 50
        assert engine.ledger.get_account("u2").coin_balance == 200


class TestSkippedReferrals:
    """Tests for attempts that must not change any account."""

    def test_reattribution_is_noop(self):
        engine = make_engine()
        for user_id in ("r1", "r2", "u2"):
            engine.ledger.get_or_create(user_id)
        engine.attribute_referral("u2", "r1")
        before = snapshot(engine)

        again = engine.attribute_referral("u2", "r1")
        other = engine.attribute_referral("u2", "r2")

        assert again.outcome == ReferralOutcome.SKIPPED_ALREADY_REFERRED
        assert other.outcome == ReferralOutcome.SKIPPED_ALREADY_REFERRED
        assert other.notification is None
        assert snapshot(engine) == before

    def test_self_referral_is_noop(self):
        engine = make_engine()
        engine.ledger.get_or_create("u1")
        before = snapshot(engine)

        result = engine.attribute_referral("u1", "u1")

        assert result.outcome == ReferralOutcome.SKIPPED_SELF
        assert snapshot(engine) == before

    @pytest.mark.parametrize("referrer_id", [None, ""])
    def test_missing_referrer_is_noop(self, referrer_id):
        engine = make_engine()
        engine.ledger.get_or_create("u1")

        result = engine.attribute_referral("u1", referrer_id)

        assert result.outcome == ReferralOutcome.SKIPPED_NO_REFERRER
        assert engine.ledger.get_account("u1").coin_balance == 0

    def test_self_referral_of_unregistered_user_is_skipped(self):
        engine = make_engine()

        result = engine.attribute_referral("ghost", "ghost")

        assert result.outcome == ReferralOutcome.SKIPPED_SELF
        assert engine.ledger.list_accounts() == []

    def test_missing_referrer_for_unregistered_user_is_skipped(self):
        result = make_engine().attribute_referral("ghost", None)
        assert result.outcome == ReferralOutcome.SKIPPED_NO_REFERRER

    def test_unknown_referrer_creates_nothing(self):
        engine = make_engine()
        engine.ledger.get_or_create("u1")

        result = engine.attribute_referral("u1", "ghost")

        assert result.outcome == ReferralOutcome.SKIPPED_UNKNOWN_REFERRER
        assert not engine.ledger.has_account("ghost")
        assert [a.id for a in engine.ledger.list_accounts()] == ["u1"]
        assert engine.ledger.get_account("u1").referred_by is None

    def test_self_check_precedes_already_referred(self):
        engine = make_engine()
        engine.ledger.get_or_create("r1")
        engine.ledger.get_or_create("u2")
        engine.attribute_referral("u2", "r1")

        assert engine.attribute_referral("u2", "u2").outcome == ReferralOutcome.SKIPPED_SELF
        assert engine.attribute_referral("u2", "ghost").outcome == ReferralOutcome.SKIPPED_UNKNOWN_REFERRER


class TestTopRanked:
    """Tests for the leaderboard."""

    def _seed(self, engine, user_id, coins, referrals, joined_at):
        engine.ledger.get_or_create(user_id, now=joined_at)
        engine.ledger.credit_raw(user_id, coins)
        for _ in range(referrals):
            engine.ledger.increment_referrals(user_id)

    def test_ordering_with_tie_breaks(self):
        engine = make_engine()
        t0 = T0
        t1, t2, t3 = (T0 + timedelta(hours=h) for h in (1, 2, 3))
        self._seed(engine, "A", 300, 6, t1)
        self._seed(engine, "B", 300, 6, t0)
        self._seed(engine, "C", 500, 5, t2)
        self._seed(engine, "D", 300, 7, t3)

        ranked = engine.top_ranked()

        assert [e.user_id for e in ranked] == ["C", "D", "B", "A"]

    def test_excludes_accounts_under_five_referrals(self):
        engine = make_engine()
        self._seed(engine, "rich", 10_000, 4, T0)
        self._seed(engine, "eligible", 10, 5, T0)

        ranked = engine.top_ranked()

        assert [e.user_id for e in ranked] == ["eligible"]
        assert all(e.referrals >= 5 for e in ranked)

    def test_truncates_to_limit(self):
        engine = make_engine()
        for i in range(120):
            self._seed(engine, f"u{i:03d}", i, 5, T0)

        assert len(engine.top_ranked()) == 100
        top = engine.top_ranked(3)
        assert [e.user_id for e in top] == ["u119", "u118", "u117"]
        assert engine.top_ranked(0) == []

    def test_full_ties_keep_registration_order(self):
        engine = make_engine()
        for user_id in ("x", "y", "z"):
            self._seed(engine, user_id, 100, 5, T0)

        assert [e.user_id for e in engine.top_ranked()] == ["x", "y", "z"]

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            make_engine().top_ranked(-1)

    def test_entry_fields(self):
        engine = make_engine()
        engine.ledger.get_or_create("A", "alice", now=T0)
        self._seed(engine, "A", 250, 5, T0)

        entry = engine.top_ranked()[0]

        assert entry.username == "alice"
        assert entry.coins == 250
        assert entry.referrals == 5
        assert entry.join_date == T0
        assert entry.model_dump(by_alias=True)["userId"] == "A"

    def test_read_does_not_mutate(self):
        engine = make_engine()
        self._seed(engine, "A", 250, 5, T0)
        before = snapshot(engine)

        engine.top_ranked()

        assert snapshot(engine) == before


class TestReferralAtomicity:
    def test_leaderboard_never_sees_half_applied_referral(self):
        """Every referred user visible to a reader is matched by a referral count."""
        engine = make_engine()
        engine.ledger.get_or_create("r1")
        new_users = [f"n{i}" for i in range(300)]
        for user_id in new_users:
            engine.ledger.get_or_create(user_id)

        mismatches = []
        done = threading.Event()

        def reader():
            while not done.is_set():
                with engine.ledger.transaction():
                    accounts = engine.ledger.list_accounts()
                referred = sum(1 for a in accounts if a.referred_by == "r1")
                count = next(a.referral_count for a in accounts if a.id == "r1")
                if referred != count:
                    mismatches.append((referred, count))

        thread = threading.Thread(target=reader)
        thread.start()
        for user_id in new_users:
            engine.attribute_referral(user_id, "r1")
        done.set()
        thread.join()

        assert mismatches == []
        assert engine.ledger.get_account("r1").referral_count == 300
