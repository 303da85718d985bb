from datetime import timedelta

import pytest

from careerquest.accounts.models import ActivityLog, User
from careerquest.core.errors import Forbidden, InsufficientCredits, InvalidArgument, NotFound
from careerquest.core.time import utcnow
from careerquest.credits.ledger import CreditLedger, split_deduction
from careerquest.credits.models import CreditTransaction, CreditTransactionType


def _ledger_sum(db, user_id):
    return sum(t.amount for t in db.query(CreditTransaction).filter(CreditTransaction.user_id == user_id))


def test_split_deduction_drains_paid_first():
    assert split_deduction(free=5, paid=3, amount=4) == (1, 3)
    assert split_deduction(free=5, paid=3, amount=2) == (0, 2)
    assert split_deduction(free=5, paid=0, amount=5) == (5, 0)


def test_split_deduction_refuses_overdraft():
    with pytest.raises(InsufficientCredits) as exc:
        split_deduction(free=1, paid=1, amount=3)
    assert exc.value.required == 3
    assert exc.value.available == 2


def test_award_routes_free_and_paid_pools(db, make_user, ledger):
    user = make_user()

    free = ledger.award(user.id, CreditTransactionType.SIGNUP_BONUS, 3, "signup")
    paid = ledger.award(user.id, CreditTransactionType.PURCHASE, 10, "bought a pack")
    earned = ledger.award(user.id, CreditTransactionType.EARNED, 2, "quest")

    assert free.pool == "free"
    assert paid.pool == "paid"
    assert earned.pool == "free"
    assert earned.new_balance == 15

    db.refresh(user)
    assert user.credits == 5
    assert user.paid_credits == 10


def test_award_writes_transaction_with_balances(db, make_user, ledger):
    user = make_user(credits=2)

    result = ledger.award(user.id, CreditTransactionType.PROMOTION, 4, "spring promo", related_id=7, related_type="campaign")

    entry = db.query(CreditTransaction).filter(CreditTransaction.id == result.transaction.id).one()
    assert entry.amount == 4
    assert entry.balance_before == 2
    assert entry.balance_after == 6
    assert entry.related_id == "7"
    assert entry.related_type == "campaign"


def test_deduct_uses_paid_pool_before_free(db, make_user, ledger):
    user = make_user(credits=5, paid_credits=3)

    result = ledger.deduct(user.id, CreditTransactionType.SIMULATION_USAGE, 4, "simulation")

    assert (result.paid_used, result.free_used) == (3, 1)
    assert result.new_balance == 4
    assert result.transaction.amount == -4
    db.refresh(user)
    assert user.paid_credits == 0
    assert user.credits == 4


def test_insufficient_deduct_leaves_everything_untouched(db, make_user, ledger):
    user = make_user(credits=5, paid_credits=3)

    with pytest.raises(InsufficientCredits) as exc:
        ledger.deduct(user.id, CreditTransactionType.ANALYSIS_USAGE, 10, "too much")

    assert exc.value.required == 10
    assert exc.value.available == 8
    db.refresh(user)
    assert (user.credits, user.paid_credits) == (5, 3)
    assert db.query(CreditTransaction).filter(CreditTransaction.user_id == user.id).count() == 0


def test_balance_matches_ledger_sum(db, make_user, ledger):
    user = make_user()
    ledger.award(user.id, CreditTransactionType.SIGNUP_BONUS, 3, "signup")
    ledger.award(user.id, CreditTransactionType.PURCHASE, 5, "pack")
    ledger.deduct(user.id, CreditTransactionType.SIMULATION_USAGE, 2, "sim")
    ledger.deduct(user.id, CreditTransactionType.SURVEY_USAGE, 4, "survey")

    balance = ledger.balance(user.id)

    assert balance["total_credits"] == 2
    assert balance["total_credits"] == _ledger_sum(db, user.id)
    assert balance["free_credits"] + balance["paid_credits"] == balance["total_credits"]


def test_every_change_records_activity(db, make_user, ledger):
    user = make_user()
    ledger.award(user.id, CreditTransactionType.SIGNUP_BONUS, 3, "signup")
    ledger.deduct(user.id, CreditTransactionType.SURVEY_USAGE, 1, "survey")

    actions = [a.action for a in db.query(ActivityLog).filter(ActivityLog.user_id == user.id).order_by(ActivityLog.id)]
    assert actions == ["credit_awarded", "credit_deducted"]


def test_uncommitted_award_rolls_back_with_caller(db, make_user, ledger):
    user = make_user(credits=1)

    ledger.award(user.id, CreditTransactionType.EARNED, 5, "staged", commit=False)
    db.rollback()

    db.refresh(user)
    assert user.credits == 1
    assert db.query(CreditTransaction).count() == 0


@pytest.mark.parametrize("amount", [0, -3])
def test_non_positive_amounts_are_rejected(make_user, ledger, amount):
    user = make_user(credits=10)
    with pytest.raises(InvalidArgument):
        ledger.award(user.id, CreditTransactionType.EARNED, amount, "bad")
    with pytest.raises(InvalidArgument):
        ledger.deduct(user.id, CreditTransactionType.SIMULATION_USAGE, amount, "bad")


def test_unknown_and_inactive_users(make_user, ledger):
    with pytest.raises(NotFound):
        ledger.award(9999, CreditTransactionType.EARNED, 1, "nobody")

    inactive = make_user(credits=10, is_active=False)
    with pytest.raises(Forbidden):
        ledger.deduct(inactive.id, CreditTransactionType.SIMULATION_USAGE, 1, "blocked")


def test_history_is_newest_first_and_paginated(make_user, ledger):
    user = make_user()
    for i in range(5):
        ledger.award(user.id, CreditTransactionType.EARNED, i + 1, f"quest {i}")

    first = ledger.history(user.id, page=1, page_size=2)
    last = ledger.history(user.id, page=3, page_size=2)

    assert [t["amount"] for t in first["transactions"]] == [5, 4]
    assert first["pagination"]["total"] == 5
    assert first["pagination"]["total_pages"] == 3
    assert first["pagination"]["has_next"] is True
    assert first["pagination"]["has_prev"] is False
    assert [t["amount"] for t in last["transactions"]] == [1]
    assert last["pagination"]["has_next"] is False


def test_history_rejects_bad_paging(make_user, ledger):
    user = make_user()
    with pytest.raises(InvalidArgument):
        ledger.history(user.id, page=0)


def test_usage_stats_groups_by_type(make_user, ledger):
    user = make_user()
    ledger.award(user.id, CreditTransactionType.SIGNUP_BONUS, 3, "signup")
    ledger.award(user.id, CreditTransactionType.EARNED, 2, "quest")
    ledger.deduct(user.id, CreditTransactionType.SIMULATION_USAGE, 2, "sim")
    ledger.deduct(user.id, CreditTransactionType.SIMULATION_USAGE, 2, "sim again")

    now = utcnow()
    stats = ledger.usage_stats(user.id, now - timedelta(days=1), now + timedelta(minutes=1))

    assert stats["summary"] == {
        "total_earned": 5,
        "total_spent": 4,
        "net_change": 1,
        "transaction_count": 4,
    }
    assert stats["by_type"]["SIMULATION_USAGE"] == {"earned": 0, "spent": 4, "count": 2}
    assert stats["by_type"]["SIGNUP_BONUS"]["earned"] == 3


def test_usage_stats_window_excludes_older_rows(db, make_user, utc):
    user = make_user()
    old = CreditLedger(db, clock=lambda: utc(2026, 1, 1, 12))
    recent = CreditLedger(db, clock=lambda: utc(2026, 3, 1, 12))
    old.award(user.id, CreditTransactionType.EARNED, 7, "old quest")
    recent.award(user.id, CreditTransactionType.EARNED, 2, "new quest")

    stats = recent.usage_stats(user.id, utc(2026, 2, 1), utc(2026, 3, 2))

    assert stats["summary"]["total_earned"] == 2
    with pytest.raises(InvalidArgument):
        recent.usage_stats(user.id, utc(2026, 3, 2), utc(2026, 2, 1))


def test_expiring_lists_purchases_inside_window(db, make_user, utc):
    user = make_user()
    ledger = CreditLedger(db, clock=lambda: utc(2026, 5, 1))
    ledger.award(user.id, CreditTransactionType.PURCHASE, 10, "soon", expires_at=utc(2026, 5, 10))
    ledger.award(user.id, CreditTransactionType.PURCHASE, 20, "later", expires_at=utc(2026, 9, 1))
    ledger.award(user.id, CreditTransactionType.PROMOTION, 5, "promo", expires_at=utc(2026, 5, 5))

    result = ledger.expiring(user.id, within_days=30)

    assert result["total_expiring_credits"] == 10
    assert [t["reason"] for t in result["expiring_credits"]] == ["soon"]


def test_user_row_reflects_ledger_writes_without_refresh(db, make_user, ledger):
    user = make_user(credits=4)
    ledger.deduct(user.id, CreditTransactionType.SIMULATION_USAGE, 2, "sim")
    # The identity-mapped User is expired after the write, so the next read is fresh.
    assert db.query(User).filter(User.id == user.id).one().credits == 2
    assert user.total_credits == 2
