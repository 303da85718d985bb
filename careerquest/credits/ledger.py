"""
Credit ledger.

Every balance change writes three things in one transaction: the pool update on
the user row, an append-only CreditTransaction, and an activity row.

Rules:
  - Awards of FREE_CREDIT_TYPES go to the free pool, everything else to paid.
  - Deductions drain the paid pool first, then free.
  - Neither pool ever goes negative.
  - Writers are serialized per user: the user row is locked (FOR UPDATE where
    the backend has it) and the pool write is a compare-and-set on the values
    that were read, retried a bounded number of times.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from careerquest.accounts.activity import record_activity
from careerquest.accounts.models import User
from careerquest.core.config import LEDGER_MAX_RETRIES
from careerquest.core.errors import (
    Conflict,
    Forbidden,
    InsufficientCredits,
    InvalidArgument,
    NotFound,
)
from careerquest.core.time import utcnow
from careerquest.credits.models import (
    FREE_CREDIT_TYPES,
    CreditTransaction,
    CreditTransactionType,
)

logger = logging.getLogger(__name__)


@dataclass
class AwardResult:
    transaction: CreditTransaction
    new_balance: int
    pool: str


@dataclass
class DeductResult:
    transaction: CreditTransaction
    new_balance: int
    free_used: int
    paid_used: int


def pool_for(type_: CreditTransactionType) -> str:
    return "free" if type_ in FREE_CREDIT_TYPES else "paid"


def split_deduction(free: int, paid: int, amount: int) -> Tuple[int, int]:
    """Return (free_used, paid_used) for a deduction of *amount*, paid first."""
    if amount > free + paid:
        raise InsufficientCredits(required=amount, available=free + paid)
    paid_used = min(paid, amount)
    return amount - paid_used, paid_used


class CreditLedger:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        max_retries: int = LEDGER_MAX_RETRIES,
    ):
        self.db = db
        self.clock = clock
        self.max_retries = max_retries

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def award(
        self,
        user_id: int,
        type_: CreditTransactionType,
        amount: int,
        reason: str,
        *,
        description: Optional[str] = None,
        related_id=None,
        related_type: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        commit: bool = True,
    ) -> AwardResult:
        """
        Add *amount* credits to the pool chosen by *type_*.

        With commit=False the writes join the caller's transaction and the
        caller commits; on failure the session is rolled back either way.
        """
        if amount is None or amount <= 0:
            raise InvalidArgument("award amount must be positive", amount=amount)
        pool = pool_for(type_)

        def plan(free: int, paid: int) -> Tuple[int, int]:
            if pool == "free":
                return free + amount, paid
            return free, paid + amount

        try:
            before, after = self._apply(user_id, plan)
            entry = self._append(
                user_id, type_, amount, reason, before, after,
                description=description, related_id=related_id,
                related_type=related_type, expires_at=expires_at,
            )
            record_activity(
                self.db, user_id, "credit_awarded",
                f"{amount} credits awarded: {reason}",
                {"type": type_.value, "amount": amount, "pool": pool, "balance_after": after},
            )
            self.db.flush()
            if commit:
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"[LEDGER] award user={user_id} type={type_.value} amount={amount} pool={pool} balance={before}->{after}")
        return AwardResult(transaction=entry, new_balance=after, pool=pool)

    def deduct(
        self,
        user_id: int,
        type_: CreditTransactionType,
        amount: int,
        reason: str,
        *,
        description: Optional[str] = None,
        related_id=None,
        related_type: Optional[str] = None,
        commit: bool = True,
    ) -> DeductResult:
        """Remove *amount* credits, paid pool first. Raises InsufficientCredits."""
        if amount is None or amount <= 0:
            raise InvalidArgument("deduct amount must be positive", amount=amount)
        used = {}

        def plan(free: int, paid: int) -> Tuple[int, int]:
            free_used, paid_used = split_deduction(free, paid, amount)
            used["free"], used["paid"] = free_used, paid_used
            return free - free_used, paid - paid_used

        try:
            before, after = self._apply(user_id, plan)
            entry = self._append(
                user_id, type_, -amount, reason, before, after,
                description=description, related_id=related_id,
                related_type=related_type,
            )
            record_activity(
                self.db, user_id, "credit_deducted",
                f"{amount} credits used: {reason}",
                {
                    "type": type_.value,
                    "amount": amount,
                    "free_used": used["free"],
                    "paid_used": used["paid"],
                    "balance_after": after,
                },
            )
            self.db.flush()
            if commit:
                self.db.commit()
        except InsufficientCredits as e:
            self.db.rollback()
            logger.info(f"[LEDGER] deduct refused user={user_id} type={type_.value} need={e.required} have={e.available}")
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"[LEDGER] deduct user={user_id} type={type_.value} amount={amount} "
            f"free_used={used['free']} paid_used={used['paid']} balance={before}->{after}"
        )
        return DeductResult(transaction=entry, new_balance=after, free_used=used["free"], paid_used=used["paid"])

    def _apply(self, user_id: int, plan: Callable[[int, int], Tuple[int, int]]) -> Tuple[int, int]:
        """Compare-and-set the user's pools. Returns (total_before, total_after)."""
        for attempt in range(1, self.max_retries + 1):
            row = (
                self.db.query(User.credits, User.paid_credits, User.is_active)
                .filter(User.id == user_id)
                .with_for_update()
                .first()
            )
            if row is None:
                raise NotFound(f"user {user_id} not found", user_id=user_id)
            if not row.is_active:
                raise Forbidden(f"user {user_id} is inactive", user_id=user_id)

            new_free, new_paid = plan(row.credits, row.paid_credits)

            updated = (
                self.db.query(User)
                .filter(
                    User.id == user_id,
                    User.credits == row.credits,
                    User.paid_credits == row.paid_credits,
                )
                .update(
                    {User.credits: new_free, User.paid_credits: new_paid},
                    synchronize_session=False,
                )
            )
            if updated == 1:
                cached = self.db.identity_map.get(Session.identity_key(User, user_id))
                if cached is not None:
                    self.db.expire(cached, ["credits", "paid_credits"])
                return row.credits + row.paid_credits, new_free + new_paid
            logger.info(f"[LEDGER] balance moved underneath user={user_id} attempt={attempt}")

        raise Conflict(f"could not update credits for user {user_id}", user_id=user_id)

    def _append(self, user_id, type_, amount, reason, before, after, **extra) -> CreditTransaction:
        related_id = extra.pop("related_id", None)
        entry = CreditTransaction(
            user_id=user_id,
            type=type_,
            amount=amount,
            reason=reason,
            balance_before=before,
            balance_after=after,
            related_id=str(related_id) if related_id is not None else None,
            created_at=self.clock(),
            **extra,
        )
        self.db.add(entry)
        return entry

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def balance(self, user_id: int) -> dict:
        row = (
            self.db.query(User.credits, User.paid_credits, User.subscription_type)
            .filter(User.id == user_id)
            .first()
        )
        if row is None:
            raise NotFound(f"user {user_id} not found", user_id=user_id)
        return {
            "free_credits": row.credits,
            "paid_credits": row.paid_credits,
            "total_credits": row.credits + row.paid_credits,
            "subscription_type": row.subscription_type,
        }

    def history(self, user_id: int, page: int = 1, page_size: int = 20) -> dict:
        if page < 1 or page_size < 1:
            raise InvalidArgument("page and page_size must be positive")
        page_size = min(page_size, 100)

        base = self.db.query(CreditTransaction).filter(CreditTransaction.user_id == user_id)
        total = base.count()
        rows = (
            base.order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        total_pages = math.ceil(total / page_size) if total else 0
        return {
            "transactions": [r.to_dict() for r in rows],
            "pagination": {
                "total": total,
                "total_pages": total_pages,
                "current_page": page,
                "limit": page_size,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }

    def usage_stats(self, user_id: int, start: datetime, end: datetime) -> dict:
        if start > end:
            raise InvalidArgument("start must not be after end")
        rows = (
            self.db.query(
                CreditTransaction.type,
                func.sum(CreditTransaction.amount),
                func.count(CreditTransaction.id),
            )
            .filter(
                CreditTransaction.user_id == user_id,
                CreditTransaction.created_at >= start,
                CreditTransaction.created_at <= end,
            )
            .group_by(CreditTransaction.type)
            .all()
        )

        by_type = {}
        earned = spent = count = 0
        for type_, total, n in rows:
            total = total or 0
            entry = {
                "earned": total if total > 0 else 0,
                "spent": -total if total < 0 else 0,
                "count": n,
            }
            by_type[type_.value] = entry
            earned += entry["earned"]
            spent += entry["spent"]
            count += n

        return {
            "period": {"start": start.isoformat(), "end": end.isoformat()},
            "summary": {
                "total_earned": earned,
                "total_spent": spent,
                "net_change": earned - spent,
                "transaction_count": count,
            },
            "by_type": by_type,
        }

    def expiring(self, user_id: int, within_days: int = 30) -> dict:
        if within_days < 0:
            raise InvalidArgument("within_days must not be negative")
        now = self.clock()
        horizon = now + timedelta(days=within_days)
        rows = (
            self.db.query(CreditTransaction)
            .filter(
                CreditTransaction.user_id == user_id,
                CreditTransaction.type == CreditTransactionType.PURCHASE,
                CreditTransaction.amount > 0,
                CreditTransaction.expires_at.isnot(None),
                CreditTransaction.expires_at >= now,
                CreditTransaction.expires_at <= horizon,
            )
            .order_by(CreditTransaction.expires_at.asc())
            .all()
        )
        return {
            "expiring_credits": [r.to_dict() for r in rows],
            "total_expiring_credits": sum(r.amount for r in rows),
            "days_until_expiration": within_days,
        }
