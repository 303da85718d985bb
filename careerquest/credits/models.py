"""
Credit ledger entries. Append-only: rows are inserted, never updated or deleted.
"""
import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from careerquest.db.base import Base


class CreditTransactionType(str, enum.Enum):
    SIGNUP_BONUS = "SIGNUP_BONUS"
    REFERRAL_BONUS = "REFERRAL_BONUS"
    SURVEY_COMPLETION = "SURVEY_COMPLETION"
    PROMOTION = "PROMOTION"
    EARNED = "EARNED"
    SIMULATION_BONUS = "SIMULATION_BONUS"
    PURCHASE = "PURCHASE"
    REFUND = "REFUND"
    ANALYSIS_USAGE = "ANALYSIS_USAGE"
    SURVEY_USAGE = "SURVEY_USAGE"
    SIMULATION_USAGE = "SIMULATION_USAGE"


# Awards of these types land in the free pool; every other award is paid.
FREE_CREDIT_TYPES = frozenset({
    CreditTransactionType.SIGNUP_BONUS,
    CreditTransactionType.REFERRAL_BONUS,
    CreditTransactionType.SURVEY_COMPLETION,
    CreditTransactionType.PROMOTION,
    CreditTransactionType.EARNED,
    CreditTransactionType.SIMULATION_BONUS,
})

USAGE_TYPES = frozenset({
    CreditTransactionType.ANALYSIS_USAGE,
    CreditTransactionType.SURVEY_USAGE,
    CreditTransactionType.SIMULATION_USAGE,
})


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    type = Column(Enum(CreditTransactionType, name="credit_transaction_type"), nullable=False)
    amount = Column(Integer, nullable=False)  # signed: positive award, negative deduction
    reason = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    related_id = Column(String(64), nullable=True)
    related_type = Column(String(64), nullable=True)

    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)

    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "amount": self.amount,
            "reason": self.reason,
            "description": self.description,
            "related_id": self.related_id,
            "related_type": self.related_type,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
