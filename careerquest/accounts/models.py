from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.sql import func

from careerquest.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default="")

    # Two credit pools: free (bonuses, rewards) and paid (purchases).
    credits = Column(Integer, nullable=False, default=0)
    paid_credits = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    subscription_type = Column(String, nullable=False, default="free")  # free | basic | premium

    referred_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
        CheckConstraint("paid_credits >= 0", name="ck_users_paid_credits_non_negative"),
    )

    @property
    def total_credits(self) -> int:
        return (self.credits or 0) + (self.paid_credits or 0)


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(String(64), nullable=False, index=True)
    description = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CareerSurvey(Base):
    """
    Completion state of a user's onboarding survey.
    The answers live encrypted with the onboarding service.
    """
    __tablename__ = "career_surveys"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
