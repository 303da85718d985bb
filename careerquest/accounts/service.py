"""
Account events that move credits or feed daily quests:
registration bonuses, logins, and onboarding survey completion.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from careerquest.accounts.activity import record_activity
from careerquest.accounts.models import CareerSurvey, User
from careerquest.core.config import (
    REFERRAL_BONUS,
    SIGNUP_BONUS,
    SIGNUP_BONUS_REFERRED,
    SURVEY_COST,
)
from careerquest.core.errors import Conflict, Forbidden, InvalidArgument, NotFound
from careerquest.core.time import utcnow
from careerquest.credits.ledger import CreditLedger
from careerquest.credits.models import CreditTransactionType
from careerquest.quests.engine import QuestEngine
from careerquest.quests.models import QuestType

logger = logging.getLogger(__name__)


def register_user(db: Session, email: str, name: str, referrer_id: Optional[int] = None) -> User:
    """
    Create a user with their signup bonus, plus a referral bonus for the
    referrer, all in one transaction.
    """
    email = (email or "").strip().lower()
    if not email:
        raise InvalidArgument("email is required")
    if db.query(User.id).filter(User.email == email).first():
        raise Conflict("email already registered", email=email)

    referrer = None
    if referrer_id is not None:
        referrer = db.query(User).filter(User.id == referrer_id).first()
        if not referrer:
            raise NotFound(f"referrer {referrer_id} not found", referrer_id=referrer_id)

    ledger = CreditLedger(db)
    user = User(email=email, name=name, credits=0, paid_credits=0, referred_by_id=referrer_id)
    try:
        db.add(user)
        db.flush()
        bonus = SIGNUP_BONUS_REFERRED if referrer else SIGNUP_BONUS
        ledger.award(user.id, CreditTransactionType.SIGNUP_BONUS, bonus, "signup bonus", commit=False)
        if referrer:
            ledger.award(
                referrer.id, CreditTransactionType.REFERRAL_BONUS, REFERRAL_BONUS,
                "referral bonus", related_id=user.id, related_type="user", commit=False,
            )
        record_activity(db, user.id, "registered", "Account created", {"referrer_id": referrer_id})
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(user)
    logger.info(f"[ACCOUNT] registered user={user.id} referrer={referrer_id} credits={user.credits}")
    return user


def record_login(db: Session, user_id: int, quests: QuestEngine) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound(f"user {user_id} not found", user_id=user_id)
    if not user.is_active:
        raise Forbidden(f"user {user_id} is inactive", user_id=user_id)

    user.last_login_at = utcnow()
    record_activity(db, user_id, "login", "Logged in")
    db.commit()

    # The login is already committed; quest bookkeeping must not undo it.
    try:
        quests.generate_daily(user_id)
    except Exception as e:
        db.rollback()
        logger.error(f"[ACCOUNT] quest generation failed on login user={user_id} error={e!r}")
    quests.update_progress(user_id, QuestType.LOGIN, 1, {"login_at": user.last_login_at.isoformat()})
    logger.info(f"[ACCOUNT] login user={user_id}")
    return user


def complete_survey(db: Session, user_id: int, quests: QuestEngine) -> CareerSurvey:
    """Mark the onboarding survey done and charge for the analysis it triggers."""
    survey = CareerSurvey(user_id=user_id, is_completed=True, completed_at=utcnow())
    try:
        db.add(survey)
        db.flush()
        CreditLedger(db).deduct(
            user_id, CreditTransactionType.SURVEY_USAGE, SURVEY_COST,
            "career survey analysis", related_id=survey.id, related_type="career_survey",
            commit=False,
        )
        record_activity(db, user_id, "survey_completed", "Completed the career survey", {"survey_id": survey.id})
        db.commit()
    except Exception:
        db.rollback()
        raise

    quests.update_progress(user_id, QuestType.SURVEY, 1, {"survey_id": survey.id})
    logger.info(f"[ACCOUNT] survey completed user={user_id} survey={survey.id}")
    return survey
