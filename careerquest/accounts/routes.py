from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from careerquest.accounts.models import User
from careerquest.accounts.service import complete_survey, record_login
from careerquest.core.deps import get_current_user, get_quest_engine
from careerquest.db.session import get_db
from careerquest.quests.engine import QuestEngine

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@router.post("/login")
def login_event(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    quests: QuestEngine = Depends(get_quest_engine),
):
    """Called by the client once per sign-in; stamps the login and feeds the LOGIN quest."""
    user = record_login(db, user.id, quests)
    return {
        "success": True,
        "data": {
            "user_id": user.id,
            "last_login_at": user.last_login_at.isoformat(),
            "quests": quests.today_quests(user.id),
        },
    }


@router.post("/survey")
def survey_completed(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    quests: QuestEngine = Depends(get_quest_engine),
):
    survey = complete_survey(db, user.id, quests)
    return {
        "success": True,
        "message": "Survey completed",
        "data": {"survey_id": survey.id, "credits": quests.ledger.balance(user.id)},
    }
