from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from careerquest.accounts.models import User
from careerquest.core.deps import get_current_user, get_quest_engine
from careerquest.quests.engine import QuestEngine
from careerquest.quests.models import QuestType

router = APIRouter(prefix="/api/quests", tags=["quests"])


class CompleteQuestBody(BaseModel):
    metadata: dict = Field(default_factory=dict)
    notes: Optional[str] = Field(default=None, max_length=500)


class ProgressBody(BaseModel):
    increment: int = Field(default=1, ge=1)
    metadata: dict = Field(default_factory=dict)


class TriggerBody(BaseModel):
    quest_type: QuestType
    increment: int = Field(default=1, ge=1)
    metadata: dict = Field(default_factory=dict)


@router.get("/daily")
def get_daily_quests(
    user: User = Depends(get_current_user),
    engine: QuestEngine = Depends(get_quest_engine),
):
    quests = engine.today_quests(user.id)
    if not quests:
        quests = engine.generate_daily(user.id)
    return {
        "success": True,
        "data": {
            "quests": quests,
            "total": len(quests),
            "completed": sum(1 for q in quests if q["is_completed"]),
        },
    }


@router.post("/generate")
def generate_daily_quests(
    user: User = Depends(get_current_user),
    engine: QuestEngine = Depends(get_quest_engine),
):
    quests = engine.generate_daily(user.id)
    return {"success": True, "message": "Daily quests ready", "data": {"quests": quests}}


@router.post("/{user_quest_id}/complete")
def complete_quest(
    user_quest_id: int,
    body: Optional[CompleteQuestBody] = None,
    user: User = Depends(get_current_user),
    engine: QuestEngine = Depends(get_quest_engine),
):
    body = body or CompleteQuestBody()
    metadata = {**body.metadata, "completed_by": "manual"}
    if body.notes:
        metadata["notes"] = body.notes
    result = engine.complete_quest(user.id, user_quest_id, metadata)
    return {"success": True, "message": "Quest completed", "data": result}


@router.put("/{user_quest_id}/progress")
def update_quest_progress(
    user_quest_id: int,
    body: Optional[ProgressBody] = None,
    user: User = Depends(get_current_user),
    engine: QuestEngine = Depends(get_quest_engine),
):
    body = body or ProgressBody()
    quest = engine.advance(user.id, user_quest_id, body.increment, body.metadata)
    return {"success": True, "data": quest}


@router.post("/trigger")
def trigger_quest_event(
    body: TriggerBody,
    user: User = Depends(get_current_user),
    engine: QuestEngine = Depends(get_quest_engine),
):
    engine.update_progress(user.id, body.quest_type, body.increment, body.metadata)
    return {"success": True, "data": {"quests": engine.today_quests(user.id)}}


@router.get("/stats")
def get_quest_stats(
    user: User = Depends(get_current_user),
    engine: QuestEngine = Depends(get_quest_engine),
):
    return {"success": True, "data": engine.stats(user.id)}


@router.get("/history")
def get_quest_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    type: Optional[QuestType] = None,
    completed: Optional[bool] = None,
    user: User = Depends(get_current_user),
    engine: QuestEngine = Depends(get_quest_engine),
):
    data = engine.history(user.id, limit=limit, offset=offset, quest_type=type, completed=completed)
    return {"success": True, "data": data}


@router.get("/leaderboard")
def get_quest_leaderboard(
    period: str = Query("weekly", pattern="^(daily|weekly|monthly)$"),
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
    engine: QuestEngine = Depends(get_quest_engine),
):
    return {"success": True, "data": engine.leaderboard(period=period, limit=limit)}


@router.get("/templates")
def get_quest_templates(
    type: Optional[QuestType] = None,
    active: bool = True,
    user: User = Depends(get_current_user),
    engine: QuestEngine = Depends(get_quest_engine),
):
    templates = engine.templates(quest_type=type, active=active)
    return {"success": True, "data": {"templates": templates, "total": len(templates)}}
