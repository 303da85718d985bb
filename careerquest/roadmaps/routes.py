from typing import List, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from careerquest.accounts.models import User
from careerquest.core.deps import get_current_user, get_quest_engine
from careerquest.db.session import get_db
from careerquest.quests.engine import QuestEngine
from careerquest.roadmaps.service import create_roadmap, set_milestone

router = APIRouter(prefix="/api/roadmaps", tags=["roadmaps"])


class PhaseBody(BaseModel):
    title: str
    milestones: List[Union[str, dict]] = Field(default_factory=list)


class RoadmapBody(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    phases: List[PhaseBody] = Field(min_length=1)


class MilestoneBody(BaseModel):
    is_completed: bool = True


@router.post("")
def create(
    body: RoadmapBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    roadmap = create_roadmap(db, user.id, body.title, [p.model_dump() for p in body.phases])
    return {"success": True, "data": {"roadmap_id": roadmap.id, "title": roadmap.title}}


@router.put("/milestones/{milestone_id}")
def update_milestone(
    milestone_id: int,
    body: MilestoneBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    quests: QuestEngine = Depends(get_quest_engine),
):
    data = set_milestone(db, user.id, milestone_id, body.is_completed, quests)
    return {"success": True, "data": data}
