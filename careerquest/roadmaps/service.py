"""
Roadmap progress tracking.

Roadmap content comes from the generator service; here we only store the
phase/milestone skeleton and track completion.
"""
import logging
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from careerquest.accounts.activity import record_activity
from careerquest.core.errors import InvalidArgument, NotFound
from careerquest.core.time import utcnow
from careerquest.quests.engine import QuestEngine
from careerquest.quests.models import QuestType
from careerquest.roadmaps.models import RoadmapMilestone, RoadmapPhase, UserRoadmap

logger = logging.getLogger(__name__)


def create_roadmap(db: Session, user_id: int, title: str, phases: List[dict]) -> UserRoadmap:
    """
    *phases* is a list of {"title": str, "milestones": [str | {"title", "description"}]}.
    Any previously active roadmap of the user is deactivated.
    """
    if not phases:
        raise InvalidArgument("a roadmap needs at least one phase")

    db.query(UserRoadmap).filter(
        UserRoadmap.user_id == user_id,
        UserRoadmap.is_active.is_(True),
    ).update({UserRoadmap.is_active: False}, synchronize_session=False)

    roadmap = UserRoadmap(user_id=user_id, title=title, is_active=True, progress=0.0)
    db.add(roadmap)
    db.flush()

    for phase_order, phase_data in enumerate(phases):
        phase = RoadmapPhase(roadmap_id=roadmap.id, title=phase_data["title"], order=phase_order)
        db.add(phase)
        db.flush()
        if phase_order == 0:
            roadmap.current_phase_id = phase.id
        for milestone_order, item in enumerate(phase_data.get("milestones", [])):
            if isinstance(item, str):
                item = {"title": item}
            db.add(RoadmapMilestone(
                roadmap_id=roadmap.id,
                phase_id=phase.id,
                title=item["title"],
                description=item.get("description"),
                order=milestone_order,
            ))

    record_activity(db, user_id, "roadmap_created", f"Created roadmap: {title}", {"roadmap_id": roadmap.id})
    db.commit()
    db.refresh(roadmap)
    logger.info(f"[ROADMAP] created user={user_id} roadmap={roadmap.id} phases={len(phases)}")
    return roadmap


def _recompute(db: Session, roadmap: UserRoadmap) -> None:
    milestones = db.query(func.count(RoadmapMilestone.id)).filter(RoadmapMilestone.roadmap_id == roadmap.id)
    total = milestones.scalar() or 0
    done = milestones.filter(RoadmapMilestone.is_completed.is_(True)).scalar() or 0
    roadmap.progress = round(done / total, 4) if total else 0.0

    # The current phase is the first one that still has open milestones.
    open_phase = (
        db.query(RoadmapPhase)
        .join(RoadmapMilestone, RoadmapMilestone.phase_id == RoadmapPhase.id)
        .filter(RoadmapPhase.roadmap_id == roadmap.id, RoadmapMilestone.is_completed.is_(False))
        .order_by(RoadmapPhase.order.asc())
        .first()
    )
    if open_phase is not None:
        roadmap.current_phase_id = open_phase.id


def set_milestone(db: Session, user_id: int, milestone_id: int, is_completed: bool, quests: QuestEngine) -> dict:
    milestone = (
        db.query(RoadmapMilestone)
        .join(UserRoadmap, UserRoadmap.id == RoadmapMilestone.roadmap_id)
        .filter(
            RoadmapMilestone.id == milestone_id,
            UserRoadmap.user_id == user_id,
            UserRoadmap.is_active.is_(True),
        )
        .first()
    )
    if not milestone:
        raise NotFound("milestone not found on an active roadmap", milestone_id=milestone_id)

    roadmap = db.query(UserRoadmap).filter(UserRoadmap.id == milestone.roadmap_id).one()
    newly_completed = is_completed and not milestone.is_completed
    milestone.is_completed = is_completed
    milestone.completed_at = utcnow() if is_completed else None
    db.flush()
    _recompute(db, roadmap)
    if newly_completed:
        record_activity(db, user_id, "milestone_completed", f"Completed milestone: {milestone.title}", {"milestone_id": milestone.id})
    db.commit()

    if newly_completed:
        quests.update_progress(user_id, QuestType.MILESTONE, 1, {"milestone_id": milestone.id})
        quests.update_progress(user_id, QuestType.STREAK, 1, {"milestone_id": milestone.id})

    db.refresh(milestone)
    db.refresh(roadmap)
    logger.info(f"[ROADMAP] milestone user={user_id} milestone={milestone.id} completed={is_completed} progress={roadmap.progress}")
    return {
        "milestone": milestone.to_dict(),
        "roadmap": {
            "id": roadmap.id,
            "progress": roadmap.progress,
            "current_phase_id": roadmap.current_phase_id,
        },
    }
