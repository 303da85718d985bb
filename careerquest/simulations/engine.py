"""
Simulation session lifecycle.

    start ──> IN_PROGRESS ──pause──> PAUSED
                  │   ^                 │
                  │   └─────resume──────┘
                  └──complete──> COMPLETED

Starting costs SIMULATION_COST credits, charged in the same transaction that
creates the session. A user has at most one open (in-progress or paused)
session per scenario; starting again resumes it without charging.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from careerquest.accounts.activity import record_activity
from careerquest.accounts.models import User
from careerquest.core.config import (
    MAX_INTERACTION_SCORE,
    RECENT_INTERACTIONS_SHOWN,
    SIMULATION_COST,
)
from careerquest.core.errors import (
    Conflict,
    Forbidden,
    InsufficientCredits,
    InvalidArgument,
    InvalidState,
    NotFound,
)
from careerquest.core.time import as_utc, start_of_day, start_of_week, utcnow
from careerquest.credits.ledger import CreditLedger
from careerquest.credits.models import CreditTransactionType
from careerquest.quests.engine import QuestEngine, mask_name
from careerquest.quests.models import QuestType
from careerquest.simulations.assessment import assess
from careerquest.simulations.feedback import POSITIVE, Feedback, FeedbackGenerator
from careerquest.simulations.models import (
    ACTIVE,
    FinalSimulationResult,
    SimulationInteraction,
    SimulationSession,
    SimulationStatus,
)
from careerquest.simulations.scenario import Scenario, ScenarioRepository, get_scenarios, personalize

logger = logging.getLogger(__name__)

# Skill experience every interaction of a quest type grants, before feedback.
BASE_SKILL_DELTAS = {
    "dialogue": {"communication": 2, "teamwork": 1},
    "decision": {"problem_solving": 3, "business_understanding": 2},
    "coding": {"technical_skills": 4, "programming": 3},
    "analysis": {"data_science": 4, "analytical_thinking": 3},
    "collaboration": {"teamwork": 4, "communication": 2},
    "technical_decision": {"technical_skills": 3, "decision_making": 3},
}
DEFAULT_SKILL_DELTA = {"general": 1}

MODEL_MASTER_SCORE = 80
MAX_PLAY_GAP = timedelta(minutes=30)


def _mentions_data_quality(user_input: dict, interaction_type: str, feedback: Feedback, total: int) -> bool:
    text = " ".join(str(v) for v in user_input.values() if isinstance(v, str))
    return "data quality" in text.lower()


def _positive_collaboration(user_input: dict, interaction_type: str, feedback: Feedback, total: int) -> bool:
    return interaction_type == "collaboration" and feedback.kind == POSITIVE


def _high_score(user_input: dict, interaction_type: str, feedback: Feedback, total: int) -> bool:
    return total >= MODEL_MASTER_SCORE


BADGE_RULES = [
    ("data_detective", _mentions_data_quality),
    ("team_player", _positive_collaboration),
    ("model_master", _high_score),
]


def score_interaction(quest, user_input: dict, feedback: Feedback) -> int:
    """Quest base score, replaced by the feedback score, replaced by the chosen option's points."""
    score = quest.base_score
    if feedback.score:
        score = feedback.score
    choice = user_input.get("choice")
    for option in getattr(quest, "options", None) or []:
        if option.text == choice:
            score = option.points or score
            break
    return max(0, min(MAX_INTERACTION_SCORE, score))


def skill_gain(quest_type: str, feedback_skills: Dict[str, int]) -> Dict[str, int]:
    skills = dict(BASE_SKILL_DELTAS.get(quest_type, DEFAULT_SKILL_DELTA))
    for skill, delta in (feedback_skills or {}).items():
        skills[skill] = skills.get(skill, 0) + delta
    return skills


def new_badges(current: List[str], user_input: dict, interaction_type: str, feedback: Feedback, total: int) -> List[str]:
    return [
        badge for badge, rule in BADGE_RULES
        if badge not in current and rule(user_input, interaction_type, feedback, total)
    ]


def _quest_view(quest) -> dict:
    return quest.model_dump()


class SimulationEngine:
    def __init__(
        self,
        db: Session,
        ledger: Optional[CreditLedger] = None,
        scenarios: Optional[ScenarioRepository] = None,
        feedback: Optional[FeedbackGenerator] = None,
        quests: Optional[QuestEngine] = None,
        clock: Callable[[], datetime] = utcnow,
        cost: int = SIMULATION_COST,
    ):
        self.db = db
        self.ledger = ledger or CreditLedger(db, clock=clock)
        self.scenarios = scenarios or get_scenarios()
        self.feedback = feedback or FeedbackGenerator()
        self.quests = quests
        self.clock = clock
        self.cost = cost

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _open_session(self, user_id: int, simulation_id: str) -> Optional[SimulationSession]:
        return self.db.query(SimulationSession).filter(
            SimulationSession.user_id == user_id,
            SimulationSession.simulation_id == simulation_id,
            SimulationSession.active_key == ACTIVE,
        ).first()

    def _owned_session(self, session_id: int, user_id: int, status: Optional[SimulationStatus] = None):
        q = self.db.query(SimulationSession).filter(
            SimulationSession.id == session_id,
            SimulationSession.user_id == user_id,
        )
        if status is not None:
            q = q.filter(SimulationSession.status == status)
        return q.with_for_update().first()

    def _touch(self, session: SimulationSession, now: datetime) -> None:
        gap = now - as_utc(session.last_active_at)
        if gap > timedelta(0):
            session.total_play_time = (session.total_play_time or 0) + int(min(gap, MAX_PLAY_GAP).total_seconds())
        session.last_active_at = now

    @staticmethod
    def projection(session: SimulationSession) -> dict:
        return {
            "session_id": session.id,
            "simulation_id": session.simulation_id,
            "status": session.status.value,
            "current_chapter": session.current_chapter,
            "current_quest": session.current_quest,
            "progress": session.progress,
            "score": session.total_score,
            "skill_levels": session.skill_levels or {},
            "badges": session.badges or [],
            "game_variables": (session.current_state or {}).get("game_variables", {}),
            "finished": bool((session.current_state or {}).get("finished")),
        }

    def _current_quest(self, session: SimulationSession) -> Optional[dict]:
        if (session.current_state or {}).get("finished"):
            return None
        scenario = Scenario.model_validate(session.scenario_data)
        chapter = scenario.chapter(session.current_chapter)
        quest = chapter.quest(session.current_quest) if chapter else None
        return _quest_view(quest) if quest else None

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        user_id: int,
        simulation_id: str,
        difficulty: str = "intermediate",
        personalizations: Optional[dict] = None,
    ) -> dict:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound(f"user {user_id} not found", user_id=user_id)
        if not user.is_active:
            raise Forbidden(f"user {user_id} is inactive", user_id=user_id)

        scenario = self.scenarios.get(simulation_id)

        existing = self._open_session(user_id, simulation_id)
        if existing:
            logger.info(f"[SIM] resume existing user={user_id} simulation={simulation_id} session={existing.id}")
            return self._start_payload(existing, resumed=True)

        if user.total_credits < self.cost:
            raise InsufficientCredits(required=self.cost, available=user.total_credits)

        snapshot = personalize(scenario, difficulty, personalizations)
        first_chapter = scenario.chapters[0]
        now = self.clock()
        session = SimulationSession(
            user_id=user_id,
            simulation_id=simulation_id,
            status=SimulationStatus.IN_PROGRESS,
            active_key=ACTIVE,
            current_chapter=first_chapter.id,
            current_quest=first_chapter.quests[0].id,
            scenario_data=snapshot,
            current_state={
                "difficulty": difficulty,
                "personalizations": personalizations or {},
                "game_variables": {},
                "choices_history": [],
                "credits_used": self.cost,
            },
            total_score=0,
            skill_levels={},
            badges=[],
            progress=0.0,
            started_at=now,
            last_active_at=now,
            total_play_time=0,
        )
        try:
            self.db.add(session)
            self.db.flush()
            self.ledger.deduct(
                user_id,
                CreditTransactionType.SIMULATION_USAGE,
                self.cost,
                f"simulation started: {scenario.title}",
                related_id=session.id,
                related_type="simulation_session",
                commit=False,
            )
            record_activity(
                self.db, user_id, "simulation_started",
                f"Started simulation: {scenario.title}",
                {"session_id": session.id, "simulation_id": simulation_id, "difficulty": difficulty},
            )
            self.db.commit()
        except IntegrityError:
            # A concurrent start for the same scenario won; nothing was charged here.
            self.db.rollback()
            existing = self._open_session(user_id, simulation_id)
            if existing is None:
                raise Conflict("could not start simulation", simulation_id=simulation_id)
            logger.info(f"[SIM] start lost race user={user_id} simulation={simulation_id} session={existing.id}")
            return self._start_payload(existing, resumed=True)

        logger.info(f"[SIM] started user={user_id} simulation={simulation_id} session={session.id} difficulty={difficulty}")
        return self._start_payload(session, resumed=False)

    def _start_payload(self, session: SimulationSession, resumed: bool) -> dict:
        return {
            "session_id": session.id,
            "resumed": resumed,
            "current_state": self.projection(session),
            "current_quest": self._current_quest(session),
            "message": "Resumed your simulation." if resumed else "Simulation started.",
        }

    def interact(
        self,
        session_id: int,
        quest_id: str,
        interaction_type: str,
        user_input: dict,
        user_id: int,
        response_time_ms: Optional[int] = None,
    ) -> dict:
        session = self._owned_session(session_id, user_id, SimulationStatus.IN_PROGRESS)
        if not session:
            raise NotFound("active simulation session not found", session_id=session_id)

        state = dict(session.current_state or {})
        if state.get("finished"):
            raise InvalidState("every quest has been answered; complete the simulation", session_id=session_id)
        # Each quest is answered once, in order.
        if quest_id != session.current_quest:
            raise InvalidArgument(
                f"quest {quest_id!r} is not the current quest {session.current_quest!r}",
                quest_id=quest_id,
                current_quest=session.current_quest,
            )

        scenario = Scenario.model_validate(session.scenario_data)
        chapter = scenario.chapter(session.current_chapter)
        quest = chapter.quest(quest_id) if chapter else None
        if quest is None:
            raise InvalidArgument(
                f"quest {quest_id!r} is not part of chapter {session.current_chapter!r}",
                quest_id=quest_id,
            )

        user_input = user_input or {}
        feedback = self.feedback.generate(quest, user_input, interaction_type, {
            "difficulty": state.get("difficulty"),
            "score": session.total_score,
        })
        score = score_interaction(quest, user_input, feedback)
        skills = skill_gain(quest.type, feedback.skills_gained)
        total = session.total_score + score
        earned = new_badges(session.badges or [], user_input, interaction_type, feedback, total)

        now = self.clock()
        history = list(state.get("choices_history", [])) + [{
            "quest_id": quest_id,
            "interaction_type": interaction_type,
            "choice": user_input.get("choice"),
            "score": score,
            "at": now.isoformat(),
        }]
        state["choices_history"] = history
        state["last_update"] = now.isoformat()

        position = scenario.next_position(session.current_chapter, quest_id)
        if position is None:
            state["finished"] = True

        levels = dict(session.skill_levels or {})
        for skill, delta in skills.items():
            levels[skill] = levels.get(skill, 0) + delta

        session.current_state = state
        session.skill_levels = levels
        session.badges = list(session.badges or []) + earned
        session.total_score = total
        session.progress = min(1.0, len(history) / scenario.total_quests)
        self._touch(session, now)

        if position is not None:
            next_chapter, next_quest, chapter_changed = position
            session.current_chapter = next_chapter.id
            session.current_quest = next_quest.id
        else:
            chapter_changed = False

        interaction = SimulationInteraction(
            session_id=session.id,
            quest_id=quest_id,
            interaction_type=interaction_type,
            user_input=user_input,
            ai_response=feedback.to_dict(),
            score_gained=score,
            skills_gained=skills,
            response_time_ms=response_time_ms,
            created_at=now,
        )
        self.db.add(interaction)
        self.db.commit()

        logger.info(
            f"[SIM] interact session={session.id} quest={quest_id} type={interaction_type} "
            f"score={score} total={total} badges={earned} done={position is None}"
        )
        return {
            "interaction": {
                "id": interaction.id,
                "feedback": feedback.to_dict(),
                "score_gained": score,
                "skills_gained": skills,
                "badges_earned": earned,
            },
            "updated_state": self.projection(session),
            "next_quest": _quest_view(position[1]) if position else None,
            "chapter_changed": chapter_changed,
            "simulation_completed": position is None,
        }

    def pause(self, session_id: int, user_id: int) -> dict:
        session = self._owned_session(session_id, user_id, SimulationStatus.IN_PROGRESS)
        if not session:
            raise NotFound("active simulation session not found", session_id=session_id)
        self._touch(session, self.clock())
        session.status = SimulationStatus.PAUSED
        self.db.commit()
        logger.info(f"[SIM] paused session={session.id}")
        return {"session_id": session.id, "status": session.status.value}

    def resume(self, session_id: int, user_id: int) -> dict:
        session = self._owned_session(session_id, user_id, SimulationStatus.PAUSED)
        if not session:
            raise NotFound("paused simulation session not found", session_id=session_id)
        session.status = SimulationStatus.IN_PROGRESS
        session.last_active_at = self.clock()
        self.db.commit()
        logger.info(f"[SIM] resumed session={session.id}")
        return {
            "session_id": session.id,
            "status": session.status.value,
            "current_state": self.projection(session),
            "current_quest": self._current_quest(session),
        }

    def complete(self, session_id: int, user_id: int) -> dict:
        session = self._owned_session(session_id, user_id, SimulationStatus.IN_PROGRESS)
        if not session:
            raise NotFound("active simulation session not found", session_id=session_id)

        scenario = Scenario.model_validate(session.scenario_data)
        assessment = assess(session.total_score, scenario.total_quests, session.skill_levels or {})
        average_score, percentile = self._benchmark(session.simulation_id, session.total_score)
        now = self.clock()
        self._touch(session, now)

        flipped = (
            self.db.query(SimulationSession)
            .filter(
                SimulationSession.id == session.id,
                SimulationSession.status == SimulationStatus.IN_PROGRESS,
            )
            .update(
                {
                    SimulationSession.status: SimulationStatus.COMPLETED,
                    SimulationSession.active_key: None,
                    SimulationSession.completed_at: now,
                    SimulationSession.last_active_at: now,
                    SimulationSession.total_play_time: session.total_play_time,
                },
                synchronize_session=False,
            )
        )
        if flipped != 1:
            self.db.rollback()
            raise NotFound("active simulation session not found", session_id=session_id)
        self.db.expire(session)

        result = FinalSimulationResult(
            session_id=session.id,
            user_id=user_id,
            simulation_id=session.simulation_id,
            final_score=assessment["final_score"],
            max_score=assessment["max_score"],
            grade=assessment["grade"],
            percentile=percentile,
            average_score=average_score,
            category_scores=assessment["category_scores"],
            skill_assessment=assessment["skill_assessment"],
            strengths_weaknesses=assessment["strengths_weaknesses"],
            personalized_feedback=assessment["personalized_feedback"],
            next_steps=assessment["next_steps"],
            credits_used=(session.current_state or {}).get("credits_used", self.cost),
            bonus_credits=assessment["bonus_credits"],
            completed_at=now,
        )
        try:
            self.db.add(result)
            self.db.flush()
            if assessment["bonus_credits"] > 0:
                self.ledger.award(
                    user_id,
                    CreditTransactionType.SIMULATION_BONUS,
                    assessment["bonus_credits"],
                    f"simulation grade {assessment['grade']}: {scenario.title}",
                    related_id=session.id,
                    related_type="simulation_session",
                    commit=False,
                )
            record_activity(
                self.db, user_id, "simulation_completed",
                f"Completed simulation: {scenario.title}",
                {"session_id": session.id, "grade": assessment["grade"], "score": session.total_score},
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("simulation already completed", session_id=session_id)

        logger.info(
            f"[SIM] completed session={session.id} user={user_id} score={session.total_score}/{assessment['max_score']} "
            f"grade={assessment['grade']} bonus={assessment['bonus_credits']}"
        )

        if self.quests is not None:
            self.quests.update_progress(user_id, QuestType.SIMULATION, 1, {"session_id": session.id})
            self.quests.update_progress(user_id, QuestType.STREAK, 1, {"session_id": session.id})

        return {
            "result": result.to_dict(),
            "final_assessment": {
                **assessment,
                "percentile": percentile,
                "average_score": average_score,
            },
        }

    def _benchmark(self, simulation_id: str, score: int):
        """(average score, percentile) against earlier completed runs of the scenario."""
        finished = self.db.query(SimulationSession).filter(
            SimulationSession.simulation_id == simulation_id,
            SimulationSession.status == SimulationStatus.COMPLETED,
        )
        total = finished.count()
        if total == 0:
            return 0.0, 50.0
        below = finished.filter(SimulationSession.total_score < score).count()
        average = self.db.query(func.avg(SimulationSession.total_score)).filter(
            SimulationSession.simulation_id == simulation_id,
            SimulationSession.status == SimulationStatus.COMPLETED,
        ).scalar() or 0.0
        return round(float(average), 1), round(below / total * 100, 1)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def state(self, session_id: int, user_id: int) -> dict:
        session = self.db.query(SimulationSession).filter(
            SimulationSession.id == session_id,
            SimulationSession.user_id == user_id,
        ).first()
        if not session:
            raise NotFound("simulation session not found", session_id=session_id)

        recent = (
            self.db.query(SimulationInteraction)
            .filter(SimulationInteraction.session_id == session.id)
            .order_by(SimulationInteraction.created_at.desc(), SimulationInteraction.id.desc())
            .limit(RECENT_INTERACTIONS_SHOWN)
            .all()
        )
        return {
            "session": self.projection(session),
            "status": session.status.value,
            "current_quest": self._current_quest(session) if session.status != SimulationStatus.COMPLETED else None,
            "recent_interactions": [i.to_dict() for i in recent],
            "started_at": session.started_at.isoformat(),
            "last_active_at": session.last_active_at.isoformat(),
            "completed_at": session.completed_at.isoformat() if session.completed_at else None,
            "total_play_time": session.total_play_time,
        }

    def list_sessions(self, user_id: int, status: str = "all", page: int = 1, limit: int = 10) -> dict:
        q = self.db.query(SimulationSession).filter(SimulationSession.user_id == user_id)
        if status != "all":
            try:
                q = q.filter(SimulationSession.status == SimulationStatus(status.upper()))
            except ValueError:
                raise InvalidArgument(f"unknown status {status!r}")
        total = q.count()
        rows = (
            q.order_by(SimulationSession.last_active_at.desc(), SimulationSession.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        total_pages = math.ceil(total / limit) if total else 0
        return {
            "sessions": [
                {
                    **self.projection(s),
                    "title": (s.scenario_data or {}).get("title"),
                    "started_at": s.started_at.isoformat(),
                    "completed_at": s.completed_at.isoformat() if s.completed_at else None,
                    "total_play_time": s.total_play_time,
                }
                for s in rows
            ],
            "pagination": {
                "total": total,
                "total_pages": total_pages,
                "current_page": page,
                "limit": limit,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }

    def result(self, result_id: int, user_id: int) -> dict:
        row = self.db.query(FinalSimulationResult).filter(
            FinalSimulationResult.id == result_id,
            FinalSimulationResult.user_id == user_id,
        ).first()
        if not row:
            raise NotFound("simulation result not found", result_id=result_id)
        return row.to_dict()

    def leaderboard(self, simulation_id: str, period: str = "all", limit: int = 10) -> dict:
        now = self.clock()
        q = (
            self.db.query(FinalSimulationResult, User.name)
            .join(User, User.id == FinalSimulationResult.user_id)
            .filter(FinalSimulationResult.simulation_id == simulation_id)
        )
        if period == "weekly":
            q = q.filter(FinalSimulationResult.completed_at >= start_of_week(now))
        elif period == "monthly":
            q = q.filter(FinalSimulationResult.completed_at >= start_of_day(now.date().replace(day=1)))
        elif period != "all":
            raise InvalidArgument(f"unknown period {period!r}")

        best = {}
        for row, name in q.order_by(
            FinalSimulationResult.final_score.desc(),
            FinalSimulationResult.completed_at.asc(),
        ).all():
            if row.user_id not in best:
                best[row.user_id] = (row, name)

        entries = []
        for rank, (row, name) in enumerate(list(best.values())[:limit], start=1):
            entries.append({
                "rank": rank,
                "user_id": row.user_id,
                "user_name": mask_name(name),
                "score": row.final_score,
                "grade": row.grade,
                "completed_at": row.completed_at.isoformat(),
            })
        return {"simulation_id": simulation_id, "period": period, "leaderboard": entries}
