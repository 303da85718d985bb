"""
Daily quest lifecycle.

  - generate_daily: one set of quests per user per UTC day, idempotent
  - update_progress: event hook (login, simulation, milestone, ...); best-effort
  - complete_quest: manual completion of one assignment
  - refresh_all: nightly expiry sweep + regeneration for recently active users

A quest pays out exactly once: completion is a conditional update guarded by
is_completed = false, and the reward joins the same transaction.
Every write path drops the user's cached "today" list.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from careerquest.accounts.activity import record_activity
from careerquest.accounts.models import CareerSurvey, User
from careerquest.core.cache import CacheStore
from careerquest.core.config import (
    ACTIVE_USER_WINDOW_DAYS,
    QUEST_CACHE_TTL,
    QUEST_REFRESH_BATCH_SIZE,
    QUEST_REFRESH_PAUSE_SECONDS,
)
from careerquest.core.errors import Expired, Forbidden, InvalidArgument, NotFound
from careerquest.core.time import as_utc, start_of_day, start_of_week, utcnow
from careerquest.credits.ledger import CreditLedger
from careerquest.credits.models import CreditTransactionType
from careerquest.quests.models import Quest, QuestStatus, QuestType, UserQuest
from careerquest.quests.selection import (
    DAILY_QUEST_POOL,
    QuestBlueprint,
    derive_user_tier,
    select_templates,
)
from careerquest.roadmaps.models import UserRoadmap
from careerquest.simulations.models import SimulationSession

logger = logging.getLogger(__name__)

RECENT_SIMULATION_WINDOW_DAYS = 30
GENERATE_ATTEMPTS = 2


@dataclass
class RefreshReport:
    expired: int = 0
    processed: int = 0
    failed: int = 0
    failed_user_ids: List[int] = field(default_factory=list)


def mask_name(name: Optional[str]) -> str:
    if not name:
        return "anonymous"
    return name[0] + "*" * (len(name) - 1)


class QuestEngine:
    def __init__(
        self,
        db: Session,
        cache: CacheStore,
        ledger: Optional[CreditLedger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.cache = cache
        self.ledger = ledger or CreditLedger(db, clock=clock)
        self.clock = clock

    # ------------------------------------------------------------------
    # cache helpers
    # ------------------------------------------------------------------

    @staticmethod
    def cache_key(user_id: int, day: date) -> str:
        return f"user_quests:{user_id}:{day.isoformat()}"

    def _today(self) -> date:
        return self.clock().date()

    def _invalidate(self, user_id: int) -> None:
        self.cache.delete(self.cache_key(user_id, self._today()))

    # ------------------------------------------------------------------
    # generation
    # ------------------------------------------------------------------

    def _assignments_for(self, user_id: int, day: date) -> List[UserQuest]:
        return (
            self.db.query(UserQuest)
            .join(Quest, Quest.id == UserQuest.quest_id)
            .filter(UserQuest.user_id == user_id, UserQuest.assigned_date == day)
            .order_by(Quest.priority.desc(), UserQuest.id.asc())
            .all()
        )

    def _get_or_create_template(self, blueprint: QuestBlueprint) -> Quest:
        quest = self.db.query(Quest).filter(
            Quest.name == blueprint.name,
            Quest.type == blueprint.type,
        ).first()
        if not quest:
            quest = Quest(
                name=blueprint.name,
                description=blueprint.description,
                type=blueprint.type,
                category=blueprint.category,
                difficulty=blueprint.difficulty,
                target_value=blueprint.target_value,
                requirements=blueprint.requirements,
                reward_credits=blueprint.reward_credits,
                reward_xp=blueprint.reward_xp,
                reward_badge=blueprint.reward_badge,
                priority=blueprint.priority,
                is_active=True,
            )
            self.db.add(quest)
            self.db.flush()
        return quest

    def _user_tier(self, user: User) -> tuple:
        since = self.clock() - timedelta(days=RECENT_SIMULATION_WINDOW_DAYS)
        recent_simulations = self.db.query(func.count(SimulationSession.id)).filter(
            SimulationSession.user_id == user.id,
            SimulationSession.started_at >= since,
        ).scalar() or 0
        has_active_roadmap = self.db.query(UserRoadmap.id).filter(
            UserRoadmap.user_id == user.id,
            UserRoadmap.is_active.is_(True),
        ).first() is not None
        has_completed_survey = self.db.query(CareerSurvey.id).filter(
            CareerSurvey.user_id == user.id,
            CareerSurvey.is_completed.is_(True),
        ).first() is not None
        tier = derive_user_tier(recent_simulations, has_active_roadmap, user.total_credits)
        return tier, has_completed_survey

    def generate_daily(self, user_id: int) -> List[dict]:
        """Create today's quests for the user, or return the ones that already exist."""
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound(f"user {user_id} not found", user_id=user_id)
        if not user.is_active:
            raise Forbidden(f"user {user_id} is inactive", user_id=user_id)

        today = self._today()
        assignments = self._assignments_for(user_id, today)
        attempts = 0
        while not assignments and attempts < GENERATE_ATTEMPTS:
            attempts += 1
            tier, has_completed_survey = self._user_tier(user)
            blueprints = select_templates(DAILY_QUEST_POOL, tier, has_completed_survey)
            expires_at = start_of_day(today) + timedelta(days=1)
            try:
                for blueprint in blueprints:
                    quest = self._get_or_create_template(blueprint)
                    self.db.add(UserQuest(
                        user_id=user_id,
                        quest_id=quest.id,
                        assigned_date=today,
                        expires_at=expires_at,
                        progress=0,
                        is_completed=False,
                        status=QuestStatus.IN_PROGRESS,
                        details={"tier": tier},
                    ))
                self.db.commit()
                logger.info(f"[QUEST] generated user={user_id} date={today} tier={tier} count={len(blueprints)}")
            except IntegrityError:
                # Another request generated the same day first; its rows win.
                self.db.rollback()
                logger.info(f"[QUEST] generate lost race user={user_id} date={today} attempt={attempts}")
                user = self.db.query(User).filter(User.id == user_id).one()
            assignments = self._assignments_for(user_id, today)

        result = [a.to_dict() for a in assignments]
        if result:
            self.cache.setex(self.cache_key(user_id, today), QUEST_CACHE_TTL, result)
        return result

    # ------------------------------------------------------------------
    # progress + completion
    # ------------------------------------------------------------------

    def _complete(self, assignment: UserQuest, metadata: dict, now: datetime) -> bool:
        """
        Flip one assignment to COMPLETED and stage its reward. Returns False
        when someone else completed it first. The caller commits.
        """
        quest = assignment.quest
        flipped = (
            self.db.query(UserQuest)
            .filter(UserQuest.id == assignment.id, UserQuest.is_completed.is_(False))
            .update(
                {
                    UserQuest.progress: quest.target_value,
                    UserQuest.is_completed: True,
                    UserQuest.status: QuestStatus.COMPLETED,
                    UserQuest.completed_at: now,
                    UserQuest.details: metadata,
                },
                synchronize_session=False,
            )
        )
        if flipped != 1:
            return False
        self.db.expire(assignment)

        if quest.reward_credits > 0:
            self.ledger.award(
                assignment.user_id,
                CreditTransactionType.EARNED,
                quest.reward_credits,
                f"quest completed: {quest.name}",
                related_id=assignment.id,
                related_type="user_quest",
                commit=False,
            )
        record_activity(
            self.db, assignment.user_id, "quest_completed",
            f"Completed quest: {quest.name}",
            {
                "user_quest_id": assignment.id,
                "quest_type": quest.type.value,
                "reward_credits": quest.reward_credits,
                "reward_xp": quest.reward_xp,
            },
        )
        logger.info(f"[QUEST] completed user={assignment.user_id} user_quest={assignment.id} type={quest.type.value} credits={quest.reward_credits}")
        return True

    def update_progress(
        self,
        user_id: int,
        quest_type: QuestType,
        increment: int = 1,
        metadata: Optional[dict] = None,
    ) -> None:
        """
        Advance today's open quests of *quest_type*. Never raises: callers fire
        this after their own work and must not fail because of it.
        """
        try:
            now = self.clock()
            assignments = (
                self.db.query(UserQuest)
                .join(Quest, Quest.id == UserQuest.quest_id)
                .filter(
                    UserQuest.user_id == user_id,
                    UserQuest.assigned_date == now.date(),
                    UserQuest.status == QuestStatus.IN_PROGRESS,
                    UserQuest.is_completed.is_(False),
                    UserQuest.expires_at > now,
                    Quest.type == quest_type,
                )
                .all()
            )
            for assignment in assignments:
                target = assignment.quest.target_value
                progress = min(assignment.progress + increment, target)
                merged = {**(assignment.details or {}), **(metadata or {})}
                if progress >= target:
                    self._complete(assignment, merged, now)
                else:
                    assignment.progress = progress
                    assignment.details = merged
                    logger.info(f"[QUEST] progress user={user_id} user_quest={assignment.id} {progress}/{target}")
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"[QUEST] progress update failed user={user_id} type={quest_type} error={e!r}")
        finally:
            self._invalidate(user_id)

    def complete_quest(self, user_id: int, user_quest_id: int, metadata: Optional[dict] = None) -> dict:
        now = self.clock()
        try:
            assignment = self.db.query(UserQuest).filter(
                UserQuest.id == user_quest_id,
                UserQuest.user_id == user_id,
                UserQuest.status == QuestStatus.IN_PROGRESS,
                UserQuest.is_completed.is_(False),
            ).first()
            if not assignment:
                raise NotFound("quest not found or already finished", user_quest_id=user_quest_id)

            if as_utc(assignment.expires_at) <= now:
                assignment.status = QuestStatus.EXPIRED
                self.db.commit()
                raise Expired("quest has expired", user_quest_id=user_quest_id)

            merged = {**(assignment.details or {}), **(metadata or {})}
            if not self._complete(assignment, merged, now):
                raise NotFound("quest not found or already finished", user_quest_id=user_quest_id)
            self.db.commit()
        finally:
            self._invalidate(user_id)

        self.db.refresh(assignment)
        quest = assignment.quest
        return {
            "quest": assignment.to_dict(),
            "rewards": {
                "credits": quest.reward_credits,
                "xp": quest.reward_xp,
                "badge": quest.reward_badge,
            },
        }

    def advance(self, user_id: int, user_quest_id: int, increment: int = 1, metadata: Optional[dict] = None) -> dict:
        """Progress the quest type of one of today's assignments and return it."""
        if increment < 1:
            raise InvalidArgument("increment must be at least 1")
        assignment = self.db.query(UserQuest).filter(
            UserQuest.id == user_quest_id,
            UserQuest.user_id == user_id,
            UserQuest.assigned_date == self._today(),
        ).first()
        if not assignment:
            raise NotFound("quest not found", user_quest_id=user_quest_id)
        self.update_progress(user_id, assignment.quest.type, increment, metadata)
        self.db.refresh(assignment)
        return assignment.to_dict()

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def today_quests(self, user_id: int) -> List[dict]:
        today = self._today()
        key = self.cache_key(user_id, today)
        cached = self.cache.get(key)
        if cached:
            return cached
        result = [a.to_dict() for a in self._assignments_for(user_id, today)]
        if result:
            self.cache.setex(key, QUEST_CACHE_TTL, result)
        return result

    def stats(self, user_id: int) -> dict:
        now = self.clock()
        week_start = start_of_week(now)

        today_rows = self._assignments_for(user_id, now.date())
        today_completed = sum(1 for a in today_rows if a.is_completed)

        def _completed_totals(since: Optional[datetime]):
            q = (
                self.db.query(
                    func.count(UserQuest.id),
                    func.coalesce(func.sum(Quest.reward_xp), 0),
                    func.coalesce(func.sum(Quest.reward_credits), 0),
                )
                .join(Quest, Quest.id == UserQuest.quest_id)
                .filter(UserQuest.user_id == user_id, UserQuest.is_completed.is_(True))
            )
            if since is not None:
                q = q.filter(UserQuest.completed_at >= since)
            return q.one()

        week_count, week_xp, week_credits = _completed_totals(week_start)
        all_count, all_xp, all_credits = _completed_totals(None)

        return {
            "today": {
                "total": len(today_rows),
                "completed": today_completed,
                "completion_rate": round(today_completed / len(today_rows) * 100, 1) if today_rows else 0.0,
            },
            "this_week": {
                "completed": week_count,
                "xp_earned": int(week_xp),
                "credits_earned": int(week_credits),
            },
            "all_time": {
                "completed": all_count,
                "total_xp": int(all_xp),
                "total_credits": int(all_credits),
            },
        }

    def history(
        self,
        user_id: int,
        limit: int = 20,
        offset: int = 0,
        quest_type: Optional[QuestType] = None,
        completed: Optional[bool] = None,
    ) -> dict:
        q = (
            self.db.query(UserQuest)
            .join(Quest, Quest.id == UserQuest.quest_id)
            .filter(UserQuest.user_id == user_id)
        )
        if quest_type is not None:
            q = q.filter(Quest.type == quest_type)
        if completed is not None:
            q = q.filter(UserQuest.is_completed.is_(completed))
        total = q.count()
        rows = q.order_by(UserQuest.assigned_date.desc(), UserQuest.id.desc()).offset(offset).limit(limit).all()
        return {
            "quests": [r.to_dict() for r in rows],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": offset + limit < total,
            },
        }

    def leaderboard(self, period: str = "weekly", limit: int = 10) -> dict:
        now = self.clock()
        if period == "daily":
            since = start_of_day(now.date())
        elif period == "weekly":
            since = start_of_week(now)
        elif period == "monthly":
            since = start_of_day(now.date().replace(day=1))
        else:
            raise InvalidArgument(f"unknown period {period!r}")

        completed_count = func.count(UserQuest.id)
        rows = (
            self.db.query(
                UserQuest.user_id,
                User.name,
                completed_count,
                func.coalesce(func.sum(Quest.reward_xp), 0),
            )
            .join(Quest, Quest.id == UserQuest.quest_id)
            .join(User, User.id == UserQuest.user_id)
            .filter(UserQuest.is_completed.is_(True), UserQuest.completed_at >= since)
            .group_by(UserQuest.user_id, User.name)
            .order_by(completed_count.desc(), UserQuest.user_id.asc())
            .limit(limit)
            .all()
        )
        return {
            "period": period,
            "start_date": since.isoformat(),
            "leaderboard": [
                {
                    "rank": rank,
                    "user_id": user_id,
                    "user_name": mask_name(name),
                    "completed_quests": count,
                    "total_xp": int(xp),
                }
                for rank, (user_id, name, count, xp) in enumerate(rows, start=1)
            ],
        }

    def templates(self, quest_type: Optional[QuestType] = None, active: bool = True) -> List[dict]:
        q = self.db.query(Quest).filter(Quest.is_active.is_(active))
        if quest_type is not None:
            q = q.filter(Quest.type == quest_type)
        return [t.to_dict() for t in q.order_by(Quest.priority.desc(), Quest.id.asc()).all()]

    # ------------------------------------------------------------------
    # scheduled refresh
    # ------------------------------------------------------------------

    def expire_overdue(self) -> int:
        now = self.clock()
        expired = (
            self.db.query(UserQuest)
            .filter(
                UserQuest.expires_at <= now,
                or_(
                    UserQuest.status == QuestStatus.IN_PROGRESS,
                    UserQuest.status == QuestStatus.ASSIGNED,
                ),
            )
            .update({UserQuest.status: QuestStatus.EXPIRED}, synchronize_session=False)
        )
        self.db.commit()
        logger.info(f"[QUEST] expired overdue count={expired}")
        return expired

    def refresh_all(
        self,
        batch_size: int = QUEST_REFRESH_BATCH_SIZE,
        pause_seconds: float = QUEST_REFRESH_PAUSE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> RefreshReport:
        """
        Expire yesterday's leftovers, then generate today's quests for every
        user seen in the last week. One user's failure never stops the run.
        """
        report = RefreshReport()
        report.expired = self.expire_overdue()

        since = self.clock() - timedelta(days=ACTIVE_USER_WINDOW_DAYS)
        user_ids = [
            row.id
            for row in self.db.query(User.id)
            .filter(User.is_active.is_(True), User.last_login_at >= since)
            .order_by(User.id.asc())
            .all()
        ]
        logger.info(f"[QUEST] refresh start users={len(user_ids)} batch_size={batch_size}")

        for start in range(0, len(user_ids), batch_size):
            batch = user_ids[start:start + batch_size]
            for user_id in batch:
                try:
                    self.generate_daily(user_id)
                    report.processed += 1
                except Exception as e:
                    self.db.rollback()
                    report.failed += 1
                    report.failed_user_ids.append(user_id)
                    logger.error(f"[QUEST] refresh failed user={user_id} error={e!r}")
            if start + batch_size < len(user_ids):
                sleep(pause_seconds)

        logger.info(f"[QUEST] refresh done processed={report.processed} failed={report.failed} expired={report.expired}")
        return report
