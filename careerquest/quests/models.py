"""
Quest templates + per-user daily assignments.
"""
import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from careerquest.db.base import Base


class QuestType(str, enum.Enum):
    LOGIN = "LOGIN"
    SIMULATION = "SIMULATION"
    MILESTONE = "MILESTONE"
    EXPLORATION = "EXPLORATION"
    STREAK = "STREAK"
    SURVEY = "SURVEY"


class QuestCategory(str, enum.Enum):
    DAILY = "DAILY"
    ONBOARDING = "ONBOARDING"


class QuestDifficulty(str, enum.Enum):
    EASY = "EASY"
    NORMAL = "NORMAL"
    HARD = "HARD"


class QuestStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


class Quest(Base):
    """Reusable quest template. Looked up (or created) by name + type."""
    __tablename__ = "quests"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(Enum(QuestType, name="quest_type"), nullable=False)
    category = Column(Enum(QuestCategory, name="quest_category"), nullable=False, default=QuestCategory.DAILY)
    difficulty = Column(Enum(QuestDifficulty, name="quest_difficulty"), nullable=False, default=QuestDifficulty.EASY)

    target_value = Column(Integer, nullable=False, default=1)
    requirements = Column(JSON, nullable=True)

    reward_credits = Column(Integer, nullable=False, default=0)
    reward_xp = Column(Integer, nullable=False, default=0)
    reward_badge = Column(String(64), nullable=True)

    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('name', 'type', name='uq_quest_name_type'),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "category": self.category.value,
            "difficulty": self.difficulty.value,
            "target_value": self.target_value,
            "requirements": self.requirements or {},
            "reward_credits": self.reward_credits,
            "reward_xp": self.reward_xp,
            "reward_badge": self.reward_badge,
            "priority": self.priority,
        }


class UserQuest(Base):
    """
    One quest assigned to one user on one UTC day.
    The unique key makes daily generation idempotent under concurrent callers.
    """
    __tablename__ = "user_quests"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    quest_id = Column(Integer, ForeignKey("quests.id"), nullable=False)
    assigned_date = Column(Date, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    progress = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)
    status = Column(Enum(QuestStatus, name="quest_status"), nullable=False, default=QuestStatus.ASSIGNED)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    details = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    quest = relationship(Quest, lazy="joined")

    __table_args__ = (
        UniqueConstraint('user_id', 'quest_id', 'assigned_date', name='uq_user_quest_daily'),
    )

    def to_dict(self) -> dict:
        quest = self.quest
        return {
            "id": self.id,
            "quest_id": self.quest_id,
            "name": quest.name,
            "description": quest.description,
            "type": quest.type.value,
            "category": quest.category.value,
            "difficulty": quest.difficulty.value,
            "target_value": quest.target_value,
            "progress": self.progress,
            "is_completed": self.is_completed,
            "status": self.status.value,
            "reward_credits": quest.reward_credits,
            "reward_xp": quest.reward_xp,
            "reward_badge": quest.reward_badge,
            "assigned_date": self.assigned_date.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "metadata": self.details or {},
        }
