"""
Simulation sessions, their interactions, and final results.
"""
import enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from careerquest.db.base import Base


class SimulationStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"


# active_key is 1 while a session can still be played and NULL afterwards.
# NULLs never collide in a unique index, so at most one open session exists
# per (user, simulation) while any number of completed ones can pile up.
ACTIVE = 1


class SimulationSession(Base):
    __tablename__ = "simulation_sessions"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    simulation_id = Column(String(128), nullable=False, index=True)

    status = Column(Enum(SimulationStatus, name="simulation_status"), nullable=False, default=SimulationStatus.IN_PROGRESS)
    active_key = Column(Integer, nullable=True, default=ACTIVE)

    current_chapter = Column(String(64), nullable=False)
    current_quest = Column(String(64), nullable=False)

    scenario_data = Column(JSON, nullable=False)
    current_state = Column(JSON, nullable=False)

    total_score = Column(Integer, nullable=False, default=0)
    skill_levels = Column(JSON, nullable=False, default=dict)
    badges = Column(JSON, nullable=False, default=list)
    progress = Column(Float, nullable=False, default=0.0)

    started_at = Column(DateTime(timezone=True), nullable=False)
    last_active_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    total_play_time = Column(Integer, nullable=False, default=0)  # seconds

    __table_args__ = (
        UniqueConstraint('user_id', 'simulation_id', 'active_key', name='uq_simulation_session_active'),
    )


class SimulationInteraction(Base):
    __tablename__ = "simulation_interactions"

    id = Column(Integer, primary_key=True, index=True)

    session_id = Column(Integer, ForeignKey("simulation_sessions.id"), nullable=False, index=True)
    quest_id = Column(String(64), nullable=False)
    interaction_type = Column(String(32), nullable=False)

    user_input = Column(JSON, nullable=False)
    ai_response = Column(JSON, nullable=False)

    score_gained = Column(Integer, nullable=False, default=0)
    skills_gained = Column(JSON, nullable=False, default=dict)
    response_time_ms = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quest_id": self.quest_id,
            "interaction_type": self.interaction_type,
            "user_input": self.user_input,
            "feedback": self.ai_response,
            "score_gained": self.score_gained,
            "skills_gained": self.skills_gained,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class FinalSimulationResult(Base):
    __tablename__ = "final_simulation_results"

    id = Column(Integer, primary_key=True, index=True)

    session_id = Column(Integer, ForeignKey("simulation_sessions.id"), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    simulation_id = Column(String(128), nullable=False, index=True)

    final_score = Column(Integer, nullable=False)
    max_score = Column(Integer, nullable=False)
    grade = Column(String(4), nullable=False)
    percentile = Column(Float, nullable=False)
    average_score = Column(Float, nullable=False)

    category_scores = Column(JSON, nullable=False)
    skill_assessment = Column(JSON, nullable=False)
    strengths_weaknesses = Column(JSON, nullable=False)
    personalized_feedback = Column(JSON, nullable=False)
    next_steps = Column(JSON, nullable=False)

    credits_used = Column(Integer, nullable=False)
    bonus_credits = Column(Integer, nullable=False, default=0)

    completed_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "simulation_id": self.simulation_id,
            "final_score": self.final_score,
            "max_score": self.max_score,
            "grade": self.grade,
            "percentile": self.percentile,
            "average_score": self.average_score,
            "category_scores": self.category_scores,
            "skill_assessment": self.skill_assessment,
            "strengths_weaknesses": self.strengths_weaknesses,
            "personalized_feedback": self.personalized_feedback,
            "next_steps": self.next_steps,
            "credits_used": self.credits_used,
            "bonus_credits": self.bonus_credits,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
