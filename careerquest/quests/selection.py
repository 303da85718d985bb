"""
Daily quest pool and the pure selection rules.

Nothing here touches the database: the engine feeds in the user's signals
and persists whatever select_templates returns.
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional

from careerquest.core.config import DAILY_QUEST_LIMIT
from careerquest.quests.models import QuestCategory, QuestDifficulty, QuestType

BEGINNER = "beginner"
INTERMEDIATE = "intermediate"
ADVANCED = "advanced"
ALL_TIERS = frozenset({BEGINNER, INTERMEDIATE, ADVANCED})


@dataclass(frozen=True)
class QuestBlueprint:
    name: str
    description: str
    type: QuestType
    target_value: int
    reward_credits: int
    reward_xp: int
    priority: int
    category: QuestCategory = QuestCategory.DAILY
    difficulty: QuestDifficulty = QuestDifficulty.EASY
    reward_badge: Optional[str] = None
    tiers: FrozenSet[str] = ALL_TIERS
    requirements: dict = field(default_factory=dict)


LOGIN_QUEST = QuestBlueprint(
    name="Daily check-in",
    description="Log in today.",
    type=QuestType.LOGIN,
    target_value=1,
    reward_credits=1,
    reward_xp=10,
    priority=100,
)

FIRST_SURVEY_QUEST = QuestBlueprint(
    name="Complete your career survey",
    description="Finish the onboarding survey to unlock recommendations.",
    type=QuestType.SURVEY,
    category=QuestCategory.ONBOARDING,
    target_value=1,
    reward_credits=3,
    reward_xp=30,
    reward_badge="first_survey",
    priority=95,
)

DAILY_QUEST_POOL: List[QuestBlueprint] = [
    LOGIN_QUEST,
    QuestBlueprint(
        name="Run a job simulation",
        description="Finish one career simulation.",
        type=QuestType.SIMULATION,
        difficulty=QuestDifficulty.NORMAL,
        target_value=1,
        reward_credits=2,
        reward_xp=25,
        priority=80,
    ),
    QuestBlueprint(
        name="Hit a roadmap milestone",
        description="Complete one milestone on your active roadmap.",
        type=QuestType.MILESTONE,
        difficulty=QuestDifficulty.NORMAL,
        target_value=1,
        reward_credits=1,
        reward_xp=20,
        priority=70,
    ),
    QuestBlueprint(
        name="Explore careers",
        description="Look at three career recommendations.",
        type=QuestType.EXPLORATION,
        target_value=3,
        reward_credits=1,
        reward_xp=15,
        priority=60,
    ),
    QuestBlueprint(
        name="Keep the streak",
        description="Complete two activities today.",
        type=QuestType.STREAK,
        difficulty=QuestDifficulty.HARD,
        target_value=2,
        reward_credits=3,
        reward_xp=50,
        priority=90,
        tiers=frozenset({INTERMEDIATE, ADVANCED}),
    ),
]


def derive_user_tier(recent_simulations: int, has_active_roadmap: bool, total_credits: int) -> str:
    if recent_simulations >= 10 and has_active_roadmap and total_credits >= 10:
        return ADVANCED
    if recent_simulations >= 3 and has_active_roadmap:
        return INTERMEDIATE
    return BEGINNER


def select_templates(
    pool: Iterable[QuestBlueprint],
    tier: str,
    has_completed_survey: bool,
    limit: int = DAILY_QUEST_LIMIT,
) -> List[QuestBlueprint]:
    """
    Pick today's quests: highest priority first, capped at *limit*.
    The login quest is always in, and the first-survey quest is in until the
    user has finished a survey.
    """
    candidates = [bp for bp in pool if tier in bp.tiers]
    required = [bp for bp in candidates if bp.type == QuestType.LOGIN]
    if not has_completed_survey:
        required.append(FIRST_SURVEY_QUEST)

    optional = sorted(
        (bp for bp in candidates if bp not in required),
        key=lambda bp: bp.priority,
        reverse=True,
    )
    chosen = required + optional[:max(0, limit - len(required))]
    return sorted(chosen, key=lambda bp: bp.priority, reverse=True)
