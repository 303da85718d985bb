from careerquest.quests.models import QuestType
from careerquest.quests.selection import (
    ADVANCED,
    BEGINNER,
    DAILY_QUEST_POOL,
    INTERMEDIATE,
    derive_user_tier,
    select_templates,
)


def test_derive_user_tier():
    assert derive_user_tier(0, False, 0) == BEGINNER
    assert derive_user_tier(5, False, 50) == BEGINNER
    assert derive_user_tier(3, True, 0) == INTERMEDIATE
    assert derive_user_tier(10, True, 9) == INTERMEDIATE
    assert derive_user_tier(10, True, 10) == ADVANCED


def test_new_user_gets_login_and_survey_quests():
    chosen = select_templates(DAILY_QUEST_POOL, BEGINNER, has_completed_survey=False)

    types = [bp.type for bp in chosen]
    assert len(chosen) == 4
    assert types.count(QuestType.LOGIN) == 1
    assert types.count(QuestType.SURVEY) == 1
    assert QuestType.STREAK not in types


def test_survey_quest_dropped_once_survey_done():
    chosen = select_templates(DAILY_QUEST_POOL, BEGINNER, has_completed_survey=True)
    assert QuestType.SURVEY not in [bp.type for bp in chosen]
    assert QuestType.LOGIN in [bp.type for bp in chosen]


def test_streak_quest_only_for_experienced_tiers():
    chosen = select_templates(DAILY_QUEST_POOL, INTERMEDIATE, has_completed_survey=True)
    assert QuestType.STREAK in [bp.type for bp in chosen]


def test_selection_is_sorted_by_priority_and_capped():
    chosen = select_templates(DAILY_QUEST_POOL, ADVANCED, has_completed_survey=False, limit=3)

    priorities = [bp.priority for bp in chosen]
    assert priorities == sorted(priorities, reverse=True)
    assert len(chosen) == 3
    # required quests survive even a tight limit
    assert {QuestType.LOGIN, QuestType.SURVEY} <= {bp.type for bp in chosen}
