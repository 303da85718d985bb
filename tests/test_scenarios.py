import random

import pytest

from careerquest.core.config import SCENARIO_DIR
from careerquest.core.errors import InvalidArgument, NotFound
from careerquest.simulations.assessment import assess, bonus_for, grade_for, max_score
from careerquest.simulations.feedback import GUIDANCE, NEUTRAL, POSITIVE, FeedbackGenerator
from careerquest.simulations.scenario import (
    CollaborationQuest,
    DecisionQuest,
    DialogueQuest,
    Option,
    ScenarioRepository,
    personalize,
)


def test_bundled_scenarios_load():
    repo = ScenarioRepository(SCENARIO_DIR)

    ids = sorted(s.id for s in repo.list())

    assert ids == ["backend_developer_sprint", "data_scientist_day_one"]
    assert repo.get("backend_developer_sprint").total_quests == 3


def test_quests_decode_to_their_variant(scenarios):
    scenario = scenarios.get("two_step")

    assert isinstance(scenario.chapters[0].quests[0], DialogueQuest)
    assert isinstance(scenario.chapters[1].quests[0], DecisionQuest)
    assert scenario.chapters[0].quests[0].options[0].points == 25


def test_repository_caches_decoded_scenarios(scenarios):
    assert scenarios.get("two_step") is scenarios.get("two_step")


@pytest.mark.parametrize("bad_id", ["missing", "../etc/passwd", ".hidden", ""])
def test_unknown_or_path_like_ids_are_not_found(scenarios, bad_id):
    with pytest.raises(NotFound):
        scenarios.get(bad_id)


def test_malformed_scenario_is_invalid_and_skipped_in_listing(scenario_dir):
    (scenario_dir / "broken.json").write_text('{"id": "broken", "title": "x", "chapters": []}', encoding="utf-8")
    (scenario_dir / "garbage.json").write_text("{not json", encoding="utf-8")
    repo = ScenarioRepository(scenario_dir)

    with pytest.raises(InvalidArgument):
        repo.get("broken")
    with pytest.raises(InvalidArgument):
        repo.get("garbage")
    assert [s.id for s in repo.list()] == ["two_step"]


def test_next_position_walks_chapters(scenarios):
    scenario = scenarios.get("two_step")

    chapter, quest, changed = scenario.next_position("c1", "q1")
    assert (chapter.id, quest.id, changed) == ("c2", "q2", True)
    assert scenario.next_position("c2", "q2") is None


def test_personalize_leaves_stored_scenario_alone(scenarios):
    scenario = scenarios.get("two_step")

    snapshot = personalize(scenario, "advanced", {"fintech": True})

    assert snapshot["time_pressure"] is True
    assert snapshot["industry"] == "fintech"
    assert "industry" not in scenario.model_dump()
    with pytest.raises(InvalidArgument):
        personalize(scenario, "legendary")


def test_dialogue_feedback_bands():
    quest = DialogueQuest(
        id="q", type="dialogue", title="t",
        options=[Option(text="a", points=8), Option(text="b", points=5), Option(text="c", points=1)],
    )
    feedback = FeedbackGenerator(random.Random(1))

    assert feedback.generate(quest, {"choice": "a"}, "dialogue").kind == POSITIVE
    assert feedback.generate(quest, {"choice": "b"}, "dialogue").kind == NEUTRAL
    weak = feedback.generate(quest, {"choice": "c"}, "dialogue")
    assert weak.kind == GUIDANCE
    assert weak.score == 2


def test_collaboration_feedback_rewards_asking_for_help():
    quest = CollaborationQuest(id="q", type="collaboration", title="t")
    feedback = FeedbackGenerator(random.Random(1))

    helped = feedback.generate(quest, {"approach": "Ask a colleague to pair on it"}, "collaboration")
    alone = feedback.generate(quest, {"approach": "Figure it out myself"}, "collaboration")

    assert (helped.kind, helped.score) == (POSITIVE, 8)
    assert alone.kind == GUIDANCE


def test_unknown_interaction_type_gets_neutral_feedback():
    quest = DecisionQuest(id="q", type="decision", title="t")
    result = FeedbackGenerator().generate(quest, {}, "interpretive_dance")
    assert result.kind == NEUTRAL


def test_grades_and_bonuses():
    assert max_score(4) == 100
    assert [grade_for(p) for p in (95, 85, 75, 65, 10)] == ["A+", "A", "B+", "B", "C"]
    assert [bonus_for(g) for g in ("A+", "A", "B+", "B", "C")] == [3, 2, 1, 0, 0]


def test_assess_reports_strengths_and_weaknesses():
    result = assess(40, 2, {"communication": 5, "teamwork": 1})

    assert result["percentage"] == 80.0
    assert result["grade"] == "A"
    assert result["bonus_credits"] == 2
    assert result["strengths_weaknesses"] == {"strengths": ["communication"], "weaknesses": ["teamwork"]}
    assert result["category_scores"]["collaboration"] == 60
    assert len(result["next_steps"]["immediate"]) == 2


def test_assess_caps_percentage_at_full_marks():
    result = assess(75, 2, {})

    assert result["max_score"] == 50
    assert result["percentage"] == 100.0
    assert result["grade"] == "A+"
