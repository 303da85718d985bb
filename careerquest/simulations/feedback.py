"""
Rule-based feedback for simulation interactions.

Pure: no I/O, no clock. Message wording is picked at random from small
template lists; pass a seeded random.Random for repeatable output.
"""
import logging
import math
import random
from dataclasses import asdict, dataclass, field
from typing import Dict, Optional

logger = logging.getLogger(__name__)

POSITIVE = "positive"
NEUTRAL = "neutral"
GUIDANCE = "guidance"

TEMPLATES = {
    "dialogue_positive": [
        "Great question. The team appreciates that you asked before diving in.",
        "Nicely handled. You listened first and then added something useful.",
    ],
    "dialogue_neutral": [
        "A reasonable reply. A more specific question would move things forward.",
        "Fine for now. Try tying your answer to what the team just said.",
    ],
    "dialogue_guidance": [
        "In a new team, asking questions is the fastest way to get up to speed.",
        "Try engaging with the discussion instead of staying on the sidelines.",
    ],
    "decision_positive": ["Well reasoned. You weighed the trade-offs the business cares about."],
    "decision_neutral": ["A workable choice. Consider what it costs the team later."],
    "decision_guidance": ["Revisit the goal of the project before committing to this option."],
}

COLLABORATIVE_WORDS = ("advice", "help", "together", "ask", "pair", "collaborat", "review")


@dataclass
class Feedback:
    kind: str
    message: str
    score: int
    skills_gained: Dict[str, int] = field(default_factory=dict)
    next_suggestion: Optional[str] = None
    learning_point: Optional[str] = None
    encouragement: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _text(user_input: dict, *keys) -> str:
    for key in keys:
        value = user_input.get(key)
        if value:
            return str(value)
    return ""


def _selected_option(quest, user_input: dict):
    choice = user_input.get("choice")
    for option in getattr(quest, "options", None) or []:
        if option.text == choice:
            return option
    return None


def _keyword_ratio(text: str, keywords) -> float:
    if not keywords:
        return 0.6 if text.strip() else 0.0
    lowered = text.lower()
    hits = sum(1 for k in keywords if k.lower() in lowered)
    return hits / len(keywords)


class FeedbackGenerator:
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def _template(self, key: str) -> str:
        return self.rng.choice(TEMPLATES[key])

    def generate(self, quest, user_input: dict, interaction_type: str, context: Optional[dict] = None) -> Feedback:
        handler = getattr(self, f"_{interaction_type}", None)
        if handler is None:
            return Feedback(kind=NEUTRAL, message="Thanks, your answer was recorded.", score=5, skills_gained={"general": 1})
        try:
            return handler(quest, user_input or {})
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"[FEEDBACK] fallback quest={getattr(quest, 'id', None)} type={interaction_type} error={e!r}")
            return Feedback(kind=NEUTRAL, message="Thanks, your answer was recorded.", score=3)

    def _dialogue(self, quest, user_input):
        option = _selected_option(quest, user_input)
        if option is None:
            return Feedback(kind=NEUTRAL, message="Pick one of the replies to continue.", score=3)
        score = option.points
        if score >= 7:
            return Feedback(
                kind=POSITIVE, message=self._template("dialogue_positive"), score=score,
                skills_gained={"communication": 2, "teamwork": 1},
                encouragement="Strong communication.",
                learning_point="Active questions and listening hold a team together.",
            )
        if score >= 4:
            return Feedback(
                kind=NEUTRAL, message=self._template("dialogue_neutral"), score=score,
                skills_gained={"communication": 1},
                next_suggestion="Ask a more concrete question next time.",
            )
        return Feedback(
            kind=GUIDANCE, message=self._template("dialogue_guidance"), score=max(2, score),
            next_suggestion="Speak up in team meetings.",
        )

    def _decision(self, quest, user_input):
        option = _selected_option(quest, user_input)
        score = option.points if option else quest.base_score
        if score >= 7:
            return Feedback(
                kind=POSITIVE, message=self._template("decision_positive"), score=score,
                skills_gained={"decision_making": 3, "business_understanding": 2},
            )
        if score >= 4:
            return Feedback(
                kind=NEUTRAL, message=self._template("decision_neutral"), score=score,
                skills_gained={"decision_making": 2, "analytical_thinking": 1},
            )
        return Feedback(
            kind=GUIDANCE, message=self._template("decision_guidance"), score=score,
            skills_gained={"decision_making": 1},
        )

    def _coding(self, quest, user_input):
        code = _text(user_input, "code")
        quality = _keyword_ratio(code, quest.expected_outputs)
        score = max(3, math.floor(quality * 10))
        if quality >= 0.8:
            return Feedback(
                kind=POSITIVE, message="Clean solution. Syntax and logic both hold up.", score=score,
                skills_gained={"technical_skills": 2, "programming": 3},
            )
        if quality >= 0.5:
            return Feedback(
                kind=NEUTRAL, message="Good attempt. A few things could be tightened.", score=score,
                skills_gained={"technical_skills": 1, "programming": 2},
                next_suggestion="Check the edge cases the task mentions.",
            )
        hint = quest.hints[0] if quest.hints else "Start again from the basic syntax."
        return Feedback(
            kind=GUIDANCE, message="The logic does not work yet. Try again.", score=3,
            skills_gained={"technical_skills": 1},
            next_suggestion=f"Hint: {hint}",
        )

    def _analysis(self, quest, user_input):
        answer = _text(user_input, "analysis", "answer", "choice")
        accuracy = _keyword_ratio(answer, quest.correct_answers)
        score = max(4, math.floor(accuracy * 10))
        if accuracy >= 0.8:
            return Feedback(
                kind=POSITIVE, message="Accurate analysis. You found the core problem in the data.", score=score,
                skills_gained={"data_science": 4, "analytical_thinking": 3},
            )
        if accuracy >= 0.6:
            return Feedback(
                kind=NEUTRAL, message="The basics are right. Look for a deeper insight.", score=score,
                skills_gained={"data_science": 2, "analytical_thinking": 2},
            )
        return Feedback(
            kind=GUIDANCE, message="Look at the data again before concluding.", score=4,
            skills_gained={"data_science": 1, "analytical_thinking": 1},
            next_suggestion="Start from the basic statistics.",
        )

    def _collaboration(self, quest, user_input):
        approach = _text(user_input, "approach", "choice").lower()
        if any(word in approach for word in COLLABORATIVE_WORDS):
            return Feedback(
                kind=POSITIVE, message="Great teamwork. Reaching out to colleagues pays off.", score=8,
                skills_gained={"teamwork": 4, "communication": 3},
            )
        return Feedback(
            kind=GUIDANCE, message="Working alone is fine, but the team can help here.", score=5,
            skills_gained={"teamwork": 1, "communication": 1},
            next_suggestion="On hard problems, ask a colleague early.",
        )

    def _technical_decision(self, quest, user_input):
        choice = _text(user_input, "choice", "model")
        option = _selected_option(quest, user_input)
        if choice and choice in quest.recommended:
            soundness = 9
        elif option is not None:
            soundness = option.points
        else:
            soundness = 5
        score = max(4, soundness)
        if soundness >= 8:
            return Feedback(
                kind=POSITIVE, message="Technically sound choice.", score=score,
                skills_gained={"technical_skills": 4, "decision_making": 3},
            )
        if soundness >= 6:
            return Feedback(
                kind=NEUTRAL, message="Reasonable. Other constraints may matter too.", score=score,
                skills_gained={"technical_skills": 2, "decision_making": 2},
            )
        return Feedback(
            kind=GUIDANCE, message="Review the requirements before choosing.", score=4,
            skills_gained={"technical_skills": 1, "decision_making": 1},
        )

    def _problem_solving(self, quest, user_input):
        solution = _text(user_input, "solution", "approach")
        creativity = min(1.0, len(solution.split()) / 50)
        effectiveness = _keyword_ratio(solution, quest.keywords)
        score = max(3, math.floor((creativity + effectiveness) * 5))
        if score >= 8:
            return Feedback(
                kind=POSITIVE, message="Creative and practical.", score=score,
                skills_gained={"problem_solving": 4, "creativity": 3},
            )
        return Feedback(
            kind=NEUTRAL, message="The direction is right.", score=score,
            skills_gained={"problem_solving": 2},
            next_suggestion="Look at the problem from another angle.",
        )

    def _retrospective(self, quest, user_input):
        reflection = _text(user_input, "reflection", "answer")
        depth = min(1.0, len(reflection) / 200)
        if depth >= 0.5:
            return Feedback(
                kind=POSITIVE, message="Thoughtful reflection.", score=max(6, math.floor(depth * 10)),
                skills_gained={"self_reflection": 3, "growth_mindset": 2},
            )
        return Feedback(
            kind=NEUTRAL, message="Try to say what you would do differently.", score=5,
            skills_gained={"general": 1},
        )
