"""
Final assessment of a finished simulation run.
"""
from typing import Dict, List

from careerquest.core.config import MAX_INTERACTION_SCORE

GRADE_THRESHOLDS = [(90, "A+"), (80, "A"), (70, "B+"), (60, "B")]
BONUS_CREDITS = {"A+": 3, "A": 2, "B+": 1}

SKILL_CATEGORIES = {
    "technical_skills": ("technical_skills", "programming", "data_science"),
    "collaboration": ("teamwork", "communication"),
    "business_understanding": ("business_understanding", "decision_making"),
    "growth_mindset": ("self_reflection", "growth_mindset", "creativity"),
    "execution": ("problem_solving", "analytical_thinking"),
}

STRENGTH_LEVEL = 4
WEAKNESS_LEVEL = 2

NEXT_STEP_HINTS = {
    "collaboration": "Pair on a team project to practice communication.",
    "technical_skills": "Take an intermediate programming course.",
    "business_understanding": "Study how product decisions are measured.",
    "growth_mindset": "Keep a short weekly learning journal.",
    "execution": "Work through structured problem-solving exercises.",
}


def max_score(total_quests: int) -> int:
    return max(1, total_quests) * MAX_INTERACTION_SCORE


def grade_for(percentage: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if percentage >= threshold:
            return grade
    return "C"


def bonus_for(grade: str) -> int:
    return BONUS_CREDITS.get(grade, 0)


def category_scores(skill_levels: Dict[str, int]) -> Dict[str, int]:
    """0-100 per category; ten skill points saturate a category."""
    return {
        category: min(100, sum(skill_levels.get(skill, 0) for skill in skills) * 10)
        for category, skills in SKILL_CATEGORIES.items()
    }


def strengths_weaknesses(skill_levels: Dict[str, int]) -> Dict[str, List[str]]:
    strengths = sorted(s for s, level in skill_levels.items() if level >= STRENGTH_LEVEL)
    weaknesses = sorted(s for s, level in skill_levels.items() if level <= WEAKNESS_LEVEL)
    return {"strengths": strengths, "weaknesses": weaknesses}


def next_steps(categories: Dict[str, int]) -> Dict[str, List[str]]:
    weakest = sorted(categories, key=lambda c: (categories[c], c))[:2]
    return {
        "immediate": [NEXT_STEP_HINTS[c] for c in weakest],
        "short_term": ["Build a portfolio piece from this simulation."],
        "long_term": ["Repeat the simulation at a harder difficulty."],
    }


def personalized_feedback(grade: str, strengths: List[str], weaknesses: List[str]) -> Dict[str, str]:
    if grade in ("A+", "A"):
        overall = "Excellent run overall."
    elif grade in ("B+", "B"):
        overall = "Solid run with room to grow."
    else:
        overall = "A good start. Try the scenario again with the hints on."
    feedback = {"overall": overall}
    if strengths:
        feedback["strengths"] = "You did well on " + ", ".join(strengths) + "."
    if weaknesses:
        feedback["improve"] = "Focus next on " + ", ".join(weaknesses) + "."
    return feedback


def assess(total_score: int, total_quests: int, skill_levels: Dict[str, int]) -> dict:
    """Everything that can be computed from the session alone."""
    ceiling = max_score(total_quests)
    percentage = min(100.0, total_score / ceiling * 100)
    grade = grade_for(percentage)
    categories = category_scores(skill_levels)
    sw = strengths_weaknesses(skill_levels)
    return {
        "final_score": total_score,
        "max_score": ceiling,
        "percentage": round(percentage, 1),
        "grade": grade,
        "bonus_credits": bonus_for(grade),
        "category_scores": categories,
        "skill_assessment": dict(skill_levels),
        "strengths_weaknesses": sw,
        "personalized_feedback": personalized_feedback(grade, sw["strengths"], sw["weaknesses"]),
        "next_steps": next_steps(categories),
    }
