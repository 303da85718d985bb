"""
Scenario content.

Scenario JSON is decoded once, at load time, into typed models. Each quest is
one variant of a union tagged by its "type" field and only carries the fields
that variant uses.
"""
import copy
import json
import logging
from pathlib import Path
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from careerquest.core.config import SCENARIO_DIR
from careerquest.core.errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

DIFFICULTIES = ("beginner", "intermediate", "advanced")

DIFFICULTY_OVERLAYS = {
    "beginner": {"more_hints": True, "simplified_code": True, "extended_time": True},
    "intermediate": {},
    "advanced": {"complex_scenarios": True, "open_ended_problems": True, "time_pressure": True},
}


class Option(BaseModel):
    text: str
    points: int = 5
    outcome: Optional[str] = None


class _QuestBase(BaseModel):
    id: str
    title: str
    description: str = ""
    base_score: int = 5
    hints: List[str] = Field(default_factory=list)


class DialogueQuest(_QuestBase):
    type: Literal["dialogue"]
    speaker: str = ""
    prompt: str = ""
    options: List[Option] = Field(default_factory=list)


class DecisionQuest(_QuestBase):
    type: Literal["decision"]
    options: List[Option] = Field(default_factory=list)


class CodingQuest(_QuestBase):
    type: Literal["coding"]
    language: str = "python"
    starter_code: str = ""
    expected_outputs: List[str] = Field(default_factory=list)


class AnalysisQuest(_QuestBase):
    type: Literal["analysis"]
    dataset: Dict[str, list] = Field(default_factory=dict)
    correct_answers: List[str] = Field(default_factory=list)


class CollaborationQuest(_QuestBase):
    type: Literal["collaboration"]
    colleague: str = ""
    options: List[Option] = Field(default_factory=list)


class TechnicalDecisionQuest(_QuestBase):
    type: Literal["technical_decision"]
    options: List[Option] = Field(default_factory=list)
    recommended: List[str] = Field(default_factory=list)


class ProblemSolvingQuest(_QuestBase):
    type: Literal["problem_solving"]
    keywords: List[str] = Field(default_factory=list)


class RetrospectiveQuest(_QuestBase):
    type: Literal["retrospective"]
    prompts: List[str] = Field(default_factory=list)


ScenarioQuest = Annotated[
    Union[
        DialogueQuest,
        DecisionQuest,
        CodingQuest,
        AnalysisQuest,
        CollaborationQuest,
        TechnicalDecisionQuest,
        ProblemSolvingQuest,
        RetrospectiveQuest,
    ],
    Field(discriminator="type"),
]


class Chapter(BaseModel):
    id: str
    title: str
    description: str = ""
    quests: List[ScenarioQuest] = Field(min_length=1)

    def quest(self, quest_id: str):
        for quest in self.quests:
            if quest.id == quest_id:
                return quest
        return None


class Scenario(BaseModel):
    # Difficulty overlays and personalization variations add top-level keys.
    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    description: str = ""
    category: str = "general"
    estimated_minutes: int = 30
    chapters: List[Chapter] = Field(min_length=1)
    variations: Dict[str, dict] = Field(default_factory=dict)

    def chapter(self, chapter_id: str) -> Optional[Chapter]:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None

    @property
    def total_quests(self) -> int:
        return sum(len(c.quests) for c in self.chapters) or 1

    def next_position(self, chapter_id: str, quest_id: str):
        """
        Where the player goes after *quest_id*: (chapter, quest, chapter_changed),
        or None when the scenario is finished.
        """
        chapter_index = next(i for i, c in enumerate(self.chapters) if c.id == chapter_id)
        chapter = self.chapters[chapter_index]
        quest_index = next(i for i, q in enumerate(chapter.quests) if q.id == quest_id)
        if quest_index + 1 < len(chapter.quests):
            return chapter, chapter.quests[quest_index + 1], False
        if chapter_index + 1 < len(self.chapters):
            next_chapter = self.chapters[chapter_index + 1]
            return next_chapter, next_chapter.quests[0], True
        return None

    def summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "estimated_minutes": self.estimated_minutes,
            "chapters": len(self.chapters),
            "total_quests": self.total_quests,
        }


def personalize(scenario: Scenario, difficulty: str, personalizations: Optional[dict] = None) -> dict:
    """
    Build the per-session snapshot: difficulty flags plus any scenario
    variations the player picked. The stored scenario is never modified.
    """
    if difficulty not in DIFFICULTY_OVERLAYS:
        raise InvalidArgument(f"unknown difficulty {difficulty!r}", allowed=list(DIFFICULTIES))
    snapshot = copy.deepcopy(scenario.model_dump())
    snapshot.update(DIFFICULTY_OVERLAYS[difficulty])
    snapshot["difficulty"] = difficulty
    for key in (personalizations or {}):
        variation = scenario.variations.get(key)
        if variation:
            snapshot.update(copy.deepcopy(variation))
    return snapshot


class ScenarioRepository:
    """Reads scenarios from <directory>/<id>.json and keeps the decoded models."""

    def __init__(self, directory: Path = SCENARIO_DIR):
        self.directory = Path(directory)
        self._cache: Dict[str, Scenario] = {}

    def get(self, simulation_id: str) -> Scenario:
        if simulation_id in self._cache:
            return self._cache[simulation_id]
        # ids come from URLs; keep them inside the scenario directory
        if not simulation_id or "/" in simulation_id or "\\" in simulation_id or simulation_id.startswith("."):
            raise NotFound(f"scenario {simulation_id!r} not found")
        path = self.directory / f"{simulation_id}.json"
        if not path.exists():
            raise NotFound(f"scenario {simulation_id!r} not found", simulation_id=simulation_id)
        try:
            scenario = Scenario.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (ValueError, ValidationError) as e:
            logger.error(f"[SCENARIO] invalid file path={path} error={e}")
            raise InvalidArgument(f"scenario {simulation_id!r} is malformed") from e
        self._cache[simulation_id] = scenario
        return scenario

    def list(self) -> List[Scenario]:
        scenarios = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                scenarios.append(self.get(path.stem))
            except InvalidArgument:
                continue
        return scenarios


_default_repository: Optional[ScenarioRepository] = None


def get_scenarios() -> ScenarioRepository:
    global _default_repository
    if _default_repository is None:
        _default_repository = ScenarioRepository()
    return _default_repository
