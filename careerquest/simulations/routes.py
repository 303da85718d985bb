from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from careerquest.accounts.models import User
from careerquest.core.deps import get_current_user, get_simulation_engine
from careerquest.simulations.engine import SimulationEngine
from careerquest.simulations.scenario import ScenarioRepository, get_scenarios

router = APIRouter(prefix="/api/simulations", tags=["simulations"])


class StartBody(BaseModel):
    simulation_id: str = Field(min_length=1, max_length=128)
    difficulty: str = Field(default="intermediate", pattern="^(beginner|intermediate|advanced)$")
    personalizations: dict = Field(default_factory=dict)


class InteractBody(BaseModel):
    quest_id: str
    interaction_type: str = Field(
        pattern="^(dialogue|decision|coding|analysis|collaboration|technical_decision|problem_solving|retrospective)$"
    )
    user_input: dict = Field(default_factory=dict)
    response_time_ms: Optional[int] = Field(default=None, ge=0)


@router.get("/scenarios")
def list_scenarios(
    user: User = Depends(get_current_user),
    scenarios: ScenarioRepository = Depends(get_scenarios),
):
    items = [s.summary() for s in scenarios.list()]
    return {"success": True, "data": {"scenarios": items, "total": len(items)}}


@router.get("/scenarios/{simulation_id}")
def get_scenario(
    simulation_id: str,
    user: User = Depends(get_current_user),
    scenarios: ScenarioRepository = Depends(get_scenarios),
):
    scenario = scenarios.get(simulation_id)
    data = scenario.summary()
    data["chapter_titles"] = [c.title for c in scenario.chapters]
    return {"success": True, "data": data}


@router.post("/start")
def start_simulation(
    body: StartBody,
    user: User = Depends(get_current_user),
    engine: SimulationEngine = Depends(get_simulation_engine),
):
    data = engine.start(user.id, body.simulation_id, body.difficulty, body.personalizations)
    return {"success": True, "message": data["message"], "data": data}


@router.post("/{session_id}/interact")
def interact(
    session_id: int,
    body: InteractBody,
    user: User = Depends(get_current_user),
    engine: SimulationEngine = Depends(get_simulation_engine),
):
    data = engine.interact(
        session_id, body.quest_id, body.interaction_type, body.user_input, user.id,
        response_time_ms=body.response_time_ms,
    )
    return {"success": True, "data": data}


@router.get("/{session_id}/state")
def get_state(
    session_id: int,
    user: User = Depends(get_current_user),
    engine: SimulationEngine = Depends(get_simulation_engine),
):
    return {"success": True, "data": engine.state(session_id, user.id)}


@router.post("/{session_id}/pause")
def pause(
    session_id: int,
    user: User = Depends(get_current_user),
    engine: SimulationEngine = Depends(get_simulation_engine),
):
    return {"success": True, "message": "Simulation paused", "data": engine.pause(session_id, user.id)}


@router.post("/{session_id}/resume")
def resume(
    session_id: int,
    user: User = Depends(get_current_user),
    engine: SimulationEngine = Depends(get_simulation_engine),
):
    return {"success": True, "message": "Simulation resumed", "data": engine.resume(session_id, user.id)}


@router.post("/{session_id}/complete")
def complete(
    session_id: int,
    user: User = Depends(get_current_user),
    engine: SimulationEngine = Depends(get_simulation_engine),
):
    return {"success": True, "message": "Simulation completed", "data": engine.complete(session_id, user.id)}


@router.get("/sessions")
def list_sessions(
    status: str = Query("all", pattern="^(all|in_progress|paused|completed)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
    engine: SimulationEngine = Depends(get_simulation_engine),
):
    return {"success": True, "data": engine.list_sessions(user.id, status=status, page=page, limit=limit)}


@router.get("/results/{result_id}")
def get_result(
    result_id: int,
    user: User = Depends(get_current_user),
    engine: SimulationEngine = Depends(get_simulation_engine),
):
    return {"success": True, "data": engine.result(result_id, user.id)}


@router.get("/leaderboard/{simulation_id}")
def get_leaderboard(
    simulation_id: str,
    period: str = Query("all", pattern="^(all|weekly|monthly)$"),
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
    engine: SimulationEngine = Depends(get_simulation_engine),
):
    return {"success": True, "data": engine.leaderboard(simulation_id, period=period, limit=limit)}
