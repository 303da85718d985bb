import os

from fastapi import FastAPI

from careerquest.core.errors import register_error_handlers
from careerquest.core.logging import setup_logging
from careerquest.db.base import Base, engine

# Import models so create_all picks them up
from careerquest.accounts.models import ActivityLog, CareerSurvey, User  # noqa: F401
from careerquest.credits.models import CreditTransaction  # noqa: F401
from careerquest.quests.models import Quest, UserQuest  # noqa: F401
from careerquest.roadmaps.models import RoadmapMilestone, RoadmapPhase, UserRoadmap  # noqa: F401
from careerquest.simulations.models import (  # noqa: F401
    FinalSimulationResult,
    SimulationInteraction,
    SimulationSession,
)

from careerquest.accounts.routes import router as accounts_router
from careerquest.credits.routes import router as credits_router
from careerquest.quests.routes import router as quests_router
from careerquest.roadmaps.routes import router as roadmaps_router
from careerquest.simulations.routes import router as simulations_router

setup_logging()

app = FastAPI(title="CareerQuest", version="0.1.0")

register_error_handlers(app)

# Create database tables (still useful in dev; in production prefer Alembic)
if os.getenv("AUTO_CREATE_TABLES", "1") == "1":
    Base.metadata.create_all(bind=engine)

# Include routers
app.include_router(accounts_router)
app.include_router(credits_router)
app.include_router(quests_router)
app.include_router(simulations_router)
app.include_router(roadmaps_router)


@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok"}
