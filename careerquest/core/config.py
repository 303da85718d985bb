"""
Configuration constants for the application.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Load environment variables from .env file if it exists
load_dotenv(dotenv_path=BASE_DIR / ".env")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Redis backs the quest cache only; the service keeps working when it is down.
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "0.5"))

# Credits
SIMULATION_COST = int(os.getenv("SIMULATION_COST", "2"))
SURVEY_COST = int(os.getenv("SURVEY_COST", "1"))
SIGNUP_BONUS = 3
SIGNUP_BONUS_REFERRED = 5
REFERRAL_BONUS = 2
LEDGER_MAX_RETRIES = int(os.getenv("LEDGER_MAX_RETRIES", "5"))

# Daily quests
QUEST_CACHE_TTL = int(os.getenv("QUEST_CACHE_TTL", "3600"))
QUEST_REFRESH_BATCH_SIZE = int(os.getenv("QUEST_REFRESH_BATCH_SIZE", "100"))
QUEST_REFRESH_PAUSE_SECONDS = float(os.getenv("QUEST_REFRESH_PAUSE_SECONDS", "0.1"))
ACTIVE_USER_WINDOW_DAYS = int(os.getenv("ACTIVE_USER_WINDOW_DAYS", "7"))
DAILY_QUEST_LIMIT = 4

# Simulations
SCENARIO_DIR = Path(os.getenv("SCENARIO_DIR", str(BASE_DIR / "data" / "simulations")))
MAX_INTERACTION_SCORE = 25
RECENT_INTERACTIONS_SHOWN = 10
