import json
import os
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure settings are in place before the app (and security module) are imported.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_TABLES", "0")

from careerquest.accounts.models import User  # noqa: E402
from careerquest.credits.ledger import CreditLedger  # noqa: E402
from careerquest.db.base import Base  # noqa: E402
from careerquest.main import app  # noqa: E402,F401
from careerquest.quests.engine import QuestEngine  # noqa: E402
from careerquest.simulations.scenario import ScenarioRepository  # noqa: E402


class FakeCache:
    """In-memory stand-in for RedisCache; TTLs are recorded, not enforced."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.deleted = []

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl_seconds, value):
        self.store[key] = json.loads(json.dumps(value, default=str))
        self.ttls[key] = ttl_seconds
        return True

    def delete(self, key):
        self.deleted.append(key)
        self.store.pop(key, None)
        return True


TWO_STEP_SCENARIO = {
    "id": "two_step",
    "title": "Two step test scenario",
    "category": "testing",
    "chapters": [
        {
            "id": "c1",
            "title": "Chapter one",
            "quests": [
                {
                    "id": "q1",
                    "type": "dialogue",
                    "title": "Say hello",
                    "options": [
                        {"text": "Great answer", "points": 25},
                        {"text": "Weak answer", "points": 1},
                    ],
                }
            ],
        },
        {
            "id": "c2",
            "title": "Chapter two",
            "quests": [
                {
                    "id": "q2",
                    "type": "decision",
                    "title": "Decide",
                    "options": [
                        {"text": "Check data quality first", "points": 25},
                        {"text": "Guess", "points": 2},
                    ],
                }
            ],
        },
    ],
    "variations": {"fintech": {"industry": "fintech"}},
}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(credits=0, paid_credits=0, is_active=True, name=None, last_login_at=None):
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            name=name or f"Tester{counter['n']}",
            credits=credits,
            paid_credits=paid_credits,
            is_active=is_active,
            last_login_at=last_login_at,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def ledger(db):
    return CreditLedger(db)


@pytest.fixture
def quests(db, cache, ledger):
    return QuestEngine(db, cache, ledger=ledger)


@pytest.fixture
def scenario_dir(tmp_path):
    path = tmp_path / "simulations"
    path.mkdir()
    (path / "two_step.json").write_text(json.dumps(TWO_STEP_SCENARIO), encoding="utf-8")
    return path


@pytest.fixture
def scenarios(scenario_dir):
    return ScenarioRepository(scenario_dir)


@pytest.fixture
def utc():
    return lambda *args: datetime(*args, tzinfo=timezone.utc)
