import pytest
from fastapi.testclient import TestClient

from careerquest.core.cache import get_cache
from careerquest.core.security import create_access_token
from careerquest.credits.models import CreditTransactionType
from careerquest.db.session import get_db
from careerquest.main import app
from careerquest.simulations.scenario import get_scenarios


@pytest.fixture
def client(session_factory, cache, scenarios):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_scenarios] = lambda: scenarios
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requests_without_token_are_rejected(client):
    assert client.get("/api/credits/balance").status_code == 401
    resp = client.get("/api/credits/balance", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_cookie_token_is_accepted(client, make_user):
    user = make_user(credits=2)
    token = create_access_token({"sub": str(user.id)})

    resp = client.get("/api/credits/balance", headers={"Cookie": f"access_token={token}"})

    assert resp.status_code == 200
    assert resp.json()["data"]["total_credits"] == 2


def test_balance_and_transactions(client, make_user, ledger):
    user = make_user(credits=0, paid_credits=4)
    ledger.deduct(user.id, CreditTransactionType.SIMULATION_USAGE, 1, "sim")

    balance = client.get("/api/credits/balance", headers=auth(user)).json()["data"]
    history = client.get("/api/credits/transactions?limit=5", headers=auth(user)).json()["data"]

    assert balance == {"free_credits": 0, "paid_credits": 3, "total_credits": 3, "subscription_type": "free"}
    assert history["transactions"][0]["amount"] == -1
    assert history["pagination"]["limit"] == 5


def test_service_errors_use_the_error_envelope(client, make_user):
    user = make_user(credits=1)

    resp = client.post("/api/simulations/start", json={"simulation_id": "two_step"}, headers=auth(user))

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INSUFFICIENT_CREDITS"
    assert body["error"]["required"] == 2
    assert body["error"]["available"] == 1


def test_not_found_maps_to_404(client, make_user):
    user = make_user()

    resp = client.post("/api/quests/12345/complete", headers=auth(user))

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_inactive_user_is_forbidden(client, make_user):
    user = make_user(is_active=False)

    resp = client.post("/api/quests/generate", headers=auth(user))

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"


def test_login_generates_and_completes_login_quest(client, make_user):
    user = make_user()

    resp = client.post("/api/accounts/login", headers=auth(user))

    assert resp.status_code == 200
    quests = resp.json()["data"]["quests"]
    login = next(q for q in quests if q["type"] == "LOGIN")
    assert login["is_completed"] is True
    balance = client.get("/api/credits/balance", headers=auth(user)).json()["data"]
    assert balance["total_credits"] == 1


def test_daily_quests_flow(client, make_user):
    user = make_user()

    daily = client.get("/api/quests/daily", headers=auth(user)).json()["data"]
    assert daily["total"] == 4
    assert daily["completed"] == 0

    survey = next(q for q in daily["quests"] if q["type"] == "SURVEY")
    done = client.post(
        f"/api/quests/{survey['id']}/complete",
        json={"metadata": {"source": "test"}, "notes": "finished"},
        headers=auth(user),
    )
    assert done.status_code == 200
    assert done.json()["data"]["rewards"]["credits"] == 3
    assert done.json()["data"]["quest"]["metadata"]["completed_by"] == "manual"

    again = client.post(f"/api/quests/{survey['id']}/complete", headers=auth(user))
    assert again.status_code == 404

    triggered = client.post("/api/quests/trigger", json={"quest_type": "LOGIN"}, headers=auth(user)).json()["data"]
    assert next(q for q in triggered["quests"] if q["type"] == "LOGIN")["is_completed"] is True

    stats = client.get("/api/quests/stats", headers=auth(user)).json()["data"]
    assert stats["today"]["completed"] == 2

    board = client.get("/api/quests/leaderboard?period=daily", headers=auth(user)).json()["data"]
    assert board["leaderboard"][0]["completed_quests"] == 2
    assert client.get("/api/quests/leaderboard?period=yearly", headers=auth(user)).status_code == 422


def test_simulation_flow_over_http(client, make_user):
    user = make_user(credits=3)
    headers = auth(user)

    scenarios = client.get("/api/simulations/scenarios", headers=headers).json()["data"]
    assert [s["id"] for s in scenarios["scenarios"]] == ["two_step"]

    started = client.post("/api/simulations/start", json={"simulation_id": "two_step"}, headers=headers).json()["data"]
    session_id = started["session_id"]

    step = client.post(
        f"/api/simulations/{session_id}/interact",
        json={"quest_id": "q1", "interaction_type": "dialogue", "user_input": {"choice": "Great answer"}},
        headers=headers,
    )
    assert step.status_code == 200
    assert step.json()["data"]["chapter_changed"] is True

    wrong = client.post(
        f"/api/simulations/{session_id}/interact",
        json={"quest_id": "q1", "interaction_type": "dialogue", "user_input": {}},
        headers=headers,
    )
    assert wrong.status_code == 400
    assert wrong.json()["error"]["code"] == "INVALID_ARGUMENT"

    client.post(
        f"/api/simulations/{session_id}/interact",
        json={"quest_id": "q2", "interaction_type": "decision", "user_input": {"choice": "Check data quality first"}},
        headers=headers,
    )
    replay = client.post(
        f"/api/simulations/{session_id}/interact",
        json={"quest_id": "q2", "interaction_type": "decision", "user_input": {"choice": "Check data quality first"}},
        headers=headers,
    )
    assert replay.status_code == 409
    assert replay.json()["error"]["code"] == "INVALID_STATE"
    done = client.post(f"/api/simulations/{session_id}/complete", headers=headers)
    assert done.status_code == 200
    result = done.json()["data"]["result"]
    assert result["grade"] == "A+"

    assert client.get(f"/api/simulations/results/{result['id']}", headers=headers).json()["data"]["final_score"] == 50
    sessions = client.get("/api/simulations/sessions?status=completed", headers=headers).json()["data"]
    assert sessions["pagination"]["total"] == 1
    balance = client.get("/api/credits/balance", headers=headers).json()["data"]
    assert balance["total_credits"] == 4


def test_roadmap_endpoints(client, make_user):
    user = make_user()
    headers = auth(user)

    created = client.post(
        "/api/roadmaps",
        json={"title": "Analyst path", "phases": [{"title": "Basics", "milestones": ["SQL", "Excel"]}]},
        headers=headers,
    )
    assert created.status_code == 200

    missing = client.put("/api/roadmaps/milestones/9999", json={"is_completed": True}, headers=headers)
    assert missing.status_code == 404
