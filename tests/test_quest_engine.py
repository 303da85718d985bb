from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from careerquest.accounts.models import CareerSurvey, User
from careerquest.accounts.service import record_login
from careerquest.core.errors import Expired, NotFound
from careerquest.credits.models import CreditTransaction, CreditTransactionType
from careerquest.quests.engine import QuestEngine, mask_name
from careerquest.quests.models import QuestStatus, QuestType, UserQuest

DAY_ONE = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
DAY_TWO = DAY_ONE + timedelta(days=1)


def _quest_of_type(quests, quest_type):
    return next(q for q in quests if q["type"] == quest_type.value)


def test_generate_daily_is_idempotent(db, make_user, cache):
    user = make_user()
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)

    first = engine.generate_daily(user.id)
    second = engine.generate_daily(user.id)

    assert [q["id"] for q in first] == [q["id"] for q in second]
    assert db.query(UserQuest).filter(UserQuest.user_id == user.id).count() == len(first)


def test_new_user_gets_one_login_and_one_survey_quest(db, make_user, cache):
    user = make_user()
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)

    quests = engine.generate_daily(user.id)

    types = [q["type"] for q in quests]
    assert len(quests) == 4
    assert types.count("LOGIN") == 1
    assert types.count("SURVEY") == 1
    assert all(q["status"] == "IN_PROGRESS" for q in quests)
    assert all(q["assigned_date"] == "2026-10-19" for q in quests)
    assert quests[0]["type"] == "LOGIN"


def test_survey_quest_not_offered_after_survey(db, make_user, cache):
    user = make_user()
    db.add(CareerSurvey(user_id=user.id, is_completed=True, completed_at=DAY_ONE))
    db.commit()

    quests = QuestEngine(db, cache, clock=lambda: DAY_ONE).generate_daily(user.id)

    assert "SURVEY" not in [q["type"] for q in quests]


def test_generation_writes_cache(db, make_user, cache):
    user = make_user()
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)

    quests = engine.generate_daily(user.id)

    key = QuestEngine.cache_key(user.id, DAY_ONE.date())
    assert cache.store[key] == quests
    assert cache.ttls[key] == 3600


def test_login_quest_pays_exactly_once(db, make_user, quests):
    user = make_user()

    record_login(db, user.id, quests)
    record_login(db, user.id, quests)

    earned = db.query(CreditTransaction).filter(
        CreditTransaction.user_id == user.id,
        CreditTransaction.type == CreditTransactionType.EARNED,
    ).all()
    assert [t.amount for t in earned] == [1]
    assert db.query(User).filter(User.id == user.id).one().credits == 1
    login = _quest_of_type(quests.today_quests(user.id), QuestType.LOGIN)
    assert login["is_completed"] is True
    assert login["status"] == "COMPLETED"


def test_login_survives_quest_generation_failure(db, make_user, cache, monkeypatch):
    user = make_user()
    quests = QuestEngine(db, cache, clock=lambda: DAY_ONE)

    def locked(user_id):
        raise OperationalError("INSERT INTO user_quests", {}, Exception("database is locked"))

    monkeypatch.setattr(quests, "generate_daily", locked)

    logged_in = record_login(db, user.id, quests)

    assert logged_in.last_login_at is not None
    assert db.query(User).filter(User.id == user.id).one().last_login_at is not None
    assert db.query(UserQuest).filter(UserQuest.user_id == user.id).count() == 0


def test_generate_daily_retries_after_losing_a_race(db, make_user, cache, monkeypatch):
    user = make_user()
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)
    original = engine._get_or_create_template
    calls = {"n": 0}

    def collides_once(blueprint):
        calls["n"] += 1
        if calls["n"] == 1:
            raise IntegrityError("INSERT INTO quests", {}, Exception("UNIQUE constraint failed"))
        return original(blueprint)

    monkeypatch.setattr(engine, "_get_or_create_template", collides_once)

    generated = engine.generate_daily(user.id)

    assert len(generated) == 4
    assert db.query(UserQuest).filter(UserQuest.user_id == user.id).count() == 4
    assert cache.get(engine.cache_key(user.id, DAY_ONE.date())) is not None


def test_progress_accumulates_until_target(db, make_user, cache):
    user = make_user()
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)
    # the exploration quest is only picked when the survey is done
    db.add(CareerSurvey(user_id=user.id, is_completed=True, completed_at=DAY_ONE))
    db.commit()
    engine.generate_daily(user.id)

    engine.update_progress(user.id, QuestType.EXPLORATION, 2)
    exploration = _quest_of_type(engine.today_quests(user.id), QuestType.EXPLORATION)
    assert exploration["progress"] == 2
    assert exploration["is_completed"] is False

    engine.update_progress(user.id, QuestType.EXPLORATION, 5)
    exploration = _quest_of_type(engine.today_quests(user.id), QuestType.EXPLORATION)
    assert exploration["progress"] == 3
    assert exploration["is_completed"] is True


def test_update_progress_never_raises(db, cache):
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)
    # unknown user: nothing to update, nothing raised
    engine.update_progress(424242, QuestType.LOGIN)


def test_complete_quest_awards_once(db, make_user, cache):
    user = make_user()
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)
    quests = engine.generate_daily(user.id)
    survey = _quest_of_type(quests, QuestType.SURVEY)

    result = engine.complete_quest(user.id, survey["id"], {"notes": "done"})

    assert result["rewards"] == {"credits": 3, "xp": 30, "badge": "first_survey"}
    assert result["quest"]["status"] == "COMPLETED"
    assert result["quest"]["metadata"]["notes"] == "done"
    with pytest.raises(NotFound):
        engine.complete_quest(user.id, survey["id"])
    assert db.query(User).filter(User.id == user.id).one().credits == 3


def test_complete_quest_of_another_user_is_not_found(db, make_user, cache):
    owner, other = make_user(), make_user()
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)
    quest_id = engine.generate_daily(owner.id)[0]["id"]

    with pytest.raises(NotFound):
        engine.complete_quest(other.id, quest_id)


def test_completing_after_expiry_marks_quest_expired(db, make_user, cache):
    user = make_user()
    quest_id = QuestEngine(db, cache, clock=lambda: DAY_ONE).generate_daily(user.id)[0]["id"]
    late = QuestEngine(db, cache, clock=lambda: DAY_TWO)

    with pytest.raises(Expired):
        late.complete_quest(user.id, quest_id)

    assert db.query(UserQuest).filter(UserQuest.id == quest_id).one().status == QuestStatus.EXPIRED
    with pytest.raises(NotFound):
        late.complete_quest(user.id, quest_id)
    assert db.query(User).filter(User.id == user.id).one().credits == 0


def test_writes_invalidate_cached_quests(db, make_user, cache):
    user = make_user()
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)
    quests = engine.generate_daily(user.id)
    key = QuestEngine.cache_key(user.id, DAY_ONE.date())
    assert key in cache.store

    engine.complete_quest(user.id, _quest_of_type(quests, QuestType.LOGIN)["id"])

    assert key not in cache.store
    assert key in cache.deleted
    fresh = engine.today_quests(user.id)
    assert _quest_of_type(fresh, QuestType.LOGIN)["is_completed"] is True
    assert cache.store[key] == fresh


def test_advance_moves_one_assignment(db, make_user, cache):
    user = make_user()
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)
    login = _quest_of_type(engine.generate_daily(user.id), QuestType.LOGIN)

    updated = engine.advance(user.id, login["id"])

    assert updated["is_completed"] is True
    with pytest.raises(NotFound):
        engine.advance(user.id, 999999)


def test_stats_cover_today_and_all_time(db, make_user, quests):
    user = make_user()
    quests.generate_daily(user.id)
    quests.update_progress(user.id, QuestType.LOGIN)

    stats = quests.stats(user.id)

    assert stats["today"] == {"total": 4, "completed": 1, "completion_rate": 25.0}
    assert stats["this_week"]["completed"] == 1
    assert stats["all_time"] == {"completed": 1, "total_xp": 10, "total_credits": 1}


def test_history_filters(db, make_user, quests):
    user = make_user()
    quests.generate_daily(user.id)
    quests.update_progress(user.id, QuestType.LOGIN)

    done = quests.history(user.id, completed=True)
    logins = quests.history(user.id, quest_type=QuestType.LOGIN)

    assert done["pagination"]["total"] == 1
    assert [q["type"] for q in logins["quests"]] == ["LOGIN"]


def test_leaderboard_masks_names(db, make_user, quests):
    alice = make_user(name="Alice")
    bob = make_user(name="Bob")
    for user in (alice, bob):
        quests.generate_daily(user.id)
    quests.update_progress(alice.id, QuestType.LOGIN)
    quests.update_progress(alice.id, QuestType.SURVEY)
    quests.update_progress(bob.id, QuestType.LOGIN)

    board = quests.leaderboard("daily")["leaderboard"]

    assert [(e["user_id"], e["completed_quests"]) for e in board] == [(alice.id, 2), (bob.id, 1)]
    assert board[0]["user_name"] == "A****"
    assert mask_name(None) == "anonymous"


def test_templates_are_created_once(db, make_user, quests):
    for _ in range(3):
        quests.generate_daily(make_user().id)

    names = [t["name"] for t in quests.templates()]
    assert len(names) == len(set(names))
    assert [t["type"] for t in quests.templates(QuestType.LOGIN)] == ["LOGIN"]


def test_refresh_expires_and_regenerates(db, make_user, cache):
    user = make_user(last_login_at=DAY_ONE)
    stale = make_user(last_login_at=DAY_ONE - timedelta(days=30))
    QuestEngine(db, cache, clock=lambda: DAY_ONE).generate_daily(user.id)

    report = QuestEngine(db, cache, clock=lambda: DAY_TWO).refresh_all(sleep=lambda s: None)

    assert report.expired == 4
    assert report.processed == 1
    assert report.failed == 0
    assert db.query(UserQuest).filter(
        UserQuest.user_id == user.id,
        UserQuest.assigned_date == DAY_TWO.date(),
    ).count() == 4
    assert db.query(UserQuest).filter(UserQuest.user_id == stale.id).count() == 0


def test_refresh_isolates_per_user_failures(db, make_user, cache, monkeypatch):
    users = [make_user(last_login_at=DAY_ONE) for _ in range(3)]
    engine = QuestEngine(db, cache, clock=lambda: DAY_ONE)
    original = engine.generate_daily
    broken = users[1].id

    def flaky(user_id):
        if user_id == broken:
            raise RuntimeError("boom")
        return original(user_id)

    monkeypatch.setattr(engine, "generate_daily", flaky)
    pauses = []

    report = engine.refresh_all(batch_size=2, pause_seconds=0.5, sleep=pauses.append)

    assert report.processed == 2
    assert report.failed_user_ids == [broken]
    assert pauses == [0.5]
    for user in (users[0], users[2]):
        assert db.query(UserQuest).filter(UserQuest.user_id == user.id).count() == 4
