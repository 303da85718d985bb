"""
Nightly quest refresh.

Run from cron shortly after 00:00 UTC:

    5 0 * * *  cd /srv/careerquest && python scripts/refresh_daily_quests.py

1. Marks every unfinished quest whose day is over as EXPIRED
2. Generates today's quests for users who logged in during the last week
"""
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from careerquest.core.cache import RedisCache
from careerquest.core.logging import setup_logging
from careerquest.db.base import SessionLocal
from careerquest.quests.engine import QuestEngine


def refresh_daily_quests():
    setup_logging()
    db = SessionLocal()

    try:
        engine = QuestEngine(db, RedisCache())
        report = engine.refresh_all()
        print(
            f"Refresh complete: processed={report.processed} failed={report.failed} expired={report.expired}",
            flush=True,
        )
        if report.failed_user_ids:
            print(f"Failed users: {report.failed_user_ids}", flush=True)
        return report
    except Exception as e:
        db.rollback()
        print(f"Error during quest refresh: {e}", flush=True)
        raise
    finally:
        db.close()


if __name__ == "__main__":
    refresh_daily_quests()
