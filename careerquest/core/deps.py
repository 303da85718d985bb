import logging

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from careerquest.accounts.models import User
from careerquest.core.cache import CacheStore, get_cache
from careerquest.core.security import decode_access_token
from careerquest.credits.ledger import CreditLedger
from careerquest.db.session import get_db
from careerquest.quests.engine import QuestEngine
from careerquest.simulations.engine import SimulationEngine
from careerquest.simulations.scenario import ScenarioRepository, get_scenarios

logger = logging.getLogger(__name__)


def _extract_token(request: Request):
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    # Browser clients send the same token as a cookie.
    token = request.cookies.get("access_token")
    if token and token.lower().startswith("bearer "):
        token = token[7:].strip()
    return token


def get_current_user(
    request: Request,
    db: Session = Depends(get_db)
) -> User:
    token = _extract_token(request)
    if not token:
        logger.info(f"[AUTH] reject reason=missing_token path={request.url.path}")
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = decode_access_token(token)
    if not payload:
        logger.info(f"[AUTH] reject reason=invalid_token path={request.url.path}")
        raise HTTPException(status_code=401, detail="Invalid token")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        logger.info(f"[AUTH] reject reason=bad_subject path={request.url.path}")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.info(f"[AUTH] reject reason=user_not_found user={user_id} path={request.url.path}")
        raise HTTPException(status_code=401, detail="User not found")

    # Inactive users still get through; the engines answer them with 403.
    return user


def get_ledger(db: Session = Depends(get_db)) -> CreditLedger:
    return CreditLedger(db)


def get_quest_engine(
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
) -> QuestEngine:
    return QuestEngine(db, cache, ledger=CreditLedger(db))


def get_simulation_engine(
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
    scenarios: ScenarioRepository = Depends(get_scenarios),
) -> SimulationEngine:
    ledger = CreditLedger(db)
    return SimulationEngine(
        db,
        ledger=ledger,
        scenarios=scenarios,
        quests=QuestEngine(db, cache, ledger=ledger),
    )
