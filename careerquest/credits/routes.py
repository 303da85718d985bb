from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query

from careerquest.accounts.models import User
from careerquest.core.deps import get_current_user, get_ledger
from careerquest.core.time import as_utc, utcnow
from careerquest.credits.ledger import CreditLedger

router = APIRouter(prefix="/api/credits", tags=["credits"])


@router.get("/balance")
def get_balance(
    user: User = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
):
    return {"success": True, "data": ledger.balance(user.id)}


@router.get("/transactions")
def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
):
    return {"success": True, "data": ledger.history(user.id, page=page, page_size=limit)}


@router.get("/stats")
def get_usage_stats(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user: User = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
):
    end = as_utc(end_date) or utcnow()
    start = as_utc(start_date) or end - timedelta(days=30)
    return {"success": True, "data": ledger.usage_stats(user.id, start, end)}


@router.get("/expiring")
def get_expiring(
    days: int = Query(30, ge=0, le=365),
    user: User = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
):
    return {"success": True, "data": ledger.expiring(user.id, within_days=days)}
