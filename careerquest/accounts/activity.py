"""
Activity log.

Rows ride along in the caller's transaction; whoever commits the business
write commits the activity row with it. Recording never raises.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from careerquest.accounts.models import ActivityLog

logger = logging.getLogger(__name__)


def record_activity(
    db: Session,
    user_id: int,
    action: str,
    description: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> None:
    try:
        db.add(ActivityLog(
            user_id=user_id,
            action=action,
            description=description,
            details=metadata or {},
        ))
    except SQLAlchemyError as e:
        logger.warning(f"[ACTIVITY] failed user={user_id} action={action} error={e}")
