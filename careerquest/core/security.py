from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import os

from jose import jwt, JWTError

from careerquest.core.config import ENVIRONMENT

logger = logging.getLogger(__name__)

# ======================
# JWT
# ======================
# Tokens are issued by the identity service; this service only verifies them.

SECRET_KEY = os.getenv("SECRET_KEY", os.getenv("JWT_SECRET_KEY", ""))
if not SECRET_KEY:
    # In production, require a secret; for local dev, use a default (UNSAFE for prod)
    if ENVIRONMENT == "production":
        raise RuntimeError("SECRET_KEY or JWT_SECRET_KEY env var is required in production")
    SECRET_KEY = "dev-secret-key-CHANGE-IN-PRODUCTION-12345678901234567890"
    logger.warning("[AUTH] Using default SECRET_KEY for development. DO NOT USE IN PRODUCTION!")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("[AUTH] Token expired")
        return None
    except JWTError as e:
        logger.info(f"[AUTH] JWT decode error: {type(e).__name__}")
        return None
