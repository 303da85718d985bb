import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)


def _build_database_url() -> str:
    """
    Determine the database URL.

    - Prefer DATABASE_URL from the environment (production).
    - Fallback to a local SQLite file for development.
    - Normalize legacy postgres:// URLs to SQLAlchemy's postgresql+psycopg2://.
    """
    url = os.getenv("DATABASE_URL", "sqlite:///./careerquest.db").strip()

    if url.startswith("postgres://"):
        # SQLAlchemy 2.x expects a driver-qualified URL
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)

    return url


def build_engine(url: str, **kwargs):
    connect_args = {}
    if url.startswith("sqlite"):
        # Needed for SQLite when used with FastAPI in a single process
        connect_args = {"check_same_thread": False}
    return create_engine(url, connect_args=connect_args, future=True, **kwargs)


DATABASE_URL = _build_database_url()

engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

logger.info(
    f"[DB] Using database backend={engine.url.get_backend_name()} "
    f"url={engine.url.render_as_string(hide_password=True)}"
)
