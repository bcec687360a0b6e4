import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from wallet_auth.core.config import settings
from fastapi import HTTPException

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    timeout = settings.COLLABORATOR_TIMEOUT_SECONDS
    if database_url.startswith("sqlite"):
        # sqlite uses a single-file lock instead of a pool
        return {"connect_args": {"check_same_thread": False, "timeout": timeout}}
    return {
        "connect_args": {"connect_timeout": max(int(timeout), 1)},
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "pool_timeout": timeout,
    }


# Create the SQLAlchemy engine
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Create a configured "Session" class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# do not change the order of the code below
# Dependency that can be used in routes to get the session
def get_db() -> Session  |  HTTPException:
    db = SessionLocal()  # generate a new SessionLocal
    try:
        yield db
    except Exception as e:
        if isinstance(e, HTTPException):
            raise e
        else:
            logger.exception("database session error: %s", e)
            raise HTTPException(status_code=500, detail="Query data error")
    finally:
        db.close()
