"""
health probes

- /health: overall status with database and nonce store checks
- /health/database, /health/nonce-store: single checks

overall status is "healthy" when every check passes, "unhealthy" otherwise.
"""

import logging
import time
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from wallet_auth.core.config import settings
from wallet_auth.db.session import get_db
from wallet_auth.services.nonce_manager import NonceManager, get_nonce_manager

logger = logging.getLogger(__name__)

router = APIRouter()
group_tags: List[str] = ["Health"]

_started_at = time.time()


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


def check_database(db: Session) -> Dict[str, Any]:
    start = time.time()
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "response_time_ms": _elapsed_ms(start), "error": None}
    except Exception as e:
        logger.warning("database health check failed: %s", e)
        return {"status": "unhealthy", "response_time_ms": _elapsed_ms(start), "error": type(e).__name__}


def check_nonce_store(nonce_manager: NonceManager) -> Dict[str, Any]:
    start = time.time()
    try:
        ok = nonce_manager.store.ping()
        return {
            "status": "healthy" if ok else "degraded",
            "backend": type(nonce_manager.store).__name__,
            "response_time_ms": _elapsed_ms(start),
            "error": None,
        }
    except Exception as e:
        logger.warning("nonce store health check failed: %s", e)
        return {
            "status": "unhealthy",
            "backend": type(nonce_manager.store).__name__,
            "response_time_ms": _elapsed_ms(start),
            "error": type(e).__name__,
        }


@router.get("/health", tags=group_tags)
def health(
    db: Session = Depends(get_db),
    nonce_manager: NonceManager = Depends(get_nonce_manager),
) -> Dict[str, Any]:
    start = time.time()
    checks = {
        "database": check_database(db),
        "nonce_store": check_nonce_store(nonce_manager),
    }
    overall = "healthy" if all(c["status"] == "healthy" for c in checks.values()) else "unhealthy"
    if overall != "healthy":
        logger.warning("health check: %s", overall)
    return {
        "status": overall,
        "version": settings.VERSION,
        "uptime_seconds": int(time.time() - _started_at),
        "response_time_ms": _elapsed_ms(start),
        "checks": checks,
    }


@router.get("/health/database", tags=group_tags)
def database_health(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return check_database(db)


@router.get("/health/nonce-store", tags=group_tags)
def nonce_store_health(nonce_manager: NonceManager = Depends(get_nonce_manager)) -> Dict[str, Any]:
    return check_nonce_store(nonce_manager)
