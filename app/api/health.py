import logging
import re
from datetime import UTC, datetime
from typing import cast

import redis
from fastapi import APIRouter, HTTPException
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from app.celery_app import get_celery_config
from app.config import settings
from app.db import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_QUEUE_POOL_STATUS_PATTERN = re.compile(
    r"Pool size:\s*(?P<pool_size>-?\d+)\s+"
    r"Connections in pool:\s*(?P<checked_in>-?\d+)\s+"
    r"Current Overflow:\s*(?P<overflow>-?\d+)\s+"
    r"Current Checked out connections:\s*(?P<checked_out>-?\d+)"
)


def _check_database() -> bool:
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as exc:
        logger.warning("Health check database check failed: %s", exc)
        return False


def _check_broker() -> bool:
    try:
        client = redis.from_url(get_celery_config()["broker_url"], socket_timeout=2)
        client.ping()
        return True
    except redis.RedisError as exc:
        logger.warning("Health check broker check failed: %s", exc)
        return False


@router.get("")
def health_check() -> dict:
    checks = {"db": _check_database()}
    # The broker only matters when emails are queued through Celery.
    if settings.notifier_backend == "celery":
        checks["broker"] = _check_broker()
    return {
        "status": "ok" if all(checks.values()) else "degraded",
        "checks": checks,
        "backends": {
            "record_store": settings.record_store_backend,
            "identity": settings.identity_backend,
            "notifier": settings.notifier_backend,
        },
    }


@router.get("/ready")
def readiness() -> dict[str, str]:
    return {
        "status": "ready",
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _get_db_engine() -> Engine:
    bind = SessionLocal.kw.get("bind")
    if bind is None:
        raise RuntimeError("SessionLocal is not bound to a database engine")
    return cast(Engine, bind)


def _parse_pool_status(status: str) -> dict[str, int] | None:
    match = _QUEUE_POOL_STATUS_PATTERN.search(status)
    if match is None:
        return None
    return {
        "pool_size": int(match.group("pool_size")),
        "checked_in": int(match.group("checked_in")),
        "checked_out": int(match.group("checked_out")),
        "overflow": int(match.group("overflow")),
    }


@router.get("/db-pool")
def db_pool_status() -> dict[str, int]:
    engine = _get_db_engine()
    metrics = _parse_pool_status(engine.pool.status())
    if metrics is None:
        raise HTTPException(status_code=500, detail="Unable to parse database pool status")
    return metrics
