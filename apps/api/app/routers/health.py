from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import APIRouter, HTTPException, status

from ..db import check_db_health
from ..redis_client import check_redis_health
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _probe(name: str, check: Callable[[], object]) -> str:
    try:
        check()
    except Exception:
        logger.warning("Readiness probe %s failed", name, exc_info=True)
        return "down"
    return "ok"


def _pipeline_state() -> str:
    if settings.pipeline_mode != "live":
        return settings.pipeline_mode
    return "ok" if settings.pipeline_url else "down"


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "service": "postcadence-api"}


@router.get("/ready")
def ready() -> dict[str, object]:
    """Database and Redis reachability plus the content pipeline hand-off config."""
    checks = {
        "db": _probe("db", check_db_health),
        "redis": _probe("redis", check_redis_health),
        "pipeline": _pipeline_state(),
    }
    body = {"env": settings.app_env, "checks": checks}
    if "down" in checks.values():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail={"status": "not_ready", **body})
    return {"status": "ready", **body}


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz/db")
def healthz_db() -> dict[str, str]:
    if _probe("db", check_db_health) == "down":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="database unavailable")
    return {"status": "ok"}
