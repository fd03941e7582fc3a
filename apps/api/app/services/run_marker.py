from __future__ import annotations

import logging
from datetime import datetime

from redis.exceptions import RedisError

from ..redis_client import get_redis_client
from ..settings import settings

logger = logging.getLogger(__name__)


def hourly_marker_key(now: datetime) -> str:
    return f"autoschedule:hourly:{now.strftime('%Y%m%d%H')}"


def claim_hourly_run(now: datetime) -> bool:
    """Claim the dispatch run for ``now``'s UTC hour. False if another trigger already claimed it."""
    key = hourly_marker_key(now)
    try:
        redis = get_redis_client()
        claimed = redis.set(key, now.isoformat(), nx=True, ex=max(1, settings.hourly_marker_ttl_seconds))
    except RedisError:
        # Degrade open if Redis is unavailable.
        logger.warning("Redis unavailable, running hourly dispatch without run marker")
        return True
    return bool(claimed)


def release_hourly_run(now: datetime) -> None:
    try:
        get_redis_client().delete(hourly_marker_key(now))
    except RedisError:
        return
