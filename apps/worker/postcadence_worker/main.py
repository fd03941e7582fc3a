import logging
import os
import uuid

from celery import Celery
from celery.schedules import crontab

from app.db import SessionLocal
from app.services.dispatcher import NoEligibleClientsError, force_dispatch, trigger_hourly_dispatch

logger = logging.getLogger(__name__)

broker_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
app = Celery("postcadence-worker", broker=broker_url, backend=broker_url)
app.conf.timezone = "UTC"
app.conf.beat_schedule = {
    "autoschedule-hourly-tick": {
        "task": "worker.autoschedule.hourly_tick",
        "schedule": crontab(minute=0),
    },
}


@app.task(name="worker.health.ping")
def ping() -> str:
    return "pong"


@app.task(name="worker.autoschedule.hourly_tick")
def hourly_tick() -> dict[str, object]:
    with SessionLocal() as db:
        summary = trigger_hourly_dispatch(db)
    logger.info(
        "Hourly tick: slot=%s processed=%s failed=%s skipped=%s",
        summary.time_slot,
        summary.processed,
        summary.failed,
        summary.skipped_reason,
    )
    return summary.model_dump(mode="json")


@app.task(name="worker.autoschedule.force_client")
def force_client(client_id: str | None = None) -> dict[str, object]:
    target = uuid.UUID(client_id) if client_id else None
    with SessionLocal() as db:
        try:
            summary = force_dispatch(db, client_id=target)
        except NoEligibleClientsError as exc:
            logger.warning("Force run skipped: %s", exc)
            return {"success": False, "error": str(exc)}
    return summary.model_dump(mode="json")
