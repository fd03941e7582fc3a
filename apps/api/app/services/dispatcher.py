"""Hourly auto-publish dispatch.

Each invocation maps the current UTC hour to a time slot, finds the clients
whose day pair publishes today in that slot, and runs them one at a time:
select a combination, create the content item, mark the combination used and
hand the item to the content pipeline. Every client commits on its own; one
client failing never stops the batch.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from packages.scheduling import (
    DAY_NAMES,
    day_pair_includes,
    same_utc_hour,
    slot_index_for_hour,
    sunday_based_weekday,
    time_slot_label,
)

from ..models import (
    PUBLISHABLE_SUBSCRIPTIONS,
    Client,
    ClientStatus,
    ContentItem,
    ContentItemStatus,
    RunLogStatus,
)
from ..schemas import DebugClientRow, DispatchDebugResponse, DispatchResult, DispatchSummary
from ..settings import settings
from .clients import SchedulingError
from .combination_rotator import mark_combination_used, select_next_combination
from .pipeline import ContentPipeline, run_content_pipeline
from .run_log import write_run_log
from .run_marker import claim_hourly_run, release_hourly_run

logger = logging.getLogger(__name__)

HOURLY_ACTION = "cron_hourly_publish"
FORCE_ACTION = "manual_force_run"
NO_COMBINATION_ERROR = "No active PAA questions or service locations available"

Sleeper = Callable[[float], None]


class NoEligibleClientsError(SchedulingError):
    pass


def utcnow() -> datetime:
    return datetime.now(UTC)


def _normalize(now: datetime | None) -> datetime:
    if now is None:
        return utcnow()
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


def _eligible_filter() -> tuple[object, ...]:
    return (
        Client.deleted_at.is_(None),
        Client.status == ClientStatus.ACTIVE,
        Client.auto_schedule_enabled.is_(True),
        Client.subscription_status.in_(PUBLISHABLE_SUBSCRIPTIONS),
    )


def skip_reasons(client: Client, now: datetime, slot_index: int | None) -> list[str]:
    """Why ``client`` would not be dispatched at ``now``. Empty means due."""
    reasons: list[str] = []
    if client.status != ClientStatus.ACTIVE:
        reasons.append(f"status is {client.status.value}")
    if not client.auto_schedule_enabled:
        reasons.append("auto-schedule disabled")
    if client.subscription_status not in PUBLISHABLE_SUBSCRIPTIONS:
        reasons.append(f"subscription is {client.subscription_status.value}")
    if client.schedule_day_pair is None or client.schedule_time_slot is None:
        reasons.append("no slot assigned")
        return reasons
    if slot_index is None:
        reasons.append(f"{now.hour:02d}:00 UTC is not a publish hour")
    elif client.schedule_time_slot != slot_index:
        reasons.append(f"slot is {time_slot_label(client.schedule_time_slot)}, not {time_slot_label(slot_index)}")
    weekday = sunday_based_weekday(now.date())
    if not day_pair_includes(client.schedule_day_pair, weekday, client.auto_schedule_frequency):
        reasons.append(f"{DAY_NAMES[weekday]} is not a publish day for {client.schedule_day_pair.value}")
    if same_utc_hour(client.last_auto_scheduled_at, now):
        reasons.append("already dispatched this hour")
    return reasons


def find_due_clients(db: Session, now: datetime, slot_index: int) -> list[Client]:
    candidates = db.scalars(
        select(Client)
        .where(*_eligible_filter(), Client.schedule_time_slot == slot_index, Client.schedule_day_pair.is_not(None))
        .order_by(Client.created_at.asc(), Client.id.asc())
    ).all()
    return [client for client in candidates if not skip_reasons(client, now, slot_index)]


def _fail_item(db: Session, item_id: uuid.UUID, exc: Exception) -> None:
    item = db.get(ContentItem, item_id)
    if item is None:
        return
    item.status = ContentItemStatus.FAILED
    item.pipeline_step = "error"
    item.last_error = str(exc)
    db.commit()


def dispatch_client(
    db: Session,
    client_id: uuid.UUID,
    now: datetime,
    pipeline: ContentPipeline = run_content_pipeline,
    scheduled: bool = True,
) -> DispatchResult:
    """Run one client through selection, content creation and the pipeline.

    Exceptions are recorded on the returned result, never raised.
    """
    client = db.get(Client, client_id)
    client_name = client.business_name if client is not None else ""
    item_id: uuid.UUID | None = None
    try:
        if client is None:
            raise SchedulingError(f"client not found: {client_id}")

        selection = select_next_combination(db, client_id)
        if selection is None:
            logger.warning("Client %s has nothing to publish: %s", client_id, NO_COMBINATION_ERROR)
            return DispatchResult(client_id=client_id, client_name=client_name, success=False, error=NO_COMBINATION_ERROR)

        item = ContentItem(
            client_id=client_id,
            client_paa_id=selection.question.id,
            service_location_id=selection.location.id,
            paa_question=selection.rendered_question,
            scheduled_date=now.date(),
            scheduled_time=(
                time_slot_label(client.schedule_time_slot) if client.schedule_time_slot is not None else None
            ),
            status=ContentItemStatus.GENERATING,
            pipeline_step="queued",
            priority=1,
        )
        db.add(item)
        db.commit()
        item_id = item.id

        mark_combination_used(db, client_id, selection.question.id, selection.location.id, now=now)
        if scheduled:
            client.last_auto_scheduled_at = now
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.exception("Dispatch failed for client %s", client_id)
        if item_id is not None:
            _fail_item(db, item_id, exc)
        return DispatchResult(
            client_id=client_id,
            client_name=client_name,
            success=False,
            content_item_id=item_id,
            error=str(exc),
        )

    result = DispatchResult(
        client_id=client_id,
        client_name=client_name,
        success=True,
        content_item_id=item_id,
        paa_question=selection.rendered_question,
        location=selection.location.display,
        is_recycling=selection.is_recycling,
        is_fallback=selection.is_fallback,
    )
    try:
        pipeline(db, item_id)
    except Exception as exc:
        db.rollback()
        logger.exception("Content pipeline failed for client %s item %s", client_id, item_id)
        _fail_item(db, item_id, exc)
        return result.model_copy(update={"success": False, "error": str(exc)})

    logger.info("Dispatched client %s item %s", client_id, item_id)
    return result


def _run_batch(
    db: Session,
    client_ids: list[uuid.UUID],
    now: datetime,
    pipeline: ContentPipeline,
    sleep: Sleeper,
    delay_seconds: float,
    scheduled: bool,
) -> list[DispatchResult]:
    results: list[DispatchResult] = []
    for index, client_id in enumerate(client_ids):
        if index and delay_seconds > 0:
            sleep(delay_seconds)
        results.append(dispatch_client(db, client_id, now, pipeline=pipeline, scheduled=scheduled))
    return results


def _summarize(
    results: list[DispatchResult],
    started: float,
    day: str,
    slot_index: int | None,
) -> DispatchSummary:
    successful = sum(1 for row in results if row.success)
    return DispatchSummary(
        time_slot=time_slot_label(slot_index) if slot_index is not None else None,
        slot_index=slot_index,
        day=day,
        processed=len(results),
        successful=successful,
        failed=len(results) - successful,
        results=results,
        duration_ms=int((time.monotonic() - started) * 1000),
    )


def _log_batch(db: Session, action: str, summary: DispatchSummary, started_at: datetime) -> None:
    write_run_log(
        db,
        client_id=summary.results[0].client_id,
        action=action,
        status=RunLogStatus.SUCCESS if summary.failed == 0 else RunLogStatus.FAILED,
        started_at=started_at,
        response=summary.model_dump(mode="json", exclude={"success", "message", "skipped_reason"}),
    )
    db.commit()


def _log_batch_failure(db: Session, action: str, exc: Exception, started_at: datetime, detail: dict[str, object]) -> None:
    try:
        db.rollback()
        anchor = db.scalar(
            select(Client.id)
            .where(Client.deleted_at.is_(None), Client.status == ClientStatus.ACTIVE, Client.auto_schedule_enabled.is_(True))
            .limit(1)
        )
        if anchor is None:
            return
        write_run_log(
            db,
            client_id=anchor,
            action=action,
            status=RunLogStatus.FAILED,
            started_at=started_at,
            response={**detail, "error": str(exc)},
            error=str(exc),
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Could not record failed %s run", action)


def run_hourly_dispatch(
    db: Session,
    now: datetime | None = None,
    pipeline: ContentPipeline = run_content_pipeline,
    sleep: Sleeper = time.sleep,
    delay_seconds: float | None = None,
) -> DispatchSummary:
    now = _normalize(now)
    started = time.monotonic()
    started_at = utcnow()
    day = DAY_NAMES[sunday_based_weekday(now.date())]
    slot_index = slot_index_for_hour(now.hour)
    if slot_index is None:
        return DispatchSummary(
            day=day,
            skipped_reason="not_a_slot_hour",
            message=f"{now.hour:02d}:00 UTC is not a publish time slot",
        )

    label = time_slot_label(slot_index)
    try:
        due = find_due_clients(db, now, slot_index)
        if not due:
            logger.info("No clients scheduled for %s at %s UTC", day, label)
            return DispatchSummary(
                time_slot=label,
                slot_index=slot_index,
                day=day,
                skipped_reason="no_due_clients",
                message=f"No clients scheduled for {day} at {label} UTC",
            )

        logger.info("Hourly dispatch for %s at %s UTC: %s clients due", day, label, len(due))
        client_ids = [client.id for client in due]
        results = _run_batch(
            db,
            client_ids,
            now,
            pipeline=pipeline,
            sleep=sleep,
            delay_seconds=settings.dispatch_client_delay_seconds if delay_seconds is None else delay_seconds,
            scheduled=True,
        )
        summary = _summarize(results, started, day, slot_index)
        _log_batch(db, HOURLY_ACTION, summary, started_at)
    except Exception as exc:
        logger.exception("Hourly dispatch failed for %s at %s UTC", day, label)
        _log_batch_failure(db, HOURLY_ACTION, exc, started_at, {"time_slot": label, "slot_index": slot_index, "day": day})
        raise

    logger.info(
        "Hourly dispatch finished: %s processed, %s successful, %s failed",
        summary.processed,
        summary.successful,
        summary.failed,
    )
    return summary


def force_dispatch(
    db: Session,
    client_id: uuid.UUID | None = None,
    now: datetime | None = None,
    pipeline: ContentPipeline = run_content_pipeline,
    sleep: Sleeper = time.sleep,
    delay_seconds: float | None = None,
) -> DispatchSummary:
    """Run the per-client routine now for one eligible client, or all of them, ignoring slot and day."""
    now = _normalize(now)
    started = time.monotonic()
    started_at = utcnow()
    day = DAY_NAMES[sunday_based_weekday(now.date())]

    stmt = select(Client.id).where(*_eligible_filter()).order_by(Client.created_at.asc(), Client.id.asc())
    if client_id is not None:
        stmt = stmt.where(Client.id == client_id)
    client_ids = list(db.scalars(stmt).all())
    if not client_ids:
        raise NoEligibleClientsError(
            "Client not found or not eligible" if client_id is not None else "No eligible clients found"
        )

    logger.info("Force run for %s clients", len(client_ids))
    try:
        results = _run_batch(
            db,
            client_ids,
            now,
            pipeline=pipeline,
            sleep=sleep,
            delay_seconds=settings.dispatch_client_delay_seconds if delay_seconds is None else delay_seconds,
            scheduled=False,
        )
        summary = _summarize(results, started, day, slot_index_for_hour(now.hour))
        _log_batch(db, FORCE_ACTION, summary, started_at)
    except Exception as exc:
        logger.exception("Force run failed")
        _log_batch_failure(db, FORCE_ACTION, exc, started_at, {"client_id": str(client_id) if client_id else None})
        raise
    return summary


def debug_dispatch(db: Session, now: datetime | None = None) -> DispatchDebugResponse:
    now = _normalize(now)
    weekday = sunday_based_weekday(now.date())
    slot_index = slot_index_for_hour(now.hour)
    clients = db.scalars(
        select(Client).where(Client.deleted_at.is_(None)).order_by(Client.created_at.asc(), Client.id.asc())
    ).all()
    rows: list[DebugClientRow] = []
    for client in clients:
        reasons = skip_reasons(client, now, slot_index)
        rows.append(
            DebugClientRow(
                client_id=client.id,
                business_name=client.business_name,
                day_pair=client.schedule_day_pair,
                time_slot=client.schedule_time_slot,
                time_slot_label=(
                    time_slot_label(client.schedule_time_slot) if client.schedule_time_slot is not None else None
                ),
                frequency=client.auto_schedule_frequency,
                subscription_status=client.subscription_status,
                last_auto_scheduled_at=client.last_auto_scheduled_at,
                would_run=not reasons,
                reasons=reasons,
            )
        )
    return DispatchDebugResponse(
        now=now,
        day=DAY_NAMES[weekday],
        weekday=weekday,
        slot_index=slot_index,
        time_slot=time_slot_label(slot_index) if slot_index is not None else None,
        would_run=sum(1 for row in rows if row.would_run),
        clients=rows,
    )


def trigger_hourly_dispatch(
    db: Session,
    now: datetime | None = None,
    pipeline: ContentPipeline = run_content_pipeline,
    sleep: Sleeper = time.sleep,
) -> DispatchSummary:
    """Entry point for the cron endpoint and the beat task: claims the hour, then dispatches."""
    now = _normalize(now)
    if slot_index_for_hour(now.hour) is not None and not claim_hourly_run(now):
        logger.info("Hourly dispatch for %s already ran", now.strftime("%Y-%m-%d %H:00"))
        slot_index = slot_index_for_hour(now.hour)
        return DispatchSummary(
            time_slot=time_slot_label(slot_index),
            slot_index=slot_index,
            day=DAY_NAMES[sunday_based_weekday(now.date())],
            skipped_reason="already_ran",
            message="Hourly dispatch already ran for this hour",
        )
    try:
        return run_hourly_dispatch(db, now=now, pipeline=pipeline, sleep=sleep)
    except Exception:
        release_hourly_run(now)
        raise
