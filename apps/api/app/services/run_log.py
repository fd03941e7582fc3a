from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..models import RunLog, RunLogStatus


def write_run_log(
    db: Session,
    client_id: uuid.UUID,
    action: str,
    status: RunLogStatus,
    started_at: datetime,
    response: dict[str, Any] | None = None,
    error: str | None = None,
    completed_at: datetime | None = None,
) -> RunLog:
    completed_at = completed_at or datetime.now(UTC)
    entry = RunLog(
        client_id=client_id,
        action=action,
        status=status,
        error_message=error,
        response_json=response or {},
        started_at=started_at,
        completed_at=completed_at,
        duration_ms=max(0, int((completed_at - started_at).total_seconds() * 1000)),
    )
    db.add(entry)
    db.flush()
    return entry


def list_recent_runs(db: Session, action: str | None = None, limit: int = 50) -> list[RunLog]:
    stmt = select(RunLog).order_by(desc(RunLog.created_at), desc(RunLog.started_at)).limit(limit)
    if action:
        stmt = stmt.where(RunLog.action == action)
    return list(db.scalars(stmt).all())


def run_stats(db: Session, since: datetime | None = None, action: str | None = None) -> dict[str, Any]:
    since = since or datetime.now(UTC) - timedelta(hours=24)
    stmt = (
        select(RunLog.status, func.count(RunLog.id), func.avg(RunLog.duration_ms))
        .where(RunLog.started_at >= since)
        .group_by(RunLog.status)
    )
    if action:
        stmt = stmt.where(RunLog.action == action)

    counts = {item.value: 0 for item in RunLogStatus}
    durations: list[tuple[int, float]] = []
    for status, count, avg_duration in db.execute(stmt).all():
        counts[RunLogStatus(status).value] = int(count)
        if avg_duration is not None:
            durations.append((int(count), float(avg_duration)))

    total = sum(counts.values())
    weighted = sum(count * avg for count, avg in durations)
    return {
        "since": since.isoformat(),
        "total_runs": total,
        "successful_runs": counts[RunLogStatus.SUCCESS.value],
        "failed_runs": counts[RunLogStatus.FAILED.value],
        "avg_duration_ms": int(weighted / total) if total else 0,
    }
