from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from packages.scheduling import CapacityReport

from ..auth import RequestContext, get_request_context, require_role
from ..db import get_db
from ..models import Role
from ..schemas import (
    FixConflictsResponse,
    MonitoringRunsResponse,
    RunLogResponse,
    ScheduleConflictsResponse,
)
from ..services.audit import write_audit_log
from ..services.run_log import list_recent_runs, run_stats
from ..services.slot_allocator import detect_schedule_conflicts, fix_all_conflicts, get_capacity

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/schedule-conflicts", response_model=ScheduleConflictsResponse)
def get_schedule_conflicts(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ScheduleConflictsResponse:
    require_role(context, Role.ADMIN)
    conflicts = detect_schedule_conflicts(db)
    affected = {client.client_id for conflict in conflicts for client in conflict.clients}
    return ScheduleConflictsResponse(
        has_conflicts=bool(conflicts),
        total_conflicts=len(conflicts),
        affected_clients=len(affected),
        conflicts=conflicts,
    )


@router.post("/schedule-conflicts", response_model=FixConflictsResponse)
def fix_schedule_conflicts(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> FixConflictsResponse:
    require_role(context, Role.ADMIN)
    outcome = fix_all_conflicts(db)
    write_audit_log(
        db=db,
        context=context,
        action="autoschedule.conflicts_fixed",
        target_type="schedule",
        target_id="grid",
        metadata_json={
            "conflicts_found": outcome["conflicts_found"],
            "clients_reassigned": outcome["clients_reassigned"],
        },
    )
    db.commit()
    return FixConflictsResponse.model_validate(outcome)


@router.get("/scheduling/capacity", response_model=CapacityReport)
def scheduling_capacity(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> CapacityReport:
    require_role(context, Role.ADMIN)
    return get_capacity(db)


@router.get("/monitoring/runs", response_model=MonitoringRunsResponse)
def monitoring_runs(
    action: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> MonitoringRunsResponse:
    require_role(context, Role.ADMIN)
    rows = list_recent_runs(db, action=action, limit=limit)
    return MonitoringRunsResponse(
        stats=run_stats(db, action=action),
        runs=[
            RunLogResponse(
                id=row.id,
                client_id=row.client_id,
                action=row.action,
                status=row.status,
                error_message=row.error_message,
                response_json=row.response_json,
                started_at=row.started_at,
                completed_at=row.completed_at,
                duration_ms=row.duration_ms,
            )
            for row in rows
        ],
    )
