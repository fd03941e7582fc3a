from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context, require_role, verify_cron_secret
from ..db import get_db
from ..models import Role
from ..schemas import DispatchDebugResponse, DispatchSummary, ForceRunRequest
from ..services.audit import write_audit_log
from ..services.dispatcher import NoEligibleClientsError, debug_dispatch, force_dispatch, trigger_hourly_dispatch

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/hourly-publish", response_model=DispatchSummary, dependencies=[Depends(verify_cron_secret)])
@router.post("/hourly-publish", response_model=DispatchSummary, dependencies=[Depends(verify_cron_secret)])
def hourly_publish(db: Session = Depends(get_db)) -> DispatchSummary:
    try:
        return trigger_hourly_dispatch(db)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"success": False, "error": str(exc)},
        ) from exc


@router.post("/hourly-publish/force", response_model=DispatchSummary)
def force_hourly_publish(
    payload: ForceRunRequest | None = None,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> DispatchSummary:
    require_role(context, Role.ADMIN)
    client_id = payload.client_id if payload is not None else None
    try:
        summary = force_dispatch(db, client_id=client_id)
    except NoEligibleClientsError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    write_audit_log(
        db=db,
        context=context,
        action="autoschedule.force_run",
        target_type="client",
        target_id=str(client_id) if client_id else "*",
        metadata_json={"processed": summary.processed, "failed": summary.failed},
    )
    db.commit()
    return summary


@router.get(
    "/hourly-publish/debug",
    response_model=DispatchDebugResponse,
    dependencies=[Depends(verify_cron_secret)],
)
def hourly_publish_debug(db: Session = Depends(get_db)) -> DispatchDebugResponse:
    return debug_dispatch(db)
