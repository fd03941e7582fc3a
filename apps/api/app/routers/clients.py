from __future__ import annotations

import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from packages.scheduling import next_publish_dates

from ..auth import RequestContext, get_request_context, require_role
from ..db import get_db
from ..models import Client, Role
from ..schemas import (
    AutoScheduleStatusResponse,
    AutoScheduleUpdateRequest,
    ReassignSlotResponse,
    SlotPreviewResponse,
)
from ..services.audit import write_audit_log
from ..services.clients import ClientNotFoundError, get_client
from ..services.combination_rotator import get_combination_status
from ..services.legacy_rotation import get_location_rotation_status, get_question_queue_status
from ..services.slot_allocator import (
    assign_slot,
    current_assignment,
    find_best_slot,
    get_capacity,
    reassign_slot,
)

router = APIRouter(prefix="/clients", tags=["clients"])


def _load_client(db: Session, client_id: uuid.UUID) -> Client:
    try:
        return get_client(db, client_id)
    except ClientNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="client not found") from exc


def _status_payload(db: Session, client: Client) -> AutoScheduleStatusResponse:
    slot = current_assignment(client)
    upcoming = []
    if client.auto_schedule_enabled and slot is not None:
        upcoming = next_publish_dates(slot.day_pair, datetime.now(UTC).date(), client.auto_schedule_frequency)
    return AutoScheduleStatusResponse(
        client_id=client.id,
        enabled=client.auto_schedule_enabled,
        frequency=client.auto_schedule_frequency,
        slot=slot,
        next_publish_dates=upcoming,
        last_auto_scheduled_at=client.last_auto_scheduled_at,
        combinations=get_combination_status(db, client.id),
        question_queue=get_question_queue_status(db, client.id),
        location_rotation=get_location_rotation_status(db, client.id),
        capacity=get_capacity(db),
    )


@router.get("/{client_id}/auto-schedule", response_model=AutoScheduleStatusResponse)
def get_auto_schedule(
    client_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> AutoScheduleStatusResponse:
    require_role(context, Role.MEMBER)
    client = _load_client(db, client_id)
    return _status_payload(db, client)


@router.patch("/{client_id}/auto-schedule", response_model=AutoScheduleStatusResponse)
def update_auto_schedule(
    client_id: uuid.UUID,
    payload: AutoScheduleUpdateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> AutoScheduleStatusResponse:
    require_role(context, Role.ADMIN)
    client = _load_client(db, client_id)

    if payload.frequency is not None:
        client.auto_schedule_frequency = payload.frequency
    if payload.enabled is not None:
        client.auto_schedule_enabled = payload.enabled
    db.flush()

    assigned = None
    if client.auto_schedule_enabled and current_assignment(client) is None:
        assigned = assign_slot(db, client.id)

    write_audit_log(
        db=db,
        context=context,
        action="autoschedule.updated",
        target_type="client",
        target_id=str(client.id),
        metadata_json={
            **payload.model_dump(exclude_none=True),
            "assigned_slot": assigned.model_dump(mode="json") if assigned else None,
        },
    )
    db.commit()
    db.refresh(client)
    return _status_payload(db, client)


@router.get("/{client_id}/reassign-slot", response_model=SlotPreviewResponse)
def preview_slot_reassignment(
    client_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> SlotPreviewResponse:
    require_role(context, Role.MEMBER)
    client = _load_client(db, client_id)
    return SlotPreviewResponse(
        client_id=client.id,
        current=current_assignment(client),
        suggested=find_best_slot(db, exclude_client_id=client.id),
    )


@router.post("/{client_id}/reassign-slot", response_model=ReassignSlotResponse)
def reassign_client_slot(
    client_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ReassignSlotResponse:
    require_role(context, Role.ADMIN)
    client = _load_client(db, client_id)
    previous, current = reassign_slot(db, client.id)
    write_audit_log(
        db=db,
        context=context,
        action="autoschedule.slot_reassigned",
        target_type="client",
        target_id=str(client.id),
        metadata_json={
            "previous": previous.model_dump(mode="json") if previous else None,
            "current": current.model_dump(mode="json"),
        },
    )
    db.commit()
    return ReassignSlotResponse(client_id=client.id, previous=previous, current=current)
