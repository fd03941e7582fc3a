"""Single-axis rotators: next question and next location, each least-recently-used first."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from packages.scheduling import LocationRef, QuestionRef

from ..models import ClientPAA, ServiceLocation
from .clients import get_client


def utcnow() -> datetime:
    return datetime.now(UTC)


def question_ref(row: ClientPAA) -> QuestionRef:
    return QuestionRef(
        id=row.id,
        question=row.question,
        priority=row.priority,
        used_at=row.used_at,
        is_custom=row.is_custom,
    )


def location_ref(row: ServiceLocation) -> LocationRef:
    return LocationRef(
        id=row.id,
        city=row.city,
        state=row.state,
        neighborhood=row.neighborhood,
        used_at=row.used_at,
        is_headquarters=row.is_headquarters,
    )


def _question_queue(db: Session, client_id: uuid.UUID) -> list[ClientPAA]:
    return list(
        db.scalars(
            select(ClientPAA)
            .where(ClientPAA.client_id == client_id, ClientPAA.is_active.is_(True))
            .order_by(
                ClientPAA.used_at.asc().nulls_first(),
                ClientPAA.priority.asc(),
                ClientPAA.created_at.asc(),
                ClientPAA.id.asc(),
            )
        ).all()
    )


def _location_queue(db: Session, client_id: uuid.UUID) -> list[ServiceLocation]:
    return list(
        db.scalars(
            select(ServiceLocation)
            .where(ServiceLocation.client_id == client_id, ServiceLocation.is_active.is_(True))
            .order_by(
                ServiceLocation.used_at.asc().nulls_first(),
                ServiceLocation.created_at.asc(),
                ServiceLocation.id.asc(),
            )
        ).all()
    )


def select_next_question(db: Session, client_id: uuid.UUID) -> QuestionRef | None:
    queue = _question_queue(db, client_id)
    return question_ref(queue[0]) if queue else None


def mark_question_used(db: Session, question_id: uuid.UUID, now: datetime | None = None) -> None:
    row = db.get(ClientPAA, question_id)
    if row is None:
        return
    row.used_at = now or utcnow()
    row.used_count = (row.used_count or 0) + 1
    db.flush()


def select_next_location(db: Session, client_id: uuid.UUID) -> LocationRef | None:
    queue = _location_queue(db, client_id)
    return location_ref(queue[0]) if queue else None


def mark_location_used(db: Session, location_id: uuid.UUID, now: datetime | None = None) -> None:
    row = db.get(ServiceLocation, location_id)
    if row is None:
        return
    row.used_at = now or utcnow()
    row.used_count = (row.used_count or 0) + 1
    db.flush()


def get_default_location(db: Session, client_id: uuid.UUID) -> LocationRef | None:
    """Headquarters location, else the client's own address with no location id."""
    headquarters = db.scalar(
        select(ServiceLocation)
        .where(
            ServiceLocation.client_id == client_id,
            ServiceLocation.is_active.is_(True),
            ServiceLocation.is_headquarters.is_(True),
        )
        .order_by(ServiceLocation.created_at.asc(), ServiceLocation.id.asc())
        .limit(1)
    )
    if headquarters is not None:
        return location_ref(headquarters)

    client = get_client(db, client_id)
    if not client.city or not client.state:
        return None
    return LocationRef(id=None, city=client.city, state=client.state, is_headquarters=True)


def get_question_queue_status(db: Session, client_id: uuid.UUID) -> dict[str, Any]:
    queue = _question_queue(db, client_id)
    used = sum(1 for row in queue if row.used_at is not None)
    next_question = queue[0] if queue else None
    return {
        "total_active": len(queue),
        "used": used,
        "unused": len(queue) - used,
        "custom": sum(1 for row in queue if row.is_custom),
        "next_question": next_question.question if next_question else None,
        "next_question_id": str(next_question.id) if next_question else None,
    }


def get_location_rotation_status(db: Session, client_id: uuid.UUID) -> dict[str, Any]:
    queue = _location_queue(db, client_id)
    total_uses = db.scalar(
        select(func.coalesce(func.sum(ServiceLocation.used_count), 0)).where(
            ServiceLocation.client_id == client_id, ServiceLocation.is_active.is_(True)
        )
    )
    next_location = location_ref(queue[0]) if queue else None
    return {
        "total_active": len(queue),
        "total_uses": int(total_uses or 0),
        "next_location": next_location.display if next_location else None,
        "locations": [
            {
                "id": str(row.id),
                "location": location_ref(row).display,
                "used_count": row.used_count,
                "last_used_at": row.used_at.isoformat() if row.used_at else None,
                "is_headquarters": row.is_headquarters,
            }
            for row in queue
        ],
    }
