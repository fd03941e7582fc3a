"""Question x location rotation.

Every active question is paired with every active location. A pair is consumed
when a ``CombinationUsage`` row exists for the client's current rotation cycle;
once the whole product is consumed the cycle number is bumped and rotation
starts over.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from packages.scheduling import (
    Combination,
    CombinationStatus,
    RotationSelection,
    order_combinations,
    render_question,
)

from ..models import Client, ClientPAA, CombinationUsage, ServiceLocation
from .clients import get_client
from .legacy_rotation import (
    get_default_location,
    location_ref,
    mark_location_used,
    mark_question_used,
    question_ref,
    select_next_question,
    utcnow,
)

logger = logging.getLogger(__name__)


def render_paa_question(template: str, city: str, state: str, neighborhood: str | None = None) -> str:
    return render_question(template, city=city, state=state, neighborhood=neighborhood)


def _active_questions(db: Session, client_id: uuid.UUID) -> list[ClientPAA]:
    return list(
        db.scalars(
            select(ClientPAA)
            .where(ClientPAA.client_id == client_id, ClientPAA.is_active.is_(True))
            .order_by(ClientPAA.priority.asc(), ClientPAA.created_at.asc(), ClientPAA.id.asc())
        ).all()
    )


def _active_locations(db: Session, client_id: uuid.UUID) -> list[ServiceLocation]:
    return list(
        db.scalars(
            select(ServiceLocation)
            .where(ServiceLocation.client_id == client_id, ServiceLocation.is_active.is_(True))
            .order_by(ServiceLocation.created_at.asc(), ServiceLocation.id.asc())
        ).all()
    )


def _consumed_pairs(db: Session, client: Client) -> set[tuple[object, object]]:
    rows = db.execute(
        select(CombinationUsage.client_paa_id, CombinationUsage.service_location_id).where(
            CombinationUsage.client_id == client.id,
            CombinationUsage.cycle == client.rotation_cycle,
        )
    ).all()
    return {(question_id, location_id) for question_id, location_id in rows}


def _candidates(
    db: Session, client: Client, questions: list[ClientPAA], locations: list[ServiceLocation]
) -> list[Combination]:
    return order_combinations(
        [question_ref(row) for row in questions],
        [location_ref(row) for row in locations],
        consumed=_consumed_pairs(db, client),
    )


def _to_selection(combination: Combination, cycle: int, is_recycling: bool = False) -> RotationSelection:
    location = combination.location
    return RotationSelection(
        question=combination.question,
        location=location,
        rendered_question=render_paa_question(
            combination.question.question, location.city, location.state, location.neighborhood
        ),
        cycle=cycle,
        is_recycling=is_recycling,
    )


def _select_fallback(db: Session, client: Client) -> RotationSelection | None:
    question = select_next_question(db, client.id)
    location = get_default_location(db, client.id)
    if question is None or location is None:
        return None
    logger.info("Client %s has no active service locations, using %s", client.id, location.display)
    return RotationSelection(
        question=question,
        location=location,
        rendered_question=render_paa_question(question.question, location.city, location.state, location.neighborhood),
        cycle=client.rotation_cycle,
        is_fallback=True,
    )


def select_next_combination(db: Session, client_id: uuid.UUID) -> RotationSelection | None:
    """Next unused question x location pair for the client, or ``None`` with no active questions.

    Starting a new cycle bumps ``Client.rotation_cycle`` and flushes; the caller commits.
    """
    client = get_client(db, client_id)
    questions = _active_questions(db, client.id)
    if not questions:
        return None

    locations = _active_locations(db, client.id)
    if not locations:
        return _select_fallback(db, client)

    candidates = _candidates(db, client, questions, locations)
    if candidates:
        return _to_selection(candidates[0], cycle=client.rotation_cycle)

    client.rotation_cycle += 1
    db.flush()
    logger.info(
        "Client %s used all %s combinations, starting rotation cycle %s",
        client.id,
        len(questions) * len(locations),
        client.rotation_cycle,
    )
    candidates = _candidates(db, client, questions, locations)
    return _to_selection(candidates[0], cycle=client.rotation_cycle, is_recycling=True)


def mark_combination_used(
    db: Session,
    client_id: uuid.UUID,
    question_id: uuid.UUID,
    location_id: uuid.UUID | None,
    now: datetime | None = None,
) -> None:
    now = now or utcnow()
    client = get_client(db, client_id)
    mark_question_used(db, question_id, now=now)
    if location_id is None:
        return

    mark_location_used(db, location_id, now=now)
    existing = db.scalar(
        select(CombinationUsage.id).where(
            CombinationUsage.client_id == client.id,
            CombinationUsage.cycle == client.rotation_cycle,
            CombinationUsage.client_paa_id == question_id,
            CombinationUsage.service_location_id == location_id,
        )
    )
    if existing is None:
        db.add(
            CombinationUsage(
                client_id=client.id,
                client_paa_id=question_id,
                service_location_id=location_id,
                cycle=client.rotation_cycle,
                used_at=now,
            )
        )
    db.flush()


def get_combination_status(db: Session, client_id: uuid.UUID) -> CombinationStatus:
    client = get_client(db, client_id)
    questions = _active_questions(db, client.id)
    locations = _active_locations(db, client.id)
    total = len(questions) * len(locations)

    used = 0
    if questions and locations:
        used = db.scalar(
            select(func.count(CombinationUsage.id)).where(
                CombinationUsage.client_id == client.id,
                CombinationUsage.cycle == client.rotation_cycle,
                CombinationUsage.client_paa_id.in_([row.id for row in questions]),
                CombinationUsage.service_location_id.in_([row.id for row in locations]),
            )
        ) or 0

    # Preview only: a fully consumed product previews the first pair of the next cycle.
    preview = _candidates(db, client, questions, locations) if total else []
    if total and not preview:
        preview = order_combinations(
            [question_ref(row) for row in questions], [location_ref(row) for row in locations]
        )

    custom = sum(1 for row in questions if row.is_custom)
    return CombinationStatus(
        total_combinations=total,
        used_combinations=used,
        remaining_combinations=total - used,
        is_recycling=client.rotation_cycle > 0 and used <= 1,
        cycle=client.rotation_cycle,
        total_paas=len(questions),
        total_locations=len(locations),
        custom_paas=custom,
        standard_paas=len(questions) - custom,
        next_question=preview[0].question.question if preview else None,
        next_location=preview[0].location.display if preview else None,
    )
