"""Weekly grid assignment: which (day pair, time slot) cell each client publishes in.

Occupancy is always derived from the client table with a grouped count, never
kept in a separate counter.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from packages.scheduling import (
    DAY_NAMES,
    DAY_PAIRS,
    AssignedClient,
    CapacityReport,
    DayPairKey,
    GridCell,
    ScheduleConflict,
    SlotAssignment,
    choose_cell,
    detect_conflicts,
    time_slot_label,
    total_cells,
)

from ..models import Client, ClientStatus
from ..settings import settings
from .clients import get_client

logger = logging.getLogger(__name__)


def _scheduled_filter() -> tuple[object, ...]:
    return (
        Client.deleted_at.is_(None),
        Client.status == ClientStatus.ACTIVE,
        Client.auto_schedule_enabled.is_(True),
        Client.schedule_day_pair.is_not(None),
        Client.schedule_time_slot.is_not(None),
    )


def get_cell_occupancy(db: Session, exclude_client_id: uuid.UUID | None = None) -> dict[GridCell, int]:
    stmt = (
        select(Client.schedule_day_pair, Client.schedule_time_slot, func.count(Client.id))
        .where(*_scheduled_filter())
        .group_by(Client.schedule_day_pair, Client.schedule_time_slot)
    )
    if exclude_client_id is not None:
        stmt = stmt.where(Client.id != exclude_client_id)
    occupancy: dict[GridCell, int] = {}
    for day_pair, time_slot, count in db.execute(stmt).all():
        occupancy[GridCell(day_pair=DayPairKey(day_pair), time_slot=int(time_slot))] = int(count)
    return occupancy


def _to_assignment(cell: GridCell, over_capacity: bool = False) -> SlotAssignment:
    return SlotAssignment(
        day_pair=cell.day_pair,
        time_slot=cell.time_slot,
        day_pair_label=DAY_PAIRS[cell.day_pair].label,
        time_slot_label=time_slot_label(cell.time_slot),
        over_capacity=over_capacity,
    )


def find_best_slot(db: Session, exclude_client_id: uuid.UUID | None = None) -> SlotAssignment:
    occupancy = get_cell_occupancy(db, exclude_client_id=exclude_client_id)
    cell, over_capacity = choose_cell(occupancy, cell_capacity=settings.schedule_cell_capacity)
    if over_capacity:
        logger.warning(
            "Schedule grid is full (capacity %s per cell); placing in least-loaded cell %s:%s",
            settings.schedule_cell_capacity,
            cell.day_pair.value,
            cell.time_slot,
        )
    return _to_assignment(cell, over_capacity=over_capacity)


def current_assignment(client: Client) -> SlotAssignment | None:
    if client.schedule_day_pair is None or client.schedule_time_slot is None:
        return None
    return _to_assignment(GridCell(day_pair=client.schedule_day_pair, time_slot=client.schedule_time_slot))


def assign_slot(db: Session, client_id: uuid.UUID) -> SlotAssignment:
    """Give the client a grid cell unless it already has one. Flushes, caller commits."""
    client = get_client(db, client_id)
    existing = current_assignment(client)
    if existing is not None:
        return existing

    slot = find_best_slot(db, exclude_client_id=client.id)
    client.schedule_day_pair = slot.day_pair
    client.schedule_time_slot = slot.time_slot
    db.flush()
    logger.info(
        "Assigned client %s to %s slot %s (%s)",
        client.id,
        slot.day_pair.value,
        slot.time_slot,
        slot.time_slot_label,
    )
    return slot


def reassign_slot(db: Session, client_id: uuid.UUID) -> tuple[SlotAssignment | None, SlotAssignment]:
    """Move a client to the best cell not counting its own current one. Returns (previous, new)."""
    client = get_client(db, client_id)
    previous = current_assignment(client)
    slot = find_best_slot(db, exclude_client_id=client.id)
    client.schedule_day_pair = slot.day_pair
    client.schedule_time_slot = slot.time_slot
    db.flush()
    logger.info(
        "Reassigned client %s from %s to %s:%s",
        client.id,
        f"{previous.day_pair.value}:{previous.time_slot}" if previous else "unassigned",
        slot.day_pair.value,
        slot.time_slot,
    )
    return previous, slot


def get_capacity(db: Session) -> CapacityReport:
    occupancy = get_cell_occupancy(db)
    cell_capacity = settings.schedule_cell_capacity
    total = total_cells() * cell_capacity
    used = sum(occupancy.values())

    by_pair: dict[str, int] = defaultdict(int)
    day_usage: dict[str, int] = defaultdict(int)
    for cell, count in occupancy.items():
        pair = DAY_PAIRS[cell.day_pair]
        by_pair[pair.label] += count
        for day in pair.days:
            day_usage[DAY_NAMES[day]] += count

    return CapacityReport(
        total=total,
        used=used,
        available=total - used,
        cell_capacity=cell_capacity,
        clients_by_day_pair=dict(by_pair),
        day_usage=dict(day_usage),
    )


def list_assigned_clients(db: Session) -> list[AssignedClient]:
    rows = db.scalars(select(Client).where(*_scheduled_filter()).order_by(Client.created_at, Client.id)).all()
    return [
        AssignedClient(
            client_id=row.id,
            business_name=row.business_name,
            day_pair=row.schedule_day_pair,
            time_slot=row.schedule_time_slot,
        )
        for row in rows
    ]


def detect_schedule_conflicts(db: Session) -> list[ScheduleConflict]:
    return detect_conflicts(list_assigned_clients(db))


def fix_all_conflicts(db: Session) -> dict[str, object]:
    """Keep the first client of every conflicting group, reassign the others once each."""
    conflicts = detect_schedule_conflicts(db)
    reassignments: list[dict[str, object]] = []
    processed: set[uuid.UUID] = set()
    for conflict in conflicts:
        for client in conflict.clients[1:]:
            if client.client_id in processed:
                continue
            previous, slot = reassign_slot(db, client.client_id)
            processed.add(client.client_id)
            reassignments.append(
                {
                    "client_id": str(client.client_id),
                    "client_name": client.business_name,
                    "old_slot": f"{previous.day_pair_label} @ {previous.time_slot_label}" if previous else None,
                    "new_slot": f"{slot.day_pair_label} @ {slot.time_slot_label}",
                }
            )
    if conflicts:
        logger.info("Fixed %s schedule conflicts, reassigned %s clients", len(conflicts), len(reassignments))
    return {
        "conflicts_found": len(conflicts),
        "clients_reassigned": len(reassignments),
        "reassignments": reassignments,
    }
