from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from packages.scheduling import (
    CapacityReport,
    CombinationStatus,
    DayPairKey,
    ScheduleConflict,
    SlotAssignment,
)

from .models import RunLogStatus, SubscriptionStatus


class DispatchResult(BaseModel):
    client_id: uuid.UUID
    client_name: str
    success: bool
    content_item_id: uuid.UUID | None = None
    paa_question: str | None = None
    location: str | None = None
    is_recycling: bool = False
    is_fallback: bool = False
    error: str | None = None


class DispatchSummary(BaseModel):
    success: bool = True
    message: str | None = None
    skipped_reason: str | None = None
    time_slot: str | None = None
    slot_index: int | None = None
    day: str
    processed: int = 0
    successful: int = 0
    failed: int = 0
    results: list[DispatchResult] = Field(default_factory=list)
    duration_ms: int = 0


class ForceRunRequest(BaseModel):
    client_id: uuid.UUID | None = None


class DebugClientRow(BaseModel):
    client_id: uuid.UUID
    business_name: str
    day_pair: DayPairKey | None
    time_slot: int | None
    time_slot_label: str | None
    frequency: int
    subscription_status: SubscriptionStatus
    last_auto_scheduled_at: datetime | None
    would_run: bool
    reasons: list[str] = Field(default_factory=list)


class DispatchDebugResponse(BaseModel):
    now: datetime
    day: str
    weekday: int
    slot_index: int | None
    time_slot: str | None
    would_run: int
    clients: list[DebugClientRow]


class AutoScheduleUpdateRequest(BaseModel):
    enabled: bool | None = None
    frequency: Literal[1, 2] | None = None


class AutoScheduleStatusResponse(BaseModel):
    client_id: uuid.UUID
    enabled: bool
    frequency: int
    slot: SlotAssignment | None
    next_publish_dates: list[date]
    last_auto_scheduled_at: datetime | None
    combinations: CombinationStatus
    question_queue: dict[str, Any]
    location_rotation: dict[str, Any]
    capacity: CapacityReport


class SlotPreviewResponse(BaseModel):
    client_id: uuid.UUID
    current: SlotAssignment | None
    suggested: SlotAssignment


class ReassignSlotResponse(BaseModel):
    client_id: uuid.UUID
    previous: SlotAssignment | None
    current: SlotAssignment


class ScheduleConflictsResponse(BaseModel):
    has_conflicts: bool
    total_conflicts: int
    affected_clients: int
    conflicts: list[ScheduleConflict]


class SlotReassignment(BaseModel):
    client_id: uuid.UUID
    client_name: str
    old_slot: str | None
    new_slot: str


class FixConflictsResponse(BaseModel):
    conflicts_found: int
    clients_reassigned: int
    reassignments: list[SlotReassignment]


class RunLogResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    action: str
    status: RunLogStatus
    error_message: str | None
    response_json: dict[str, Any]
    started_at: datetime
    completed_at: datetime
    duration_ms: int


class MonitoringRunsResponse(BaseModel):
    stats: dict[str, Any]
    runs: list[RunLogResponse]
