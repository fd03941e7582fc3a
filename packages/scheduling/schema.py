from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class DayPairKey(StrEnum):
    MON_WED = "MON_WED"
    TUE_THU = "TUE_THU"
    WED_FRI = "WED_FRI"
    MON_THU = "MON_THU"
    TUE_FRI = "TUE_FRI"
    MON_FRI = "MON_FRI"


class DayPair(BaseModel, frozen=True):
    key: DayPairKey
    day1: int = Field(ge=0, le=6)
    day2: int = Field(ge=0, le=6)
    label: str

    @property
    def days(self) -> tuple[int, int]:
        return (self.day1, self.day2)


class GridCell(BaseModel, frozen=True):
    day_pair: DayPairKey
    time_slot: int = Field(ge=0, le=9)


class SlotAssignment(BaseModel):
    day_pair: DayPairKey
    time_slot: int = Field(ge=0, le=9)
    day_pair_label: str
    time_slot_label: str
    over_capacity: bool = False


class CapacityReport(BaseModel):
    total: int
    used: int
    available: int
    cell_capacity: int
    clients_by_day_pair: dict[str, int] = Field(default_factory=dict)
    day_usage: dict[str, int] = Field(default_factory=dict)


class AssignedClient(BaseModel):
    client_id: uuid.UUID
    business_name: str = ""
    day_pair: DayPairKey
    time_slot: int


class ScheduleConflict(BaseModel):
    day: int
    day_name: str
    time_slot: int
    time_label: str
    clients: list[AssignedClient]


class QuestionRef(BaseModel):
    id: uuid.UUID
    question: str
    priority: int = 0
    used_at: datetime | None = None
    is_custom: bool = False


class LocationRef(BaseModel):
    id: uuid.UUID | None
    city: str
    state: str
    neighborhood: str | None = None
    used_at: datetime | None = None
    is_headquarters: bool = False

    @property
    def display(self) -> str:
        if self.neighborhood:
            return f"{self.neighborhood}, {self.city}, {self.state}"
        return f"{self.city}, {self.state}"


class Combination(BaseModel):
    question: QuestionRef
    location: LocationRef

    @property
    def key(self) -> tuple[uuid.UUID, uuid.UUID | None]:
        return (self.question.id, self.location.id)


class RotationSelection(BaseModel):
    question: QuestionRef
    location: LocationRef
    rendered_question: str
    cycle: int = 0
    is_recycling: bool = False
    is_fallback: bool = False


class CombinationStatus(BaseModel):
    total_combinations: int
    used_combinations: int
    remaining_combinations: int
    is_recycling: bool
    cycle: int
    total_paas: int
    total_locations: int
    custom_paas: int
    standard_paas: int
    next_question: str | None = None
    next_location: str | None = None
