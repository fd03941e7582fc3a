from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime, timedelta

from .schema import (
    AssignedClient,
    Combination,
    DayPair,
    DayPairKey,
    GridCell,
    LocationRef,
    QuestionRef,
    ScheduleConflict,
)

# Weekday integers are Sunday-based: 0=Sun .. 6=Sat.
DAY_PAIRS: dict[DayPairKey, DayPair] = {
    DayPairKey.MON_WED: DayPair(key=DayPairKey.MON_WED, day1=1, day2=3, label="Monday & Wednesday"),
    DayPairKey.TUE_THU: DayPair(key=DayPairKey.TUE_THU, day1=2, day2=4, label="Tuesday & Thursday"),
    DayPairKey.WED_FRI: DayPair(key=DayPairKey.WED_FRI, day1=3, day2=5, label="Wednesday & Friday"),
    DayPairKey.MON_THU: DayPair(key=DayPairKey.MON_THU, day1=1, day2=4, label="Monday & Thursday"),
    DayPairKey.TUE_FRI: DayPair(key=DayPairKey.TUE_FRI, day1=2, day2=5, label="Tuesday & Friday"),
    DayPairKey.MON_FRI: DayPair(key=DayPairKey.MON_FRI, day1=1, day2=5, label="Monday & Friday"),
}

# UTC publish hours, indexed 0..9.
TIME_SLOTS: tuple[str, ...] = (
    "07:00",
    "08:00",
    "09:00",
    "10:00",
    "11:00",
    "13:00",
    "14:00",
    "15:00",
    "16:00",
    "17:00",
)

DAY_NAMES: tuple[str, ...] = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def get_day_pair(key: DayPairKey | str) -> DayPair:
    try:
        return DAY_PAIRS[DayPairKey(key)]
    except ValueError as exc:
        raise ValueError(f"unknown day pair: {key}") from exc


def time_slot_label(index: int) -> str:
    if not 0 <= index < len(TIME_SLOTS):
        raise ValueError(f"unknown time slot index: {index}")
    return TIME_SLOTS[index]


def slot_index_for_hour(hour: int) -> int | None:
    label = f"{hour:02d}:00"
    if label not in TIME_SLOTS:
        return None
    return TIME_SLOTS.index(label)


def sunday_based_weekday(value: date) -> int:
    return (value.weekday() + 1) % 7


def publish_days(key: DayPairKey | str, frequency: int = 2) -> tuple[int, ...]:
    pair = get_day_pair(key)
    return pair.days[: max(1, min(2, frequency))]


def day_pair_includes(key: DayPairKey | str, weekday: int, frequency: int = 2) -> bool:
    return weekday in publish_days(key, frequency)


def next_publish_dates(key: DayPairKey | str, from_date: date, frequency: int = 2) -> list[date]:
    """Upcoming publish dates for a day pair, strictly after ``from_date``, earliest first."""
    current = sunday_based_weekday(from_date)
    dates: list[date] = []
    for day in publish_days(key, frequency):
        delta = (day - current) % 7
        dates.append(from_date + timedelta(days=delta or 7))
    return sorted(dates)


def iter_cells() -> Iterable[GridCell]:
    for key in DAY_PAIRS:
        for index in range(len(TIME_SLOTS)):
            yield GridCell(day_pair=key, time_slot=index)


def total_cells() -> int:
    return len(DAY_PAIRS) * len(TIME_SLOTS)


def weekday_slot_load(occupancy: Mapping[GridCell, int]) -> dict[tuple[int, int], int]:
    load: dict[tuple[int, int], int] = defaultdict(int)
    for cell, count in occupancy.items():
        pair = DAY_PAIRS[cell.day_pair]
        for day in pair.days:
            load[(day, cell.time_slot)] += count
    return load


def choose_cell(occupancy: Mapping[GridCell, int], cell_capacity: int) -> tuple[GridCell, bool]:
    """Pick the least-occupied grid cell.

    Ties go to the cell whose weekdays see the fewest other clients at the same
    hour, then to the fixed day-pair x slot iteration order. Cells with spare
    capacity always win; when the grid is full the least-loaded cell is still
    returned and the second element is ``True``.
    """
    load = weekday_slot_load(occupancy)
    ranked: list[tuple[tuple[int, int, int], GridCell, int]] = []
    for order, cell in enumerate(iter_cells()):
        count = occupancy.get(cell, 0)
        pair = DAY_PAIRS[cell.day_pair]
        collisions = sum(load.get((day, cell.time_slot), 0) for day in pair.days) - 2 * count
        ranked.append(((count, collisions, order), cell, count))

    open_cells = [row for row in ranked if row[2] < cell_capacity]
    pool = open_cells or ranked
    _, best, _ = min(pool, key=lambda row: row[0])
    return best, not open_cells


def detect_conflicts(assigned: Iterable[AssignedClient]) -> list[ScheduleConflict]:
    """Group clients publishing on the same weekday at the same hour."""
    buckets: dict[tuple[int, int], list[AssignedClient]] = defaultdict(list)
    for client in assigned:
        pair = DAY_PAIRS[client.day_pair]
        for day in pair.days:
            buckets[(day, client.time_slot)].append(client)

    conflicts: list[ScheduleConflict] = []
    for (day, slot), clients in sorted(buckets.items()):
        if len(clients) < 2:
            continue
        conflicts.append(
            ScheduleConflict(
                day=day,
                day_name=DAY_NAMES[day],
                time_slot=slot,
                time_label=time_slot_label(slot),
                clients=clients,
            )
        )
    return conflicts


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _recency_key(value: datetime | None) -> tuple[int, datetime]:
    return (0 if value is None else 1, _as_utc(value))


def order_combinations(
    questions: list[QuestionRef],
    locations: list[LocationRef],
    consumed: set[tuple[object, object]] | None = None,
) -> list[Combination]:
    """Unconsumed question x location pairs, next-to-publish first.

    Order: question priority, then question recency (never used first), then
    location recency (never used first); input order breaks remaining ties.
    """
    skip = consumed or set()
    ranked: list[tuple[tuple[object, ...], Combination]] = []
    for q_index, question in enumerate(questions):
        for l_index, location in enumerate(locations):
            if (question.id, location.id) in skip:
                continue
            key = (
                question.priority,
                _recency_key(question.used_at),
                _recency_key(location.used_at),
                q_index,
                l_index,
            )
            ranked.append((key, Combination(question=question, location=location)))
    ranked.sort(key=lambda row: row[0])
    return [combination for _, combination in ranked]


def render_question(template: str, city: str, state: str, neighborhood: str | None = None) -> str:
    location = f"{neighborhood}, {city}, {state}" if neighborhood else f"{city}, {state}"
    return (
        template.replace("{location}", location)
        .replace("{city}", city)
        .replace("{state}", state)
        .replace("{neighborhood}", neighborhood or city)
    )


def same_utc_hour(first: datetime | None, second: datetime) -> bool:
    if first is None:
        return False
    left = _as_utc(first)
    right = _as_utc(second)
    return (left.date(), left.hour) == (right.date(), right.hour)
