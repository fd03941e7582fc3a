from __future__ import annotations

import uuid
from datetime import UTC, date, datetime, timedelta

import pytest

from packages.scheduling import (
    DAY_PAIRS,
    TIME_SLOTS,
    AssignedClient,
    DayPairKey,
    GridCell,
    LocationRef,
    QuestionRef,
    choose_cell,
    day_pair_includes,
    detect_conflicts,
    get_day_pair,
    next_publish_dates,
    order_combinations,
    render_question,
    same_utc_hour,
    slot_index_for_hour,
    sunday_based_weekday,
    time_slot_label,
    total_cells,
)


def test_calendar_tables_are_fixed() -> None:
    assert list(DAY_PAIRS) == [
        DayPairKey.MON_WED,
        DayPairKey.TUE_THU,
        DayPairKey.WED_FRI,
        DayPairKey.MON_THU,
        DayPairKey.TUE_FRI,
        DayPairKey.MON_FRI,
    ]
    assert len(TIME_SLOTS) == 10
    assert time_slot_label(2) == "09:00"
    assert total_cells() == 60
    assert get_day_pair("WED_FRI").days == (3, 5)


def test_invalid_lookups_raise_value_error() -> None:
    with pytest.raises(ValueError):
        get_day_pair("SAT_SUN")
    with pytest.raises(ValueError):
        time_slot_label(10)
    with pytest.raises(ValueError):
        time_slot_label(-1)


def test_slot_index_for_hour_only_matches_publish_hours() -> None:
    assert slot_index_for_hour(7) == 0
    assert slot_index_for_hour(9) == 2
    assert slot_index_for_hour(13) == 5
    assert slot_index_for_hour(17) == 9
    for hour in (0, 6, 12, 18, 23):
        assert slot_index_for_hour(hour) is None


def test_sunday_based_weekday() -> None:
    assert sunday_based_weekday(date(2026, 10, 18)) == 0
    assert sunday_based_weekday(date(2026, 10, 19)) == 1
    assert sunday_based_weekday(date(2026, 10, 24)) == 6


def test_frequency_one_publishes_only_on_first_day() -> None:
    assert day_pair_includes(DayPairKey.MON_WED, 1)
    assert day_pair_includes(DayPairKey.MON_WED, 3)
    assert day_pair_includes(DayPairKey.MON_WED, 1, frequency=1)
    assert not day_pair_includes(DayPairKey.MON_WED, 3, frequency=1)
    assert not day_pair_includes(DayPairKey.MON_WED, 2)


def test_next_publish_dates_are_strictly_after_start() -> None:
    monday = date(2026, 10, 19)
    assert next_publish_dates(DayPairKey.MON_WED, monday) == [date(2026, 10, 21), date(2026, 10, 26)]
    assert next_publish_dates(DayPairKey.MON_WED, monday, frequency=1) == [date(2026, 10, 26)]
    assert next_publish_dates(DayPairKey.TUE_FRI, date(2026, 10, 18)) == [date(2026, 10, 20), date(2026, 10, 23)]


def test_render_question_with_and_without_neighborhood() -> None:
    template = "How much does it cost in {location}?"
    assert render_question(template, "Denver", "CO", None) == "How much does it cost in Denver, CO?"
    assert render_question(template, "Denver", "CO", "Capitol Hill") == "How much does it cost in Capitol Hill, Denver, CO?"


def test_render_question_substitutes_parts_independently() -> None:
    rendered = render_question("Best roofer in {city}, {state} near {neighborhood}", "Aurora", "CO")
    assert rendered == "Best roofer in Aurora, CO near Aurora"
    assert render_question("Cost in {Location}?", "Denver", "CO") == "Cost in {Location}?"


def test_choose_cell_spreads_fresh_assignments_evenly() -> None:
    occupancy: dict[GridCell, int] = {}
    for _ in range(150):
        cell, over = choose_cell(occupancy, cell_capacity=3)
        assert over is False
        occupancy[cell] = occupancy.get(cell, 0) + 1
        counts = [occupancy.get(candidate, 0) for candidate in _all_cells()]
        assert max(counts) - min(counts) <= 1


def test_choose_cell_prefers_cells_without_weekday_collisions() -> None:
    occupancy = {cell: 1 for cell in _all_cells() if cell.time_slot != 0}
    occupancy[GridCell(day_pair=DayPairKey.MON_THU, time_slot=0)] = 1
    cell, _ = choose_cell(occupancy, cell_capacity=1)
    # Mon and Thu at 07:00 are taken; WED_FRI is the first free pair sharing neither day.
    assert cell == GridCell(day_pair=DayPairKey.WED_FRI, time_slot=0)


def test_choose_cell_overflows_softly_when_grid_is_full() -> None:
    occupancy = {cell: 1 for cell in _all_cells()}
    occupancy[GridCell(day_pair=DayPairKey.MON_WED, time_slot=0)] = 2
    cell, over = choose_cell(occupancy, cell_capacity=1)
    assert over is True
    assert occupancy[cell] == 1


def test_detect_conflicts_groups_shared_weekday_and_slot() -> None:
    first = AssignedClient(client_id=uuid.uuid4(), business_name="A", day_pair=DayPairKey.MON_WED, time_slot=2)
    second = AssignedClient(client_id=uuid.uuid4(), business_name="B", day_pair=DayPairKey.WED_FRI, time_slot=2)
    third = AssignedClient(client_id=uuid.uuid4(), business_name="C", day_pair=DayPairKey.WED_FRI, time_slot=3)
    conflicts = detect_conflicts([first, second, third])
    assert len(conflicts) == 1
    assert conflicts[0].day_name == "Wednesday"
    assert conflicts[0].time_label == "09:00"
    assert [client.business_name for client in conflicts[0].clients] == ["A", "B"]


def test_order_combinations_by_priority_then_recency() -> None:
    now = datetime(2026, 10, 18, 9, tzinfo=UTC)
    q_low = QuestionRef(id=uuid.uuid4(), question="low", priority=0, used_at=now)
    q_high = QuestionRef(id=uuid.uuid4(), question="high", priority=1)
    l_old = LocationRef(id=uuid.uuid4(), city="Denver", state="CO", used_at=now - timedelta(days=2))
    l_new = LocationRef(id=uuid.uuid4(), city="Aurora", state="CO", used_at=now.replace(tzinfo=None))
    l_never = LocationRef(id=uuid.uuid4(), city="Boulder", state="CO")

    ordered = order_combinations([q_high, q_low], [l_new, l_old, l_never])
    assert [(c.question.question, c.location.city) for c in ordered[:3]] == [
        ("low", "Boulder"),
        ("low", "Denver"),
        ("low", "Aurora"),
    ]
    assert len(ordered) == 6

    remaining = order_combinations([q_low], [l_old, l_never], consumed={(q_low.id, l_never.id)})
    assert [c.location.city for c in remaining] == ["Denver"]


def test_same_utc_hour_handles_naive_values() -> None:
    now = datetime(2026, 10, 19, 9, 30, tzinfo=UTC)
    assert same_utc_hour(datetime(2026, 10, 19, 9, 0), now)
    assert not same_utc_hour(datetime(2026, 10, 19, 8, 59, tzinfo=UTC), now)
    assert not same_utc_hour(None, now)


def _all_cells() -> list[GridCell]:
    return [GridCell(day_pair=key, time_slot=index) for key in DAY_PAIRS for index in range(len(TIME_SLOTS))]
