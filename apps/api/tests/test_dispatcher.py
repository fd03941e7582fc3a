from __future__ import annotations

import uuid
from datetime import UTC, date, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models import ContentItem, ContentItemStatus, RunLog, RunLogStatus, SubscriptionStatus
from app.services import dispatcher
from app.services.dispatcher import (
    NO_COMBINATION_ERROR,
    NoEligibleClientsError,
    debug_dispatch,
    find_due_clients,
    force_dispatch,
    run_hourly_dispatch,
    trigger_hourly_dispatch,
)
from app.services.pipeline import PipelineError, run_content_pipeline
from packages.scheduling import TIME_SLOTS, DayPairKey, slot_index_for_hour

MONDAY_9AM = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


def _no_sleep(_seconds: float) -> None:
    return None


def _ready_client(make_client, add_questions, add_locations, name: str | None = None, **kwargs):  # noqa: ANN001, ANN202
    kwargs.setdefault("day_pair", DayPairKey.MON_WED)
    kwargs.setdefault("time_slot", 2)
    client = make_client(name, **kwargs)
    add_questions(client, "How much does it cost in {location}?", "Who fixes roofs in {city}?")
    add_locations(client, ("Denver", "CO"), ("Aurora", "CO"))
    return client


def _run_log_count(db: Session) -> int:
    return db.scalar(select(func.count(RunLog.id))) or 0


def test_day_pair_gating_over_a_full_week(db_session: Session, make_client, add_questions, add_locations) -> None:
    client = _ready_client(make_client, add_questions, add_locations)
    sunday = date(2026, 10, 18)
    for offset in range(7):
        day = sunday + timedelta(days=offset)
        for hour in range(24):
            now = datetime(day.year, day.month, day.day, hour, tzinfo=UTC)
            slot_index = slot_index_for_hour(hour)
            due = slot_index is not None and client.id in {row.id for row in find_due_clients(db_session, now, slot_index)}
            expected = day.isoweekday() in {1, 3} and hour == 9
            assert due is expected, f"{day} {hour:02d}:00"


def test_frequency_one_skips_second_day(db_session: Session, make_client, add_questions, add_locations) -> None:
    client = _ready_client(make_client, add_questions, add_locations, frequency=1)
    wednesday = MONDAY_9AM + timedelta(days=2)
    assert [row.id for row in find_due_clients(db_session, MONDAY_9AM, 2)] == [client.id]
    assert find_due_clients(db_session, wednesday, 2) == []


def test_ineligible_clients_are_not_due(db_session: Session, make_client, add_questions, add_locations) -> None:
    _ready_client(make_client, add_questions, add_locations, subscription_status=SubscriptionStatus.PAST_DUE)
    _ready_client(make_client, add_questions, add_locations, enabled=False)
    trial = _ready_client(make_client, add_questions, add_locations, subscription_status=SubscriptionStatus.TRIAL)
    assert [row.id for row in find_due_clients(db_session, MONDAY_9AM, 2)] == [trial.id]


def test_batch_isolates_a_failing_pipeline(db_session: Session, make_client, add_questions, add_locations) -> None:
    first = _ready_client(make_client, add_questions, add_locations, "First")
    second = _ready_client(make_client, add_questions, add_locations, "Second")
    third = _ready_client(make_client, add_questions, add_locations, "Third")
    db_session.commit()
    first_id, second_id, third_id = first.id, second.id, third.id

    def _pipeline(db: Session, content_item_id: uuid.UUID) -> None:
        item = db.get(ContentItem, content_item_id)
        if item.client_id == second_id:
            raise PipelineError("network", "generation timed out")
        run_content_pipeline(db, content_item_id)

    sleeps: list[float] = []
    summary = run_hourly_dispatch(
        db_session, now=MONDAY_9AM, pipeline=_pipeline, sleep=sleeps.append, delay_seconds=1.0
    )

    assert (summary.processed, summary.successful, summary.failed) == (3, 2, 1)
    assert summary.time_slot == "09:00"
    assert summary.day == "Monday"
    assert sleeps == [1.0, 1.0]
    assert [row.client_id for row in summary.results] == [first_id, second_id, third_id]
    assert summary.results[1].error == "generation timed out"

    items = {item.client_id: item for item in db_session.scalars(select(ContentItem)).all()}
    assert items[first_id].status == ContentItemStatus.PUBLISHED
    assert items[third_id].status == ContentItemStatus.PUBLISHED
    assert items[second_id].status == ContentItemStatus.FAILED
    assert items[second_id].pipeline_step == "error"
    assert items[second_id].last_error == "generation timed out"
    assert items[first_id].paa_question == "How much does it cost in Denver, CO?"
    assert items[first_id].scheduled_time == "09:00"

    runs = db_session.scalars(select(RunLog)).all()
    assert len(runs) == 1
    assert runs[0].client_id == first_id
    assert runs[0].action == "cron_hourly_publish"
    assert runs[0].status == RunLogStatus.FAILED
    assert runs[0].response_json["processed"] == 3


@pytest.mark.parametrize("hour", [hour for hour in range(24) if f"{hour:02d}:00" not in TIME_SLOTS])
def test_non_slot_hours_are_no_ops(hour: int, db_session: Session, make_client, add_questions, add_locations) -> None:
    for key in DayPairKey:
        _ready_client(make_client, add_questions, add_locations, day_pair=key, time_slot=0)
    summary = run_hourly_dispatch(db_session, now=MONDAY_9AM.replace(hour=hour), sleep=_no_sleep)
    assert summary.processed == 0
    assert summary.skipped_reason == "not_a_slot_hour"
    assert _run_log_count(db_session) == 0


def test_no_due_clients_writes_no_run_log(db_session: Session, make_client, add_questions, add_locations) -> None:
    _ready_client(make_client, add_questions, add_locations, day_pair=DayPairKey.TUE_THU)
    summary = run_hourly_dispatch(db_session, now=MONDAY_9AM, sleep=_no_sleep)
    assert summary.processed == 0
    assert summary.skipped_reason == "no_due_clients"
    assert summary.slot_index == 2
    assert _run_log_count(db_session) == 0


def test_second_run_in_same_hour_skips_dispatched_clients(
    db_session: Session, make_client, add_questions, add_locations
) -> None:
    _ready_client(make_client, add_questions, add_locations)
    assert run_hourly_dispatch(db_session, now=MONDAY_9AM, sleep=_no_sleep).processed == 1
    again = run_hourly_dispatch(db_session, now=MONDAY_9AM + timedelta(minutes=5), sleep=_no_sleep)
    assert again.processed == 0
    assert db_session.scalar(select(func.count(ContentItem.id))) == 1


def test_client_without_questions_is_reported_failed(db_session: Session, make_client) -> None:
    make_client(day_pair=DayPairKey.MON_WED, time_slot=2)
    summary = run_hourly_dispatch(db_session, now=MONDAY_9AM, sleep=_no_sleep)
    assert summary.failed == 1
    assert summary.results[0].error == NO_COMBINATION_ERROR
    assert db_session.scalar(select(func.count(ContentItem.id))) == 0
    assert _run_log_count(db_session) == 1


def test_combination_is_consumed_even_when_pipeline_fails(
    db_session: Session, make_client, add_questions, add_locations
) -> None:
    client = _ready_client(make_client, add_questions, add_locations)

    def _broken(db: Session, content_item_id: uuid.UUID) -> None:
        raise PipelineError("network", "down")

    first = run_hourly_dispatch(db_session, now=MONDAY_9AM, pipeline=_broken, sleep=_no_sleep)
    second = run_hourly_dispatch(db_session, now=MONDAY_9AM + timedelta(days=2), sleep=_no_sleep)
    assert first.results[0].location == "Denver, CO"
    assert second.results[0].location == "Aurora, CO"
    assert client.last_auto_scheduled_at is not None


def test_batch_level_failure_is_logged_and_raised(
    db_session: Session, make_client, add_questions, add_locations, monkeypatch
) -> None:
    client = _ready_client(make_client, add_questions, add_locations)
    db_session.commit()
    client_id = client.id

    def _explode(db, now, slot_index):  # noqa: ANN001
        raise RuntimeError("database went away")

    monkeypatch.setattr(dispatcher, "find_due_clients", _explode)
    with pytest.raises(RuntimeError):
        run_hourly_dispatch(db_session, now=MONDAY_9AM, sleep=_no_sleep)

    run = db_session.scalar(select(RunLog))
    assert run is not None
    assert run.client_id == client_id
    assert run.status == RunLogStatus.FAILED
    assert run.error_message == "database went away"


def test_force_dispatch_ignores_slot_and_day(db_session: Session, make_client, add_questions, add_locations) -> None:
    client = _ready_client(make_client, add_questions, add_locations, day_pair=DayPairKey.TUE_THU, time_slot=9)
    summary = force_dispatch(db_session, client_id=client.id, now=MONDAY_9AM, sleep=_no_sleep)
    assert summary.processed == 1
    assert summary.successful == 1
    assert client.last_auto_scheduled_at is None
    run = db_session.scalar(select(RunLog))
    assert run.action == "manual_force_run"


def test_force_dispatch_rejects_ineligible_client(db_session: Session, make_client) -> None:
    paused = make_client(subscription_status=SubscriptionStatus.CANCELED)
    with pytest.raises(NoEligibleClientsError):
        force_dispatch(db_session, client_id=paused.id, sleep=_no_sleep)
    with pytest.raises(NoEligibleClientsError):
        force_dispatch(db_session, client_id=uuid.uuid4(), sleep=_no_sleep)


def test_trigger_skips_when_hour_already_claimed(
    db_session: Session, make_client, add_questions, add_locations, monkeypatch
) -> None:
    _ready_client(make_client, add_questions, add_locations)
    monkeypatch.setattr(dispatcher, "claim_hourly_run", lambda now: False)
    summary = trigger_hourly_dispatch(db_session, now=MONDAY_9AM, sleep=_no_sleep)
    assert summary.skipped_reason == "already_ran"
    assert summary.processed == 0


def test_trigger_releases_claim_on_failure(db_session: Session, monkeypatch) -> None:
    released: list[datetime] = []
    monkeypatch.setattr(dispatcher, "claim_hourly_run", lambda now: True)
    monkeypatch.setattr(dispatcher, "release_hourly_run", released.append)

    def _explode(db, now, slot_index):  # noqa: ANN001
        raise RuntimeError("boom")

    monkeypatch.setattr(dispatcher, "find_due_clients", _explode)
    with pytest.raises(RuntimeError):
        trigger_hourly_dispatch(db_session, now=MONDAY_9AM, sleep=_no_sleep)
    assert released == [MONDAY_9AM]


def test_debug_dispatch_explains_skips(db_session: Session, make_client, add_questions, add_locations) -> None:
    due = _ready_client(make_client, add_questions, add_locations, "Due")
    later = _ready_client(make_client, add_questions, add_locations, "Later", time_slot=5)
    unassigned = make_client("Unassigned")

    report = debug_dispatch(db_session, now=MONDAY_9AM)
    rows = {row.client_id: row for row in report.clients}
    assert report.would_run == 1
    assert report.time_slot == "09:00"
    assert rows[due.id].would_run is True
    assert rows[later.id].reasons == ["slot is 13:00, not 09:00"]
    assert rows[unassigned.id].reasons == ["no slot assigned"]


def test_item_is_failed_when_marking_the_combination_breaks(
    db_session: Session, make_client, add_questions, add_locations, monkeypatch: pytest.MonkeyPatch
) -> None:
    client = _ready_client(make_client, add_questions, add_locations)

    def _broken_ledger(*args, **kwargs) -> None:  # noqa: ANN002, ANN003
        raise RuntimeError("ledger write failed")

    monkeypatch.setattr(dispatcher, "mark_combination_used", _broken_ledger)
    summary = run_hourly_dispatch(db_session, now=MONDAY_9AM, sleep=_no_sleep)

    assert summary.failed == 1
    assert summary.results[0].error == "ledger write failed"
    items = db_session.scalars(select(ContentItem).where(ContentItem.client_id == client.id)).all()
    assert [(item.status, item.pipeline_step, item.last_error) for item in items] == [
        (ContentItemStatus.FAILED, "error", "ledger write failed")
    ]
    assert summary.results[0].content_item_id == items[0].id
