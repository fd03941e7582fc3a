from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from app.models import Client, ClientPAA, CombinationUsage, ContentItem, ContentItemStatus, RunLog, ServiceLocation
from app.services.dispatcher import run_hourly_dispatch
from app.services.slot_allocator import assign_slot, get_cell_occupancy
from packages.scheduling import DayPairKey


@pytest.fixture()
def pg_session(migrated_postgres: str):  # noqa: ANN201
    engine = create_engine(migrated_postgres, pool_pre_ping=True)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)
    with factory() as session:
        yield session
        session.rollback()
    with engine.begin() as connection:
        connection.exec_driver_sql(
            "TRUNCATE TABLE run_logs, combination_usages, content_items, service_locations, client_paas, "
            "audit_logs, clients, users RESTART IDENTITY CASCADE"
        )
    engine.dispose()


@pytest.mark.integration
def test_slot_occupancy_grouped_in_postgres(pg_session: Session) -> None:
    first = Client(business_name="First", auto_schedule_enabled=True)
    second = Client(business_name="Second", auto_schedule_enabled=True)
    pg_session.add_all([first, second])
    pg_session.flush()

    assign_slot(pg_session, first.id)
    assign_slot(pg_session, second.id)
    pg_session.commit()

    occupancy = get_cell_occupancy(pg_session)
    assert sum(occupancy.values()) == 2
    assert max(occupancy.values()) == 1


@pytest.mark.integration
def test_hourly_dispatch_against_postgres(pg_session: Session) -> None:
    client = Client(
        business_name="Front Range Roofing",
        city="Denver",
        state="CO",
        auto_schedule_enabled=True,
        schedule_day_pair=DayPairKey.MON_WED,
        schedule_time_slot=2,
    )
    pg_session.add(client)
    pg_session.flush()
    pg_session.add(ClientPAA(client_id=client.id, question="Who fixes hail damage in {location}?"))
    pg_session.add(ServiceLocation(client_id=client.id, city="Denver", state="CO", is_headquarters=True))
    pg_session.commit()

    summary = run_hourly_dispatch(pg_session, now=datetime(2026, 10, 19, 9, 0, tzinfo=UTC), sleep=lambda _: None)

    assert summary.successful == 1
    item = pg_session.scalar(select(ContentItem).where(ContentItem.client_id == client.id))
    assert item.status == ContentItemStatus.PUBLISHED
    assert pg_session.scalar(select(func.count(CombinationUsage.id))) == 1
    assert pg_session.scalar(select(func.count(RunLog.id))) == 1
