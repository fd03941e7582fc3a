from __future__ import annotations
# ruff: noqa: E402

import itertools
import os
import sys
import time
import uuid
from collections.abc import AsyncGenerator, Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

API_ROOT = Path(__file__).resolve().parents[1]
REPO_ROOT = Path(__file__).resolve().parents[3]
for path in (API_ROOT, REPO_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.db import get_db
from app.main import app
from app.models import (
    Base,
    Client,
    ClientPAA,
    ClientStatus,
    Role,
    ServiceLocation,
    SubscriptionStatus,
    User,
)
from app.settings import settings
from packages.scheduling import DayPairKey

TEST_USER_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
MEMBER_USER_ID = uuid.UUID("dddddddd-dddd-dddd-dddd-dddddddddddd")
BASE_TIME = datetime(2026, 1, 1, tzinfo=UTC)


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "dev_auth_bypass", False)
    monkeypatch.setattr(settings, "cron_secret", None)
    monkeypatch.setattr(settings, "pipeline_mode", "mock")
    monkeypatch.setattr(settings, "schedule_cell_capacity", 1)
    monkeypatch.setattr(settings, "dispatch_client_delay_seconds", 0.0)


@pytest.fixture()
def make_client(db_session: Session) -> Callable[..., Client]:
    counter = itertools.count()

    def _make(
        business_name: str | None = None,
        *,
        day_pair: DayPairKey | None = None,
        time_slot: int | None = None,
        enabled: bool = True,
        frequency: int = 2,
        status: ClientStatus = ClientStatus.ACTIVE,
        subscription_status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        city: str | None = "Denver",
        state: str | None = "CO",
    ) -> Client:
        index = next(counter)
        client = Client(
            business_name=business_name or f"Client {index}",
            status=status,
            subscription_status=subscription_status,
            city=city,
            state=state,
            auto_schedule_enabled=enabled,
            auto_schedule_frequency=frequency,
            schedule_day_pair=day_pair,
            schedule_time_slot=time_slot,
            created_at=BASE_TIME + timedelta(minutes=index),
        )
        db_session.add(client)
        db_session.flush()
        return client

    return _make


@pytest.fixture()
def add_questions(db_session: Session) -> Callable[..., list[ClientPAA]]:
    def _add(client: Client, *questions: str, custom: bool = False) -> list[ClientPAA]:
        rows = [
            ClientPAA(
                client_id=client.id,
                question=question,
                priority=index,
                is_custom=custom,
                created_at=BASE_TIME + timedelta(minutes=index),
            )
            for index, question in enumerate(questions)
        ]
        db_session.add_all(rows)
        db_session.flush()
        return rows

    return _add


@pytest.fixture()
def add_locations(db_session: Session) -> Callable[..., list[ServiceLocation]]:
    def _add(client: Client, *places: tuple[str, str], headquarters_first: bool = False) -> list[ServiceLocation]:
        rows = [
            ServiceLocation(
                client_id=client.id,
                city=city,
                state=state,
                is_headquarters=headquarters_first and index == 0,
                created_at=BASE_TIME + timedelta(minutes=index),
            )
            for index, (city, state) in enumerate(places)
        ]
        db_session.add_all(rows)
        db_session.flush()
        return rows

    return _add


@pytest.fixture()
def auth_headers(db_session: Session) -> dict[str, str]:
    db_session.add_all(
        [
            User(id=TEST_USER_ID, email="owner@postcadence.local", role=Role.OWNER),
            User(id=MEMBER_USER_ID, email="member@postcadence.local", role=Role.MEMBER),
        ]
    )
    db_session.commit()
    return {"X-PostCadence-User-Id": str(TEST_USER_ID)}


@pytest.fixture()
async def api_client(session_factory: sessionmaker[Session]) -> AsyncGenerator[AsyncClient, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_db, None)


def _build_default_db_url() -> str:
    user = os.environ.get("POSTGRES_USER", "postcadence")
    password = os.environ.get("POSTGRES_PASSWORD", "postcadence")
    database = os.environ.get("POSTGRES_DB", "postcadence")
    host = os.environ.get("TEST_POSTGRES_HOST", os.environ.get("POSTGRES_HOST", "localhost"))
    port = os.environ.get("TEST_POSTGRES_PORT", os.environ.get("POSTGRES_PORT", "5432"))
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{database}"


def wait_for_database(db_url: str, timeout_seconds: int = 60) -> None:
    deadline = time.time() + timeout_seconds
    last_error: Exception | None = None
    while time.time() < deadline:
        probe = create_engine(db_url, pool_pre_ping=True)
        try:
            with probe.connect() as connection:
                connection.execute(text("SELECT 1"))
            return
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            time.sleep(2)
        finally:
            probe.dispose()
    raise RuntimeError(f"Postgres not reachable for integration tests at {db_url}") from last_error


@pytest.fixture(scope="session")
def postgres_url() -> str:
    return os.environ.get("DATABASE_URL", _build_default_db_url())


@pytest.fixture()
def member_headers(auth_headers: dict[str, str]) -> dict[str, str]:
    return {"X-PostCadence-User-Id": str(MEMBER_USER_ID)}


@pytest.fixture(scope="session")
def migrated_postgres(postgres_url: str) -> Generator[str, None, None]:
    from alembic import command
    from alembic.config import Config

    wait_for_database(postgres_url)
    config = Config(str(API_ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", postgres_url)
    command.downgrade(config, "base")
    command.upgrade(config, "head")
    yield postgres_url
    command.downgrade(config, "base")
