from __future__ import annotations

import logging
import uuid

from sqlalchemy import select

from .db import SessionLocal
from .models import Client, ClientPAA, ClientStatus, Role, ServiceLocation, SubscriptionStatus, User
from .services.slot_allocator import assign_slot
from .settings import settings

logger = logging.getLogger(__name__)

DEMO_CLIENT_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")

DEMO_QUESTIONS = (
    "How much does a roof replacement cost in {location}?",
    "What is the best time of year to replace a roof in {city}?",
    "Do I need a permit for roof repairs in {city}, {state}?",
)

DEMO_LOCATIONS = (
    ("Denver", "CO", None, True),
    ("Aurora", "CO", None, False),
    ("Denver", "CO", "Highlands", False),
)


def main() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    dev_user_id = uuid.UUID(settings.dev_user_id)
    with SessionLocal() as db:
        user = db.scalar(select(User).where(User.id == dev_user_id))
        if user is None:
            db.add(User(id=dev_user_id, email="dev@postcadence.local", full_name="Dev User", role=Role.OWNER))

        client = db.scalar(select(Client).where(Client.id == DEMO_CLIENT_ID))
        if client is None:
            client = Client(
                id=DEMO_CLIENT_ID,
                business_name="Summit Roofing Co",
                status=ClientStatus.ACTIVE,
                subscription_status=SubscriptionStatus.TRIAL,
                city="Denver",
                state="CO",
                auto_schedule_enabled=True,
            )
            db.add(client)
            db.flush()
            db.add_all(
                ClientPAA(client_id=client.id, question=question, priority=index)
                for index, question in enumerate(DEMO_QUESTIONS)
            )
            db.add_all(
                ServiceLocation(
                    client_id=client.id,
                    city=city,
                    state=state,
                    neighborhood=neighborhood,
                    is_headquarters=headquarters,
                )
                for city, state, neighborhood, headquarters in DEMO_LOCATIONS
            )
        db.flush()

        slot = assign_slot(db, client.id)
        db.commit()
    logger.info(
        "Seed complete: user=%s client=%s slot=%s @ %s",
        dev_user_id,
        DEMO_CLIENT_ID,
        slot.day_pair_label,
        slot.time_slot_label,
    )


if __name__ == "__main__":
    main()
