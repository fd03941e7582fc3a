from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Client


class SchedulingError(Exception):
    pass


class ClientNotFoundError(SchedulingError):
    def __init__(self, client_id: uuid.UUID) -> None:
        super().__init__(f"client not found: {client_id}")
        self.client_id = client_id


def get_client(db: Session, client_id: uuid.UUID) -> Client:
    client = db.scalar(select(Client).where(Client.id == client_id, Client.deleted_at.is_(None)))
    if client is None:
        raise ClientNotFoundError(client_id)
    return client
