"""Hand-off to the content generation pipeline.

``mock`` finishes the item in-process. ``live`` posts the item id to the
pipeline service, which owns the item's terminal status from then on.
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

import httpx
from sqlalchemy.orm import Session

from ..models import ContentItem, ContentItemStatus
from ..settings import settings

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    def __init__(self, category: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code


def map_pipeline_error(status_code: int | None, message: str = "pipeline request failed") -> PipelineError:
    if status_code in {401, 403}:
        return PipelineError("auth", message, status_code=status_code)
    if status_code == 429:
        return PipelineError("rate_limit", message, status_code=status_code)
    if status_code is not None and 400 <= status_code < 500:
        return PipelineError("validation", message, status_code=status_code)
    if status_code is not None and status_code >= 500:
        return PipelineError("network", message, status_code=status_code)
    return PipelineError("unknown", message, status_code=status_code)


class ContentPipeline(Protocol):
    def __call__(self, db: Session, content_item_id: uuid.UUID) -> None: ...


def _run_mock(db: Session, content_item_id: uuid.UUID) -> None:
    item = db.get(ContentItem, content_item_id)
    if item is None:
        raise PipelineError("validation", f"content item not found: {content_item_id}")
    item.status = ContentItemStatus.PUBLISHED
    item.pipeline_step = "published"
    db.commit()


def _run_live(content_item_id: uuid.UUID) -> None:
    if not settings.pipeline_url:
        raise PipelineError("config", "PIPELINE_URL is not configured")
    try:
        with httpx.Client(timeout=settings.pipeline_timeout_seconds) as client:
            response = client.post(settings.pipeline_url, json={"content_item_id": str(content_item_id)})
    except httpx.HTTPError as exc:
        raise PipelineError("network", f"pipeline request failed: {exc}") from exc
    if response.status_code >= 300:
        raise map_pipeline_error(
            response.status_code, f"pipeline returned {response.status_code}: {response.text[:500]}"
        )


def run_content_pipeline(db: Session, content_item_id: uuid.UUID) -> None:
    logger.info("Running content pipeline (%s) for item %s", settings.pipeline_mode, content_item_id)
    if settings.pipeline_mode == "live":
        _run_live(content_item_id)
        return
    _run_mock(db, content_item_id)
