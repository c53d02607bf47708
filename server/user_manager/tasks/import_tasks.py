"""Celery task that runs a user import.

The task is a thin shell: it wires the worker's database, Redis and storage
into a BatchProcessor and runs it once for the given import id.
"""
from __future__ import annotations

import logging
from uuid import UUID

from user_manager.core.config import Settings, get_settings
from user_manager.core.db import session_scope
from user_manager.core.redis_manager import Publisher, RedisPublisher
from user_manager.services.batch_processor import BatchProcessor, build_delay
from user_manager.services.file_storage import ImportFileStorage
from user_manager.services.import_broadcast import ProgressBroadcaster
from user_manager.services.row_materializer import RowMaterializer
from user_manager.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def schedule_avatar(user_id: int, url: str) -> None:
    """Hand an avatar URL to its own worker so the row never waits on it."""
    from user_manager.tasks.avatar_tasks import attach_avatar_from_url

    attach_avatar_from_url.delay(user_id, url)


def build_batch_processor(settings: Settings, publisher: Publisher) -> BatchProcessor:
    """Assemble a BatchProcessor from application settings."""
    materializer = RowMaterializer(session_scope, avatar_scheduler=schedule_avatar)
    return BatchProcessor(
        session_scope,
        ImportFileStorage(settings.import_storage_dir),
        ProgressBroadcaster(publisher, aggregate_topic=settings.aggregate_topic),
        materializer,
        batch_size=settings.import_batch_size,
        recent_errors_limit=settings.import_recent_errors_limit,
        delay=build_delay(settings.import_batch_delay_seconds),
    )


@celery_app.task(name="process_user_import", bind=True, acks_late=True)
def process_user_import(self, import_id: str) -> dict:
    """Process a user import in the background.

    Runs exactly one BatchProcessor pass. Pipeline failures are recorded on
    the import itself, so the task returns normally instead of raising and
    is never retried.

    Args:
        import_id: UUID string of the user import

    Returns:
        dict with the run outcome (completed, failed or skipped)
    """
    settings = get_settings()
    publisher = RedisPublisher.from_url(settings.redis_url)
    logger.info(f"Starting user import task for {import_id}")
    try:
        return build_batch_processor(settings, publisher).run(UUID(import_id))
    finally:
        publisher.close()
