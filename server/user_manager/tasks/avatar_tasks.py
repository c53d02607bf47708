"""Celery task that resolves a user's avatar URL."""
from __future__ import annotations

import logging

from user_manager.core.config import get_settings
from user_manager.core.db import session_scope
from user_manager.services.avatar_service import AvatarDownloadError, AvatarFromUrlService
from user_manager.services.user_repository import UserRepository
from user_manager.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="attach_avatar_from_url", bind=True, acks_late=True)
def attach_avatar_from_url(self, user_id: int, url: str) -> dict:
    """Download an avatar and record its location on the user.

    Failures are logged and reported in the result only; the user record is
    left as it was.
    """
    settings = get_settings()
    try:
        path = AvatarFromUrlService(settings.avatar_storage_dir).fetch(user_id, url)
    except AvatarDownloadError as e:
        logger.error(f"Avatar for user {user_id} could not be processed: {e}")
        return {"status": "failed", "user_id": user_id, "error": str(e)}

    with session_scope() as session:
        user = UserRepository(session).set_avatar_path(user_id, str(path))
    if user is None:
        logger.warning(f"User {user_id} disappeared before avatar {path} was attached")
        return {"status": "skipped", "user_id": user_id}
    return {"status": "attached", "user_id": user_id, "path": str(path)}
