"""Shared FastAPI dependencies for the import endpoints."""
from __future__ import annotations

from typing import Generator

from fastapi import Header, HTTPException, status

from user_manager.core.config import get_settings
from user_manager.core.redis_manager import RedisPublisher
from user_manager.services.file_storage import ImportFileStorage
from user_manager.services.import_broadcast import ProgressBroadcaster


def get_current_user_id(x_user_id: int | None = Header(default=None)) -> int:
    """Return the acting user's id, as established by the authentication layer upstream."""
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return x_user_id


def get_storage() -> ImportFileStorage:
    return ImportFileStorage(get_settings().import_storage_dir)


def get_broadcaster() -> Generator[ProgressBroadcaster, None, None]:
    settings = get_settings()
    publisher = RedisPublisher.from_url(settings.redis_url)
    try:
        yield ProgressBroadcaster(publisher, aggregate_topic=settings.aggregate_topic)
    finally:
        publisher.close()
