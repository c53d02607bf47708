"""Redis publish/subscribe helpers used for import progress fan-out."""
from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from typing import Any, Mapping, Protocol
from uuid import UUID

from redis import Redis as SyncRedis
from redis.asyncio import Redis, from_url

from user_manager.core.config import get_settings

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    """Anything that can push a JSON-able payload onto a named topic."""

    def publish(self, topic: str, payload: Mapping[str, Any]) -> int:
        ...


def create_redis_client(url: str, *, decode_responses: bool = False) -> Redis:
    """Return a configured Redis asyncio client instance."""

    kwargs: dict[str, Any] = {
        "decode_responses": decode_responses,
        "health_check_interval": 30,
    }

    # Only include encoding parameter when decode_responses is True
    if decode_responses:
        kwargs["encoding"] = "utf-8"

    return from_url(url, **kwargs)


def get_redis_client(*, decode_responses: bool = False) -> Redis:
    """Return an asyncio Redis client configured from application settings."""
    settings = get_settings()
    return create_redis_client(settings.redis_url, decode_responses=decode_responses)


def encode_message(payload: Mapping[str, Any]) -> str:
    """Serialize a payload for the wire, handling UUIDs and datetimes."""
    return json.dumps(dict(payload), default=_json_default)


def decode_message(value: str | bytes) -> Any:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


class RedisPublisher:
    """Synchronous Redis pub/sub publisher for Celery workers.

    Publishing is fire-and-forget: Redis hands the message to whoever is
    subscribed at that instant and returns the receiver count.
    """

    def __init__(self, redis: SyncRedis) -> None:
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisPublisher":
        return cls(SyncRedis.from_url(url, decode_responses=False, socket_keepalive=True))

    def publish(self, topic: str, payload: Mapping[str, Any]) -> int:
        return self._redis.publish(topic, encode_message(payload))

    def close(self) -> None:
        try:
            self._redis.close()
        except Exception as e:
            logger.warning(f"Failed to close Redis publisher connection: {e}")


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
