"""Core application utilities and infrastructure."""
from .config import Settings, get_settings
from .redis_manager import (
    Publisher,
    RedisPublisher,
    create_redis_client,
    decode_message,
    encode_message,
)
from .security import generate_password, hash_password, verify_password

__all__ = [
    "Settings",
    "get_settings",
    "Publisher",
    "RedisPublisher",
    "create_redis_client",
    "decode_message",
    "encode_message",
    "generate_password",
    "hash_password",
    "verify_password",
]
