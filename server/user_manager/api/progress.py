"""Server-Sent Events endpoint for real-time import progress."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from user_manager.api.dependencies import get_current_user_id
from user_manager.core.config import get_settings
from user_manager.core.db import get_session
from user_manager.core.redis_manager import create_redis_client, decode_message, encode_message
from user_manager.schemas.user_import import ImportEvent, ImportEventData
from user_manager.services.import_broadcast import TERMINAL_EVENTS, import_topic
from user_manager.services.import_service import ImportRepository

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/admin/imports", tags=["progress"])

HEARTBEAT_INTERVAL_SECONDS = 15.0


async def get_redis_client() -> AsyncIterator[Redis]:
    """FastAPI dependency that provides a Redis client for the subscription."""
    redis = create_redis_client(settings.redis_url, decode_responses=True)
    try:
        yield redis
    finally:
        await redis.aclose()


@router.get(
    "/{import_id}/events",
    summary="Stream import progress via SSE",
    description=(
        "Sends the current import status, then relays every event published on the "
        "import's topic. The stream closes after the completed or failed event."
    ),
    responses={404: {"description": "Import not found"}},
)
async def stream_import_events(
    import_id: UUID,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    redis: Redis = Depends(get_redis_client),
) -> StreamingResponse:
    record = ImportRepository(session).get_by_id(import_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Import not found: {import_id}")

    snapshot = ImportEvent(type="import_status", data=ImportEventData.model_validate(record)).to_message()
    already_finished = record.status.is_terminal
    topic = import_topic(import_id)
    logger.info(f"SSE client connected for import {import_id}")

    async def event_generator() -> AsyncIterator[str]:
        pubsub = redis.pubsub()
        try:
            # Subscribe before sending the snapshot so nothing falls in between.
            await pubsub.subscribe(topic)
            yield format_sse_event(snapshot)
            if already_finished:
                return

            idle = 0.0
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None or message.get("type") != "message":
                    idle += 1.0
                    if idle >= HEARTBEAT_INTERVAL_SECONDS:
                        # Comment lines keep proxies from closing the connection
                        yield ": heartbeat\n\n"
                        idle = 0.0
                    continue

                idle = 0.0
                event = decode_message(message["data"])
                yield format_sse_event(event)
                if isinstance(event, dict) and event.get("type") in TERMINAL_EVENTS:
                    logger.info(f"Import {import_id} reached {event['type']}, closing stream")
                    return

        except asyncio.CancelledError:
            logger.info(f"SSE client disconnected for import {import_id}")
            raise

        finally:
            try:
                await pubsub.unsubscribe(topic)
                await pubsub.aclose()
            except Exception as e:
                logger.error(f"Error cleaning up Redis subscription: {e}")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering for SSE
        },
    )


def format_sse_event(data: object) -> str:
    """Format a payload as a single ``data:`` Server-Sent Events message."""
    if isinstance(data, dict):
        body = encode_message(data)
    else:
        body = json.dumps(data)
    return f"data: {body}\n\n"
