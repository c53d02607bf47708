"""Fan-out of import lifecycle events to the per-import and aggregate topics."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping
from uuid import UUID

from user_manager.core.redis_manager import Publisher
from user_manager.models.user_import import UserImport
from user_manager.schemas.user_import import ImportEvent, ImportEventData

logger = logging.getLogger(__name__)

DEFAULT_AGGREGATE_TOPIC = "admin_imports"

EVENT_CREATED = "created"
EVENT_STARTED = "started"
EVENT_PROGRESS = "progress_update"
EVENT_COMPLETED = "completed"
EVENT_FAILED = "failed"
TERMINAL_EVENTS = frozenset({EVENT_COMPLETED, EVENT_FAILED})


def import_topic(import_id: UUID | str) -> str:
    return f"import_{import_id}"


def should_forward_progress(percentage: int) -> bool:
    """Aggregate subscribers only hear about every tenth percent."""
    return percentage % 10 == 0 or percentage == 100


class ProgressBroadcaster:
    """Publishes import events without ever failing the caller.

    The per-import topic gets every event. The aggregate topic gets lifecycle
    events always, but progress updates only on multiples of ten percent,
    which caps it at roughly eleven progress messages per import.
    """

    def __init__(self, publisher: Publisher, *, aggregate_topic: str = DEFAULT_AGGREGATE_TOPIC) -> None:
        self._publisher = publisher
        self._aggregate_topic = aggregate_topic

    @property
    def aggregate_topic(self) -> str:
        return self._aggregate_topic

    def created(self, record: UserImport, *, pending_imports: int | None = None) -> None:
        extra = {"pending_imports": pending_imports} if pending_imports is not None else None
        self._publish(self._aggregate_topic, self._event(EVENT_CREATED, record, topic=import_topic(record.id)), extra)

    def started(self, record: UserImport) -> None:
        self._broadcast(EVENT_STARTED, record)

    def progress(
        self,
        record: UserImport,
        *,
        successful: int,
        failed: int,
        recent_errors: Iterable[str],
    ) -> None:
        self._broadcast(
            EVENT_PROGRESS,
            record,
            forward=should_forward_progress(record.percentage),
            successful_imports=successful,
            failed_imports=failed,
            recent_errors=list(recent_errors),
        )

    def completed(
        self,
        record: UserImport,
        *,
        successful: int,
        failed: int,
        recent_errors: Iterable[str],
    ) -> None:
        self._broadcast(
            EVENT_COMPLETED,
            record,
            successful_imports=successful,
            failed_imports=failed,
            recent_errors=list(recent_errors),
        )

    def failed(self, record: UserImport) -> None:
        self._broadcast(EVENT_FAILED, record)

    def _broadcast(self, event_type: str, record: UserImport, *, forward: bool = True, **stats: Any) -> None:
        topic = import_topic(record.id)
        self._publish(topic, self._event(event_type, record, **stats))
        if forward:
            self._publish(self._aggregate_topic, self._event(event_type, record, topic=topic, **stats))

    @staticmethod
    def _event(event_type: str, record: UserImport, **fields: Any) -> ImportEvent:
        data = ImportEventData.model_validate(record).model_copy(update=fields)
        return ImportEvent(type=event_type, data=data)

    def _publish(self, topic: str, event: ImportEvent, extra: Mapping[str, Any] | None = None) -> None:
        message = event.to_message()
        if extra:
            message.update(extra)
        try:
            self._publisher.publish(topic, message)
        except Exception as e:
            # Subscribers can always fall back to the persisted record.
            logger.warning(f"Failed to publish {event.type} event on {topic}: {e}")
