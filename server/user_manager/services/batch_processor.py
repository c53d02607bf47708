"""Drives one user import from its attached file to a terminal state."""
from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable
from uuid import UUID

from user_manager.models.user_import import UserImport
from user_manager.services.file_storage import ImportFileStorage
from user_manager.services.import_broadcast import ProgressBroadcaster
from user_manager.services.import_service import ImportRepository, extension_of
from user_manager.services.row_materializer import RowMaterializer, RowOutcome
from user_manager.services.row_source import open_rows
from user_manager.utils.batching import chunked

if TYPE_CHECKING:
    from user_manager.core.db import SessionScope

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
RECENT_ERRORS_LIMIT = 5
SUMMARY_ERRORS_LIMIT = 3

Delay = Callable[[], None]


def no_delay() -> None:
    return None


def build_delay(seconds: float) -> Delay:
    """Return a pause to run between batches; a no-op for zero seconds."""
    if seconds <= 0:
        return no_delay
    return lambda: time.sleep(seconds)


@dataclass
class ImportContext:
    """Identity of the run, handed explicitly to every stage."""

    import_id: UUID
    file_name: str | None
    total_rows: int = 0


@dataclass
class ImportRunStats:
    """Running counters for one import run."""

    recent_limit: int = RECENT_ERRORS_LIMIT
    successful: int = 0
    failed: int = 0
    recent_errors: deque[str] = field(init=False)
    first_errors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.recent_errors = deque(maxlen=self.recent_limit)

    def record(self, outcome: RowOutcome) -> None:
        if outcome.is_success:
            self.successful += 1
            return
        self.failed += 1
        reason = outcome.reason or "Unknown error"
        self.recent_errors.append(reason)
        if len(self.first_errors) < SUMMARY_ERRORS_LIMIT:
            self.first_errors.append(reason)

    @property
    def attempted(self) -> int:
        return self.successful + self.failed

    def summary(self) -> str | None:
        """Error message for a completed run, or None when every row succeeded."""
        if not self.failed:
            return None
        return f"Import completed with {self.failed} errors. First errors: {'; '.join(self.first_errors)}"


class BatchProcessor:
    """Runs the row source through the materializer in fixed-size batches.

    The processor is the only writer of its import record. It claims the
    record first, so a second schedule of the same import does nothing.
    Row failures are counted and the run carries on; anything else fails the
    whole import and stops.
    """

    def __init__(
        self,
        session_scope: SessionScope,
        storage: ImportFileStorage,
        broadcaster: ProgressBroadcaster,
        materializer: RowMaterializer,
        *,
        batch_size: int = BATCH_SIZE,
        recent_errors_limit: int = RECENT_ERRORS_LIMIT,
        delay: Delay = no_delay,
    ) -> None:
        self._session_scope = session_scope
        self._storage = storage
        self._broadcaster = broadcaster
        self._materializer = materializer
        self._batch_size = batch_size
        self._recent_errors_limit = recent_errors_limit
        self._delay = delay

    def run(self, import_id: UUID) -> dict[str, Any]:
        """Process the import end to end and return a summary dict."""
        with self._session_scope() as session:
            claimed = ImportRepository(session).claim(import_id)
        if not claimed:
            logger.warning(f"Import {import_id}: not pending, skipping duplicate or stale run")
            return {"status": "skipped", "import_id": str(import_id)}

        record = self._load(import_id)
        context = ImportContext(import_id=import_id, file_name=record.file_name)
        stats = ImportRunStats(recent_limit=self._recent_errors_limit)
        logger.info(f"Import {import_id}: processing {context.file_name}")

        try:
            self._process(context, record, stats)
        except Exception as e:
            logger.error(f"Import {import_id}: failed after {stats.attempted} rows: {e}", exc_info=True)
            return self._fail(context, e)

        logger.info(
            f"Import {import_id}: completed ({stats.successful} succeeded, {stats.failed} failed "
            f"of {context.total_rows})"
        )
        return {
            "status": "completed",
            "import_id": str(import_id),
            "total_rows": context.total_rows,
            "successful_imports": stats.successful,
            "failed_imports": stats.failed,
        }

    def _process(self, context: ImportContext, record: UserImport, stats: ImportRunStats) -> None:
        if not record.file_path:
            raise FileNotFoundError("No file attached to import")

        data = self._storage.read(record.file_path)
        source = open_rows(data, extension_of(context.file_name))
        context.total_rows = source.total_rows

        record = self._update_progress(context, 0, total=source.total_rows)
        self._broadcaster.started(record)

        index = 0
        for batch_number, batch in enumerate(chunked(source, self._batch_size), start=1):
            for row in batch:
                # Line numbers count the header as line 1.
                outcome = self._materializer.materialize(row, index + 2, import_id=context.import_id)
                stats.record(outcome)
                index += 1
                record = self._update_progress(context, index)

            logger.debug(f"Import {context.import_id}: batch {batch_number} done ({index}/{context.total_rows})")
            self._broadcaster.progress(
                record,
                successful=stats.successful,
                failed=stats.failed,
                recent_errors=stats.recent_errors,
            )
            self._delay()

        with self._session_scope() as session:
            ImportRepository(session).mark_completed(context.import_id, stats.summary())
        self._broadcaster.completed(
            self._load(context.import_id),
            successful=stats.successful,
            failed=stats.failed,
            recent_errors=stats.recent_errors,
        )

    def _update_progress(self, context: ImportContext, processed: int, total: int | None = None) -> UserImport:
        with self._session_scope() as session:
            record = ImportRepository(session).update_progress(context.import_id, processed, total)
        if record is None:
            raise RuntimeError(f"Import {context.import_id} is no longer processing")
        return record

    def _fail(self, context: ImportContext, error: Exception) -> dict[str, Any]:
        message = str(error) or type(error).__name__
        with self._session_scope() as session:
            ImportRepository(session).mark_failed(context.import_id, message)
        self._broadcaster.failed(self._load(context.import_id))
        return {"status": "failed", "import_id": str(context.import_id), "error": message}

    def _load(self, import_id: UUID) -> UserImport:
        with self._session_scope() as session:
            record = ImportRepository(session).get_by_id(import_id)
        if record is None:
            raise LookupError(f"Import {import_id} not found")
        return record
