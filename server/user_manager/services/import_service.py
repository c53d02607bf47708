"""Service layer for the user import lifecycle."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from user_manager.models.user_import import ImportStatus, UserImport, source_states
from user_manager.services.file_storage import ImportFileStorage

if TYPE_CHECKING:
    from user_manager.services.import_broadcast import ProgressBroadcaster

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "text/csv",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    }
)


class InvalidImportRequest(ValueError):
    """Raised when an import cannot be created from the supplied input."""


class ImportSchedulingError(RuntimeError):
    """Raised when a created import could not be handed to the workers."""


class ImportRepository:
    """Persists UserImport records and guards their status transitions.

    Transitions are conditional UPDATEs: they only apply while the record is
    in a state the target may be entered from, and report whether they did.
    """

    def __init__(self, session: Session) -> None:
        """Initialize repository with a SQLAlchemy session.

        Args:
            session: Active database session for executing queries
        """
        self._session = session

    def create(
        self,
        *,
        owner_id: int | None,
        file_name: str | None = None,
        file_content_type: str | None = None,
    ) -> UserImport:
        """Create a new pending import record."""
        record = UserImport(
            owner_id=owner_id,
            file_name=file_name,
            file_content_type=file_content_type,
            status=ImportStatus.PENDING,
            progress=0,
            total_rows=0,
        )
        self._session.add(record)
        self._session.commit()
        self._session.refresh(record)
        return record

    def get_by_id(self, import_id: UUID) -> UserImport | None:
        return self._session.get(UserImport, import_id)

    def _transition(self, import_id: UUID, target: ImportStatus, **values) -> bool:
        stmt = (
            update(UserImport)
            .where(UserImport.id == import_id, UserImport.status.in_(source_states(target)))
            .values(status=target, updated_at=datetime.now(timezone.utc), **values)
            .execution_options(synchronize_session="fetch")
        )
        result = self._session.execute(stmt)
        self._session.commit()
        applied = result.rowcount == 1
        if not applied:
            logger.warning(f"Import {import_id}: transition to {target.value} not applied")
        return applied

    def claim(self, import_id: UUID) -> bool:
        """Move a pending import to processing.

        Only one caller can win; a second schedule of the same import gets
        ``False`` and must not touch the record.
        """
        return self._transition(import_id, ImportStatus.PROCESSING)

    def update_progress(
        self,
        import_id: UUID,
        processed: int,
        total: int | None = None,
    ) -> UserImport | None:
        """Record rows processed so far, and optionally the total row count.

        Raises:
            ValueError: If ``processed`` falls outside ``0..total_rows``
        """
        record = self.get_by_id(import_id)
        if record is None or record.status is not ImportStatus.PROCESSING:
            return None

        total_rows = record.total_rows if total is None else total
        if processed < 0 or total_rows < 0 or processed > total_rows:
            msg = f"progress {processed} out of range for {total_rows} rows"
            raise ValueError(msg)

        record.progress = processed
        record.total_rows = total_rows
        record.updated_at = datetime.now(timezone.utc)
        self._session.commit()
        return record

    def mark_completed(self, import_id: UUID, error_message: str | None = None) -> bool:
        return self._transition(
            import_id,
            ImportStatus.COMPLETED,
            progress=UserImport.total_rows,
            error_message=error_message,
        )

    def mark_failed(self, import_id: UUID, error_message: str) -> bool:
        return self._transition(import_id, ImportStatus.FAILED, error_message=error_message)

    def attach_file(
        self,
        import_id: UUID,
        *,
        file_name: str,
        file_content_type: str | None,
        file_path: str | Path,
    ) -> UserImport | None:
        record = self.get_by_id(import_id)
        if record is None:
            return None
        record.file_name = file_name
        record.file_content_type = file_content_type
        record.file_path = str(file_path)
        record.updated_at = datetime.now(timezone.utc)
        self._session.commit()
        return record

    def list_recent(self, page: int = 1, page_size: int = 20) -> tuple[list[UserImport], int]:
        """Fetch imports newest first, with the overall count."""
        total = self._session.scalar(select(func.count()).select_from(UserImport)) or 0
        stmt = (
            select(UserImport)
            .order_by(UserImport.created_at.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        return list(self._session.execute(stmt).scalars().unique()), total

    def count_active(self) -> int:
        stmt = select(func.count()).select_from(UserImport).where(
            UserImport.status.in_((ImportStatus.PENDING, ImportStatus.PROCESSING))
        )
        return self._session.scalar(stmt) or 0


class ImportService:
    """Creates import records and hands them to the background workers.

    Creating an import never processes rows; it only stores the request and
    schedules the work, so callers return immediately.
    """

    def __init__(
        self,
        session: Session,
        storage: ImportFileStorage,
        *,
        broadcaster: ProgressBroadcaster | None = None,
        max_upload_size_mb: int | None = None,
    ) -> None:
        self._session = session
        self._repository = ImportRepository(session)
        self._storage = storage
        self._broadcaster = broadcaster
        self._max_upload_size_mb = max_upload_size_mb

    def create_from_upload(
        self,
        owner_id: int | None,
        *,
        filename: str,
        content_type: str | None,
        stream: BinaryIO,
    ) -> UserImport:
        """Store an uploaded file on a new import and schedule processing.

        Raises:
            InvalidImportRequest: If the file is missing a name, has a disallowed
                content type, or is larger than the upload limit
        """
        if not filename:
            raise InvalidImportRequest("Filename is required")
        content_type = (content_type or "").split(";")[0].strip().lower()
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise InvalidImportRequest("File must be a CSV or Excel file")

        record = self._repository.create(
            owner_id=owner_id,
            file_name=Path(filename).name,
            file_content_type=content_type,
        )
        path = self._storage.save(record.id, filename, stream)
        if self._max_upload_size_mb is not None and self._storage.size_mb(path) > self._max_upload_size_mb:
            self._storage.delete(path)
            self._session.delete(record)
            self._session.commit()
            raise InvalidImportRequest(f"File exceeds maximum allowed size ({self._max_upload_size_mb} MB)")

        record = self._repository.attach_file(
            record.id,
            file_name=record.file_name,
            file_content_type=content_type,
            file_path=path,
        )
        self._announce(record)
        try:
            self.schedule_import(record.id)
        except Exception as e:
            self._abandon(record, e)
        return record

    def create_from_url(self, owner_id: int | None, *, file_url: str) -> UserImport:
        """Create an import whose file will be downloaded by a worker first."""
        file_url = (file_url or "").strip()
        if not file_url:
            raise InvalidImportRequest("File URL is required")

        record = self._repository.create(owner_id=owner_id, file_name=Path(file_url.split("?")[0]).name or None)
        self._announce(record)
        try:
            self.schedule_download(record.id, file_url)
        except Exception as e:
            self._abandon(record, e)
        return record

    def schedule_import(self, import_id: UUID) -> str:
        """Publish the processing task; returns the Celery task id."""
        # Lazy import to avoid circular dependencies and allow testing without full setup
        from user_manager.tasks.import_tasks import process_user_import

        task = process_user_import.apply_async(args=[str(import_id)], task_id=f"import-{import_id}")
        logger.info(f"Scheduled processing for import {import_id}")
        return task.id

    def schedule_download(self, import_id: UUID, file_url: str) -> str:
        from user_manager.tasks.download_tasks import download_import_file

        task = download_import_file.apply_async(args=[str(import_id), file_url], task_id=f"download-{import_id}")
        logger.info(f"Scheduled download for import {import_id} from {file_url}")
        return task.id

    def get_import(self, import_id: UUID) -> UserImport | None:
        return self._repository.get_by_id(import_id)

    def list_imports(self, page: int = 1, page_size: int = 20) -> tuple[list[UserImport], int]:
        return self._repository.list_recent(page=page, page_size=page_size)

    def _announce(self, record: UserImport) -> None:
        if self._broadcaster is not None:
            self._broadcaster.created(record, pending_imports=self._repository.count_active())

    def _abandon(self, record: UserImport, error: Exception) -> None:
        """Fail an import nobody will ever pick up, then report it to the caller.

        Raises:
            ImportSchedulingError: Always, chained to ``error``
        """
        logger.error(f"Import {record.id}: could not be scheduled: {error}", exc_info=True)
        message = f"Failed to schedule import: {error}"
        if self._repository.mark_failed(record.id, message) and self._broadcaster is not None:
            self._broadcaster.failed(self._repository.get_by_id(record.id))
        raise ImportSchedulingError(message) from error


def extension_of(file_name: str | None) -> str:
    return Path(file_name or "").suffix.lower()


