"""Celery task that downloads a remote import file before processing."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable
from uuid import UUID

from user_manager.core.config import get_settings
from user_manager.core.db import session_scope
from user_manager.core.redis_manager import RedisPublisher
from user_manager.models.user_import import ImportStatus
from user_manager.services.file_download import FileDownloadError, FileDownloadService
from user_manager.services.file_storage import ImportFileStorage
from user_manager.services.import_broadcast import ProgressBroadcaster
from user_manager.services.import_service import ImportRepository
from user_manager.tasks.celery_app import celery_app

if TYPE_CHECKING:
    from user_manager.core.db import SessionScope

logger = logging.getLogger(__name__)


def fetch_into_import(
    import_id: UUID,
    file_url: str,
    *,
    downloader: FileDownloadService,
    storage: ImportFileStorage,
    broadcaster: ProgressBroadcaster,
    session_scope: SessionScope,
    schedule: Callable[[UUID], object],
) -> dict:
    """Download ``file_url``, attach it to the pending import and schedule it.

    Any failure marks the import failed; nothing is retried and no rows are
    ever processed for it.
    """
    with session_scope() as session:
        record = ImportRepository(session).get_by_id(import_id)
        status = record.status if record is not None else None
    if status is not ImportStatus.PENDING:
        logger.warning(f"Import {import_id}: not pending ({status}), skipping download")
        return {"status": "skipped", "import_id": str(import_id)}

    try:
        downloaded = downloader.download(file_url)
    except FileDownloadError as e:
        return _fail(import_id, str(e), broadcaster, session_scope)
    except Exception as e:
        logger.error(f"Import {import_id}: unexpected error downloading {file_url}: {e}", exc_info=True)
        return _fail(import_id, f"Failed to download file: {e}", broadcaster, session_scope)

    try:
        path = storage.save_from_path(import_id, downloaded.filename, downloaded.path)
        with session_scope() as session:
            ImportRepository(session).attach_file(
                import_id,
                file_name=downloaded.filename,
                file_content_type=downloaded.content_type,
                file_path=path,
            )
    except Exception as e:
        logger.error(f"Import {import_id}: could not attach downloaded file: {e}", exc_info=True)
        return _fail(import_id, f"Failed to attach downloaded file: {e}", broadcaster, session_scope)
    finally:
        downloaded.release()

    schedule(import_id)
    logger.info(f"Import {import_id}: attached {downloaded.filename} from {file_url}")
    return {"status": "downloaded", "import_id": str(import_id), "file_name": downloaded.filename}


def _fail(import_id: UUID, message: str, broadcaster: ProgressBroadcaster, session_scope: SessionScope) -> dict:
    logger.error(f"Import {import_id}: {message}")
    with session_scope() as session:
        repo = ImportRepository(session)
        repo.mark_failed(import_id, message)
        record = repo.get_by_id(import_id)
    if record is not None:
        broadcaster.failed(record)
    return {"status": "failed", "import_id": str(import_id), "error": message}


def _schedule_processing(import_id: UUID) -> None:
    from user_manager.tasks.import_tasks import process_user_import

    process_user_import.apply_async(args=[str(import_id)], task_id=f"import-{import_id}")


@celery_app.task(name="download_import_file", bind=True, acks_late=True)
def download_import_file(self, import_id: str, file_url: str) -> dict:
    """Fetch the file for a URL-based import, then queue its processing.

    Args:
        import_id: UUID string of the user import
        file_url: Remote location of the CSV or spreadsheet

    Returns:
        dict with the download outcome
    """
    settings = get_settings()
    publisher = RedisPublisher.from_url(settings.redis_url)
    try:
        return fetch_into_import(
            UUID(import_id),
            file_url,
            downloader=FileDownloadService(
                tmp_dir=settings.upload_tmp_dir,
                timeout=settings.download_timeout_seconds,
            ),
            storage=ImportFileStorage(settings.import_storage_dir),
            broadcaster=ProgressBroadcaster(publisher, aggregate_topic=settings.aggregate_topic),
            session_scope=session_scope,
            schedule=_schedule_processing,
        )
    finally:
        publisher.close()
