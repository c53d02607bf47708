"""Services module for business logic."""
from __future__ import annotations

from .avatar_service import AvatarDownloadError, AvatarFromUrlService
from .batch_processor import BatchProcessor, ImportContext, ImportRunStats, build_delay
from .file_download import DownloadedFile, FileDownloadError, FileDownloadService
from .file_storage import ImportFileStorage
from .import_broadcast import ProgressBroadcaster, import_topic, should_forward_progress
from .import_service import ImportRepository, ImportSchedulingError, ImportService, InvalidImportRequest
from .notifications import LoggingWelcomeNotifier, WelcomeNotifier
from .row_materializer import RowMaterializer, RowOutcome, resolve_row
from .row_source import RowSource, UnsupportedFileType, open_rows
from .user_repository import UserRepository

__all__ = [
    "AvatarDownloadError",
    "AvatarFromUrlService",
    "BatchProcessor",
    "ImportContext",
    "ImportRunStats",
    "build_delay",
    "DownloadedFile",
    "FileDownloadError",
    "FileDownloadService",
    "ImportFileStorage",
    "ProgressBroadcaster",
    "import_topic",
    "should_forward_progress",
    "ImportRepository",
    "ImportSchedulingError",
    "ImportService",
    "InvalidImportRequest",
    "LoggingWelcomeNotifier",
    "WelcomeNotifier",
    "RowMaterializer",
    "RowOutcome",
    "resolve_row",
    "RowSource",
    "UnsupportedFileType",
    "open_rows",
    "UserRepository",
]
