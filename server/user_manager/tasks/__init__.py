"""Tasks module for background job processing."""
from __future__ import annotations

from .avatar_tasks import attach_avatar_from_url
from .celery_app import celery_app
from .download_tasks import download_import_file
from .import_tasks import process_user_import

__all__ = [
    "attach_avatar_from_url",
    "celery_app",
    "download_import_file",
    "process_user_import",
]
