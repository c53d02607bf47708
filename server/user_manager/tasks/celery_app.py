"""Celery application factory for the user import workers."""

from celery import Celery

from user_manager.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "user_manager",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.config_from_object("user_manager.tasks.celery_config")

# Task modules are imported by the package __init__; this lets workers find them too
celery_app.autodiscover_tasks(["user_manager.tasks"])

celery_app.conf.update(
    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
)
