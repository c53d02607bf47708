"""Welcome notifications for users created by an import."""
from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class WelcomeNotifier(Protocol):
    """Delivers a one-shot welcome message carrying a generated password."""

    def send_welcome(self, email: str, full_name: str, password: str) -> None:
        ...


class LoggingWelcomeNotifier:
    """Default notifier until a mail transport is wired in.

    Records that a welcome message was due; the password is dropped.
    """

    def send_welcome(self, email: str, full_name: str, password: str) -> None:
        logger.info(f"Welcome notification dispatched to {email} ({full_name})")
