"""Convert a single import row into a created or updated user."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Mapping
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from user_manager.core.security import generate_password
from user_manager.schemas.user import UserCreate, UserImportRow, first_error_message
from user_manager.services.notifications import LoggingWelcomeNotifier, WelcomeNotifier
from user_manager.services.user_repository import UserRepository

if TYPE_CHECKING:
    from user_manager.core.db import SessionScope

logger = logging.getLogger(__name__)

AvatarScheduler = Callable[[int, str], None]

# Candidate headers per field, tried in order; the first non-blank value wins.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "full_name": ("full_name", "name", "Full Name", "Nome Completo"),
    "email": ("email", "Email", "E-mail"),
    "role": ("role", "Role"),
    "password": ("password", "Password"),
    "avatar_url": ("avatar_url",),
}


def resolve_field(row: Mapping[str, str | None], candidates: tuple[str, ...]) -> str | None:
    for key in candidates:
        value = row.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def resolve_row(row: Mapping[str, str | None]) -> dict[str, str | None]:
    """Map a raw header-keyed row onto the logical user fields."""
    return {field: resolve_field(row, candidates) for field, candidates in FIELD_ALIASES.items()}


class OutcomeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RowOutcome:
    """Result of materializing one row. Never persisted on its own."""

    kind: OutcomeKind
    reason: str | None = None
    user_id: int | None = None

    @classmethod
    def created(cls, user_id: int) -> "RowOutcome":
        return cls(OutcomeKind.CREATED, user_id=user_id)

    @classmethod
    def updated(cls, user_id: int) -> "RowOutcome":
        return cls(OutcomeKind.UPDATED, user_id=user_id)

    @classmethod
    def rejected(cls, reason: str) -> "RowOutcome":
        return cls(OutcomeKind.REJECTED, reason=reason)

    @property
    def is_success(self) -> bool:
        return self.kind is not OutcomeKind.REJECTED


class RowMaterializer:
    """Creates or updates one user per row, isolating every failure to its row.

    Each row runs in its own transaction. A generated password only lives in
    memory until it has been handed to the welcome notifier.
    """

    def __init__(
        self,
        session_scope: SessionScope,
        *,
        notifier: WelcomeNotifier | None = None,
        avatar_scheduler: AvatarScheduler | None = None,
        password_generator: Callable[[], str] = generate_password,
    ) -> None:
        self._session_scope = session_scope
        self._notifier = notifier or LoggingWelcomeNotifier()
        self._avatar_scheduler = avatar_scheduler
        self._generate_password = password_generator

    def materialize(
        self,
        row: Mapping[str, str | None],
        row_number: int,
        *,
        import_id: UUID | None = None,
    ) -> RowOutcome:
        """Apply ``row`` and report the outcome.

        Args:
            row: Header-keyed values from the row source
            row_number: Line of the row in the file, counting the header as line 1
            import_id: Owning import, used for log context only
        """
        try:
            data = UserImportRow(**resolve_row(row))
            outcome, generated_password = self._apply(data)
        except Exception as e:
            reason = f"Row {row_number}: {self._describe(e)}"
            logger.info(f"Import {import_id}: rejected {reason}")
            return RowOutcome.rejected(reason)

        if generated_password is not None:
            self._send_welcome(data, generated_password)
        if data.avatar_url and outcome.user_id is not None:
            self._schedule_avatar(outcome.user_id, data.avatar_url)
        return outcome

    def _apply(self, data: UserImportRow) -> tuple[RowOutcome, str | None]:
        with self._session_scope() as session:
            users = UserRepository(session)
            existing = users.get_by_email(data.email)
            if existing is not None:
                users.update_profile(
                    existing,
                    full_name=data.full_name,
                    role=data.role,
                    avatar_url=data.avatar_url,
                )
                if data.password is not None:
                    users.set_password(existing, data.password)
                return RowOutcome.updated(existing.id), None

            generated_password = None if data.password is not None else self._generate_password()
            user = users.create(
                UserCreate(
                    full_name=data.full_name,
                    email=data.email,
                    role=data.role,
                    password=data.password or generated_password,
                    avatar_url=data.avatar_url,
                )
            )
            return RowOutcome.created(user.id), generated_password

    def _send_welcome(self, data: UserImportRow, password: str) -> None:
        try:
            self._notifier.send_welcome(data.email, data.full_name, password)
        except Exception as e:
            logger.warning(f"Welcome notification for {data.email} failed: {e}")

    def _schedule_avatar(self, user_id: int, url: str) -> None:
        if self._avatar_scheduler is None:
            return
        try:
            self._avatar_scheduler(user_id, url)
        except Exception as e:
            logger.warning(f"Could not schedule avatar download for user {user_id}: {e}")

    @staticmethod
    def _describe(error: Exception) -> str:
        if isinstance(error, ValidationError):
            return first_error_message(error)
        if isinstance(error, IntegrityError):
            return "Email has already been taken"
        return str(error) or type(error).__name__
