"""User import model and its status state machine."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .user import User


class ImportStatus(str, Enum):
    """Enumerates the lifecycle states a user import can be in."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportStatus.COMPLETED, ImportStatus.FAILED)


# Status only moves forward; terminal states have no way out.
ALLOWED_TRANSITIONS: dict[ImportStatus, frozenset[ImportStatus]] = {
    ImportStatus.PENDING: frozenset({ImportStatus.PROCESSING, ImportStatus.FAILED}),
    ImportStatus.PROCESSING: frozenset({ImportStatus.COMPLETED, ImportStatus.FAILED}),
    ImportStatus.COMPLETED: frozenset(),
    ImportStatus.FAILED: frozenset(),
}


def can_transition(current: ImportStatus, target: ImportStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def source_states(target: ImportStatus) -> tuple[ImportStatus, ...]:
    """Return every status from which ``target`` may be entered."""
    return tuple(status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets)


class UserImport(Base):
    """Tracks one bulk user import: its attached file, status and progress."""

    __tablename__ = "user_imports"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    owner_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[ImportStatus] = mapped_column(
        SAEnum(ImportStatus, name="user_import_status", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=ImportStatus.PENDING,
        server_default=ImportStatus.PENDING.value,
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_content_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    owner: Mapped[User | None] = relationship(User, lazy="joined")

    @property
    def percentage(self) -> int:
        """Completion percentage, rounded half up to the nearest integer."""
        if not self.total_rows:
            return 0
        return (self.progress * 200 + self.total_rows) // (2 * self.total_rows)
