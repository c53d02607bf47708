"""Pydantic schemas describing user import payloads and broadcast events."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from user_manager.models.user_import import ImportStatus


class UserImportResponse(BaseModel):
    """Full representation of a user import, as served by the API."""

    id: UUID
    status: ImportStatus
    progress: int = Field(ge=0)
    total_rows: int = Field(ge=0)
    percentage: int = Field(ge=0, le=100)
    error_message: str | None = None
    file_name: str | None = None
    owner_id: int | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserImportListResponse(BaseModel):
    """Paginated response wrapper for import lists."""

    items: list[UserImportResponse]
    total: int
    page: int
    page_size: int


class ImportEventData(BaseModel):
    """Snapshot of an import carried by every broadcast event."""

    id: UUID
    status: ImportStatus
    progress: int
    total_rows: int
    percentage: int
    error_message: str | None = None
    file_name: str | None = None
    created_at: datetime
    successful_imports: int | None = None
    failed_imports: int | None = None
    recent_errors: list[str] | None = None
    topic: str | None = Field(default=None, description="Per-import topic, set on aggregate events")

    model_config = ConfigDict(from_attributes=True)


class ImportEvent(BaseModel):
    """Envelope published on the import topics."""

    type: str
    data: ImportEventData

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
