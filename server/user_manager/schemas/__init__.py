"""Public schema exports."""

from .user import UserBase, UserCreate, UserImportRow, first_error_message
from .user_import import ImportEvent, ImportEventData, UserImportListResponse, UserImportResponse

__all__ = [
    "UserBase",
    "UserCreate",
    "UserImportRow",
    "first_error_message",
    "ImportEvent",
    "ImportEventData",
    "UserImportListResponse",
    "UserImportResponse",
]
