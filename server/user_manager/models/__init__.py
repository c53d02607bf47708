"""ORM models exposed for external modules."""
from .base import Base
from .user import DEFAULT_ROLE, ROLES, User
from .user_import import ALLOWED_TRANSITIONS, ImportStatus, UserImport, can_transition, source_states

__all__ = [
    "Base",
    "User",
    "ROLES",
    "DEFAULT_ROLE",
    "UserImport",
    "ImportStatus",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "source_states",
]
