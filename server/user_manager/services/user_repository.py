"""User repository: the create/update primitives used by the import pipeline."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from user_manager.core.security import hash_password
from user_manager.models.user import User
from user_manager.schemas.user import UserCreate


class UserRepository:
    """Handles database operations for User entities."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, user_id: int) -> User | None:
        return self._session.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email. Emails are stored lower-cased, so match on that."""
        normalized = email.strip().lower()
        stmt = select(User).where(func.lower(User.email) == normalized)
        return self._session.execute(stmt).scalars().first()

    def create(self, user: UserCreate) -> User:
        """Insert a new user, hashing the supplied password.

        Flushes so the id is available, but leaves committing to the caller.

        Raises:
            IntegrityError: If the email is already taken (case-insensitive)
        """
        db_user = User(
            full_name=user.full_name,
            email=user.email,
            role=user.role,
            encrypted_password=hash_password(user.password),
            avatar_url=user.avatar_url,
        )
        self._session.add(db_user)
        self._session.flush()
        return db_user

    def update_profile(
        self,
        db_user: User,
        *,
        full_name: str,
        role: str,
        avatar_url: str | None = None,
    ) -> User:
        """Update name and role in place. The email is never changed here."""
        db_user.full_name = full_name
        db_user.role = role
        if avatar_url is not None:
            db_user.avatar_url = avatar_url
        db_user.updated_at = datetime.now(timezone.utc)
        self._session.flush()
        return db_user

    def set_password(self, db_user: User, password: str) -> User:
        db_user.encrypted_password = hash_password(password)
        self._session.flush()
        return db_user

    def set_avatar_path(self, user_id: int, path: str) -> User | None:
        db_user = self.get_by_id(user_id)
        if db_user is None:
            return None
        db_user.avatar_path = path
        self._session.flush()
        return db_user
