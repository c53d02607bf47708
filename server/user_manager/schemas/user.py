"""Pydantic schemas for user payloads and import rows."""
from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from user_manager.models.user import DEFAULT_ROLE, ROLES

# The HTML5 "valid e-mail address" grammar.
EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
MIN_PASSWORD_LENGTH = 6


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class UserBase(BaseModel):
    """Shared attributes for user payloads."""

    full_name: str = Field(description="Display name")
    email: str = Field(description="Login email, stored lower-cased")
    role: str = Field(default=DEFAULT_ROLE, description="Either 'admin' or 'user'")

    @field_validator("full_name", mode="before")
    @classmethod
    def require_full_name(cls, value: Any) -> str:
        value = _blank_to_none(value)
        if value is None:
            raise ValueError("Full name is required")
        value = str(value)
        if not 2 <= len(value) <= 100:
            raise ValueError("Full name must be between 2 and 100 characters")
        return value

    @field_validator("email", mode="before")
    @classmethod
    def require_valid_email(cls, value: Any) -> str:
        value = _blank_to_none(value)
        if value is None:
            raise ValueError("Email is required")
        value = str(value).lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Email has an invalid format")
        return value

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value: Any) -> str:
        value = _blank_to_none(value)
        if value is None:
            return DEFAULT_ROLE
        value = str(value).lower()
        if value not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return value


def _check_password_length(value: str | None) -> str | None:
    if value is not None and len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password is too short (minimum is {MIN_PASSWORD_LENGTH} characters)")
    return value


class UserCreate(UserBase):
    """Payload used when creating a user; the password is hashed on save."""

    password: str
    avatar_url: str | None = None

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password_length(value)


class UserImportRow(UserBase):
    """One spreadsheet row after header aliases have been resolved."""

    password: str | None = None
    avatar_url: str | None = None

    @field_validator("password", "avatar_url", mode="before")
    @classmethod
    def blank_is_missing(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str | None) -> str | None:
        return _check_password_length(value)


def first_error_message(exc: ValidationError) -> str:
    """Return the message of the first failing field, without pydantic's prefix."""
    errors = exc.errors()
    if not errors:
        return str(exc)
    error = errors[0]
    original = (error.get("ctx") or {}).get("error")
    if original is not None:
        return str(original)
    field = error["loc"][0] if error["loc"] else "row"
    return f"{field}: {error['msg']}"
