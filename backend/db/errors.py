"""Database error helpers."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION_SQLSTATE = "23505"
FOREIGN_KEY_VIOLATION_SQLSTATE = "23503"


def _sqlstate(error: IntegrityError) -> str | None:
    original = getattr(error, "orig", None)
    return getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)


def _message(error: IntegrityError) -> str:
    return str(getattr(error, "orig", None) or error).lower()


def is_unique_violation(error: IntegrityError) -> bool:
    """Return True when the IntegrityError indicates a unique-constraint conflict."""
    if _sqlstate(error) == UNIQUE_VIOLATION_SQLSTATE:
        return True
    message = _message(error)
    return "duplicate key" in message or "unique constraint" in message


def is_foreign_key_violation(error: IntegrityError) -> bool:
    """Return True when the IntegrityError points at a missing referenced row."""
    if _sqlstate(error) == FOREIGN_KEY_VIOLATION_SQLSTATE:
        return True
    return "foreign key constraint" in _message(error)


__all__ = ["is_foreign_key_violation", "is_unique_violation"]
