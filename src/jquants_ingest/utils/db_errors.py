"""Classification of database driver errors."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION_SQLSTATE = "23505"


def is_unique_violation(error: IntegrityError) -> bool:
    """Return whether ``error`` is a duplicate-key violation."""

    original = error.orig
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION_SQLSTATE:
        return True

    message = str(original).lower()
    return "unique constraint" in message or "duplicate key" in message


__all__ = ["is_unique_violation"]
