"""Error kinds raised by the directory and like ledger services."""

from __future__ import annotations

from enum import Enum


class LikeErrorKind(str, Enum):
    USER_NOT_FOUND = "user_not_found"
    POST_NOT_FOUND = "post_not_found"
    ALREADY_EXISTS = "already_exists"
    STORAGE_FAILURE = "storage_failure"


class LikeError(Exception):
    """Base class for failures reported by the like ledger.

    Every subclass pins a ``kind`` so callers can branch on it exhaustively.
    """

    kind: LikeErrorKind

    def __init__(self, message: str, *, user_id: int | None = None, post_id: int | None = None) -> None:
        super().__init__(message)
        self.user_id = user_id
        self.post_id = post_id


class UserNotFoundError(LikeError):
    kind = LikeErrorKind.USER_NOT_FOUND


class PostNotFoundError(LikeError):
    kind = LikeErrorKind.POST_NOT_FOUND


class LikeAlreadyExistsError(LikeError):
    kind = LikeErrorKind.ALREADY_EXISTS


class LikeStorageError(LikeError):
    kind = LikeErrorKind.STORAGE_FAILURE


class LikeCountInvariantError(RuntimeError):
    """A post's like counter disagreed with its like rows during a removal."""


class UserConflictError(Exception):
    """Username or email is already registered."""


__all__ = [
    "LikeAlreadyExistsError",
    "LikeCountInvariantError",
    "LikeError",
    "LikeErrorKind",
    "LikeStorageError",
    "PostNotFoundError",
    "UserConflictError",
    "UserNotFoundError",
]
