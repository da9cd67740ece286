"""Business logic services."""

from .errors import (
    LikeAlreadyExistsError,
    LikeCountInvariantError,
    LikeError,
    LikeErrorKind,
    LikeStorageError,
    PostNotFoundError,
    UserConflictError,
    UserNotFoundError,
)
from .like_ledger import (
    LikeCountMismatch,
    add_like,
    find_like_count_mismatches,
    get_like_count,
    has_liked,
    liked_post_ids,
    remove_like,
)
from .posts import MAX_POST_CONTENT_LENGTH, ListedPost, create_post, list_posts
from .users import create_user, list_users, user_exists

__all__ = [
    "LikeAlreadyExistsError",
    "LikeCountInvariantError",
    "LikeCountMismatch",
    "LikeError",
    "LikeErrorKind",
    "LikeStorageError",
    "ListedPost",
    "MAX_POST_CONTENT_LENGTH",
    "PostNotFoundError",
    "UserConflictError",
    "UserNotFoundError",
    "add_like",
    "create_post",
    "create_user",
    "find_like_count_mismatches",
    "get_like_count",
    "has_liked",
    "liked_post_ids",
    "list_posts",
    "list_users",
    "remove_like",
]
