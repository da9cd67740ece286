"""Post directory operations: creation and the newest-first listing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from db.errors import is_foreign_key_violation
from models import Post, User

from .errors import UserNotFoundError
from .like_ledger import liked_post_ids
from .users import user_exists

MAX_POST_CONTENT_LENGTH = 280
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListedPost:
    post: Post
    username: str
    display_name: str
    is_liked: bool


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _desc(column: Any) -> Any:
    return cast(Any, column).desc()


def validate_content(content: str) -> str:
    """Check the length bounds; the content is stored exactly as written."""
    if not content:
        raise ValueError("Post content must not be empty")
    if len(content) > MAX_POST_CONTENT_LENGTH:
        raise ValueError(
            f"Post content must be at most {MAX_POST_CONTENT_LENGTH} characters"
        )
    return content


async def create_post(session: AsyncSession, *, user_id: int, content: str) -> Post:
    validate_content(content)
    if not await user_exists(session, user_id):
        raise UserNotFoundError("User not found", user_id=user_id)

    # Starts at zero; afterwards only the like ledger writes likes_count.
    post = Post(user_id=user_id, content=content)
    session.add(post)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_foreign_key_violation(exc):
            raise UserNotFoundError("User not found", user_id=user_id) from exc
        raise
    await session.refresh(post)
    logger.info("Post created", extra={"user_id": user_id, "post_id": post.id})
    return post


async def list_posts(
    session: AsyncSession,
    *,
    viewer_id: int | None = None,
) -> list[ListedPost]:
    """Return every post with its author, newest first.

    When ``viewer_id`` is given each post carries whether that user liked it.
    """
    post_entity = cast(Any, Post)
    username_column = cast(ColumnElement[str], User.username)
    display_name_column = cast(ColumnElement[str], User.display_name)
    result = await session.execute(
        select(post_entity, username_column, display_name_column)
        .join(User, _eq(User.id, Post.user_id))
        .order_by(
            _desc(Post.created_at),
            _desc(Post.id),
        )
    )
    rows = result.all()

    liked: set[int] = set()
    if viewer_id is not None:
        post_ids = [post.id for post, _username, _display_name in rows if post.id is not None]
        liked = await liked_post_ids(session, viewer_id, post_ids)

    return [
        ListedPost(
            post=post,
            username=username,
            display_name=display_name,
            is_liked=post.id in liked,
        )
        for post, username, display_name in rows
    ]


__all__ = [
    "ListedPost",
    "MAX_POST_CONTENT_LENGTH",
    "create_post",
    "list_posts",
    "validate_content",
]
