"""Like ledger: like rows plus the denormalized per-post like counter.

Every mutation runs as one transaction whose first statement touches the
target post row. On PostgreSQL that takes the post's row lock, on SQLite it
takes the database write lock, so add/remove calls for the same post are
serialised while calls for different posts proceed independently (PostgreSQL)
or simply queue on the busy timeout (SQLite). Counter changes are always a
single ``likes_count = likes_count +/- 1`` statement inside that transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, cast

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from db.errors import is_unique_violation
from models import Like, Post, User

from .errors import (
    LikeAlreadyExistsError,
    LikeCountInvariantError,
    LikeStorageError,
    PostNotFoundError,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LikeCountMismatch:
    post_id: int
    likes_count: int
    like_rows: int


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _rowcount(result: Any) -> int:
    return int(cast(Any, result).rowcount or 0)


def _require_idle(session: AsyncSession) -> None:
    if session.in_transaction():
        raise RuntimeError(
            "Like ledger mutations must start on a session with no open transaction"
        )


async def _lock_post(session: AsyncSession, post_id: int) -> bool:
    """Touch the post row so concurrent writers for this post queue behind us."""
    likes_count_column = cast(ColumnElement[int], Post.likes_count)
    result = await session.execute(
        update(Post)
        .where(_eq(Post.id, post_id))
        .values(likes_count=likes_count_column)
        .execution_options(synchronize_session=False)
    )
    return _rowcount(result) == 1


async def _user_exists(session: AsyncSession, user_id: int) -> bool:
    user_id_column = cast(ColumnElement[int], User.id)
    result = await session.execute(
        select(user_id_column)
        .where(_eq(user_id_column, user_id))
        .limit(1)
        # Keeps the user from being deleted before our insert commits.
        .with_for_update(read=True)
    )
    return result.scalar_one_or_none() is not None


async def _find_like_id(session: AsyncSession, user_id: int, post_id: int) -> int | None:
    like_id_column = cast(ColumnElement[int], Like.id)
    result = await session.execute(
        select(like_id_column)
        .where(_eq(Like.user_id, user_id), _eq(Like.post_id, post_id))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _increment_like_count(session: AsyncSession, post_id: int) -> None:
    likes_count_column = cast(ColumnElement[int], Post.likes_count)
    result = await session.execute(
        update(Post)
        .where(_eq(Post.id, post_id))
        .values(likes_count=likes_count_column + 1)
        .execution_options(synchronize_session=False)
    )
    if _rowcount(result) != 1:
        raise LikeCountInvariantError(f"Post {post_id} vanished while holding its lock")


async def _decrement_like_count(session: AsyncSession, post_id: int) -> None:
    likes_count_column = cast(ColumnElement[int], Post.likes_count)
    result = await session.execute(
        update(Post)
        .where(_eq(Post.id, post_id), likes_count_column > 0)
        .values(likes_count=likes_count_column - 1)
        .execution_options(synchronize_session=False)
    )
    if _rowcount(result) != 1:
        raise LikeCountInvariantError(
            f"Post {post_id} has a like row but its likes_count is already zero"
        )


async def add_like(session: AsyncSession, user_id: int, post_id: int) -> Like:
    """Record that ``user_id`` likes ``post_id`` and bump the post's counter.

    Raises ``UserNotFoundError``, ``PostNotFoundError`` or
    ``LikeAlreadyExistsError`` before anything is written; any database
    failure surfaces as ``LikeStorageError`` with the transaction rolled back.
    """
    _require_idle(session)
    context = {"user_id": user_id, "post_id": post_id}
    try:
        async with session.begin():
            post_found = await _lock_post(session, post_id)
            if not await _user_exists(session, user_id):
                raise UserNotFoundError("User not found", **context)
            if not post_found:
                raise PostNotFoundError("Post not found", **context)
            if await _find_like_id(session, user_id, post_id) is not None:
                raise LikeAlreadyExistsError("Like already exists", **context)

            like = Like(user_id=user_id, post_id=post_id)
            session.add(like)
            await session.flush()
            await _increment_like_count(session, post_id)
            await session.refresh(like)
    except IntegrityError as exc:
        if is_unique_violation(exc):
            raise LikeAlreadyExistsError("Like already exists", **context) from exc
        logger.warning("Failed to add like", extra=context, exc_info=exc)
        raise LikeStorageError("Failed to add like", **context) from exc
    except SQLAlchemyError as exc:
        logger.warning("Failed to add like", extra=context, exc_info=exc)
        raise LikeStorageError("Failed to add like", **context) from exc

    logger.info("Like added", extra={**context, "like_id": like.id})
    return like


async def remove_like(session: AsyncSession, user_id: int, post_id: int) -> bool:
    """Delete the like for the pair and drop the post's counter by one.

    Returns False without writing anything when no such like exists. The user
    and post are not validated separately: a missing post simply has no likes.
    """
    _require_idle(session)
    context = {"user_id": user_id, "post_id": post_id}
    removed = False
    try:
        async with session.begin():
            if await _lock_post(session, post_id):
                like_id = await _find_like_id(session, user_id, post_id)
                if like_id is not None:
                    await session.execute(delete(Like).where(_eq(Like.id, like_id)))
                    await _decrement_like_count(session, post_id)
                    removed = True
    except SQLAlchemyError as exc:
        logger.warning("Failed to remove like", extra=context, exc_info=exc)
        raise LikeStorageError("Failed to remove like", **context) from exc

    if removed:
        logger.info("Like removed", extra=context)
    return removed


async def has_liked(session: AsyncSession, user_id: int, post_id: int) -> bool:
    try:
        return await _find_like_id(session, user_id, post_id) is not None
    except SQLAlchemyError as exc:
        raise LikeStorageError(
            "Failed to read like", user_id=user_id, post_id=post_id
        ) from exc


async def liked_post_ids(
    session: AsyncSession,
    user_id: int,
    post_ids: Iterable[int],
) -> set[int]:
    """Return the subset of ``post_ids`` that ``user_id`` has liked."""
    candidate_ids = sorted(set(post_ids))
    if not candidate_ids:
        return set()

    post_id_column = cast(ColumnElement[int], Like.post_id)
    try:
        result = await session.execute(
            select(post_id_column).where(
                _eq(Like.user_id, user_id),
                post_id_column.in_(candidate_ids),
            )
        )
    except SQLAlchemyError as exc:
        raise LikeStorageError("Failed to read likes", user_id=user_id) from exc
    return {row[0] for row in result.all()}


async def get_like_count(session: AsyncSession, post_id: int) -> int | None:
    """Return the post's stored like counter, or None when the post is missing."""
    likes_count_column = cast(ColumnElement[int], Post.likes_count)
    try:
        result = await session.execute(
            select(likes_count_column).where(_eq(Post.id, post_id)).limit(1)
        )
    except SQLAlchemyError as exc:
        raise LikeStorageError("Failed to read like count", post_id=post_id) from exc
    count = result.scalar_one_or_none()
    return None if count is None else int(count)


async def find_like_count_mismatches(session: AsyncSession) -> list[LikeCountMismatch]:
    """List posts whose stored counter differs from their number of like rows."""
    post_id_column = cast(ColumnElement[int], Post.id)
    likes_count_column = cast(ColumnElement[int], Post.likes_count)
    like_rows_column = func.count(cast(ColumnElement[int], Like.id))
    result = await session.execute(
        select(post_id_column, likes_count_column, like_rows_column)
        .outerjoin(Like, _eq(Like.post_id, Post.id))
        .group_by(post_id_column, likes_count_column)
        .having(likes_count_column != like_rows_column)
        .order_by(post_id_column)
    )
    return [
        LikeCountMismatch(post_id=post_id, likes_count=int(likes_count), like_rows=int(like_rows))
        for post_id, likes_count, like_rows in result.all()
    ]


__all__ = [
    "LikeCountMismatch",
    "add_like",
    "find_like_count_mismatches",
    "get_like_count",
    "has_liked",
    "liked_post_ids",
    "remove_like",
]
