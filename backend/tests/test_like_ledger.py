"""Tests for the like ledger service."""

import asyncio
from datetime import datetime
from typing import Any, cast

import pytest
import pytest_asyncio
from sqlalchemy import delete, event, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.sql import ColumnElement

from models import Like, Post, User
from services import (
    LikeAlreadyExistsError,
    LikeCountInvariantError,
    LikeErrorKind,
    LikeStorageError,
    PostNotFoundError,
    UserNotFoundError,
    add_like,
    find_like_count_mismatches,
    get_like_count,
    has_liked,
    liked_post_ids,
    remove_like,
)
from services import like_ledger

pytestmark = pytest.mark.asyncio(loop_scope="session")

SessionMaker = async_sessionmaker[AsyncSession]


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def create_user(
    session_maker: SessionMaker,
    username: str,
    *,
    user_id: int | None = None,
) -> int:
    async with session_maker() as session:
        user = User(
            id=user_id,
            username=username,
            email=f"{username}@example.com",
            display_name=username.replace("_", " ").title(),
        )
        session.add(user)
        await session.commit()
        assert user.id is not None
        return user.id


async def create_post(
    session_maker: SessionMaker,
    author_id: int,
    *,
    post_id: int | None = None,
    likes_count: int = 0,
    content: str = "hello feed",
) -> int:
    async with session_maker() as session:
        post = Post(id=post_id, user_id=author_id, content=content, likes_count=likes_count)
        session.add(post)
        await session.commit()
        assert post.id is not None
        return post.id


async def stored_like_count(session_maker: SessionMaker, post_id: int) -> int | None:
    async with session_maker() as session:
        return await get_like_count(session, post_id)


async def like_rows(session_maker: SessionMaker, post_id: int) -> int:
    async with session_maker() as session:
        result = await session.execute(
            select(func.count(cast(ColumnElement[int], Like.id))).where(
                _eq(Like.post_id, post_id)
            )
        )
        return int(result.scalar_one())


async def mismatches(session_maker: SessionMaker) -> list[like_ledger.LikeCountMismatch]:
    async with session_maker() as session:
        return await find_like_count_mismatches(session)


async def ledger_add(session_maker: SessionMaker, user_id: int, post_id: int) -> Like:
    async with session_maker() as session:
        return await add_like(session, user_id, post_id)


async def ledger_remove(session_maker: SessionMaker, user_id: int, post_id: int) -> bool:
    async with session_maker() as session:
        return await remove_like(session, user_id, post_id)


@pytest_asyncio.fixture(loop_scope="session")
async def seeded_post(session_maker: SessionMaker) -> int:
    """Post 42 by user 1 with a stored counter of 5; user 7 is a would-be liker."""
    await create_user(session_maker, "author", user_id=1)
    await create_user(session_maker, "liker", user_id=7)
    return await create_post(session_maker, 1, post_id=42, likes_count=5)


async def test_like_unlike_walkthrough(session_maker: SessionMaker, seeded_post: int):
    assert seeded_post == 42

    like = await ledger_add(session_maker, 7, 42)
    assert like.id is not None
    assert like.user_id == 7
    assert like.post_id == 42
    assert isinstance(like.created_at, datetime)
    assert await stored_like_count(session_maker, 42) == 6

    with pytest.raises(LikeAlreadyExistsError) as exc_info:
        await ledger_add(session_maker, 7, 42)
    assert exc_info.value.kind is LikeErrorKind.ALREADY_EXISTS
    assert await stored_like_count(session_maker, 42) == 6
    assert await like_rows(session_maker, 42) == 1

    assert await ledger_remove(session_maker, 7, 42) is True
    assert await stored_like_count(session_maker, 42) == 5
    assert await like_rows(session_maker, 42) == 0

    assert await ledger_remove(session_maker, 7, 42) is False
    assert await stored_like_count(session_maker, 42) == 5

    with pytest.raises(UserNotFoundError) as missing_user:
        await ledger_add(session_maker, 999, 42)
    assert missing_user.value.kind is LikeErrorKind.USER_NOT_FOUND
    assert await stored_like_count(session_maker, 42) == 5


async def test_add_like_rejects_missing_post(session_maker: SessionMaker):
    user_id = await create_user(session_maker, "lonely")

    with pytest.raises(PostNotFoundError) as exc_info:
        await ledger_add(session_maker, user_id, 12345)

    assert exc_info.value.kind is LikeErrorKind.POST_NOT_FOUND
    assert exc_info.value.post_id == 12345
    async with session_maker() as session:
        result = await session.execute(select(func.count(cast(ColumnElement[int], Like.id))))
        assert result.scalar_one() == 0


async def test_add_like_reports_missing_user_before_missing_post(session_maker: SessionMaker):
    with pytest.raises(UserNotFoundError):
        await ledger_add(session_maker, 404, 405)


async def test_add_then_remove_restores_counter(session_maker: SessionMaker):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "fan")
    post_id = await create_post(session_maker, author_id)

    await ledger_add(session_maker, fan_id, post_id)
    assert await stored_like_count(session_maker, post_id) == 1
    async with session_maker() as session:
        assert await has_liked(session, fan_id, post_id) is True

    assert await ledger_remove(session_maker, fan_id, post_id) is True
    assert await stored_like_count(session_maker, post_id) == 0
    assert await like_rows(session_maker, post_id) == 0
    async with session_maker() as session:
        assert await has_liked(session, fan_id, post_id) is False
    assert await mismatches(session_maker) == []


async def test_remove_like_on_missing_post_returns_false(session_maker: SessionMaker):
    user_id = await create_user(session_maker, "ghost_hunter")
    assert await ledger_remove(session_maker, user_id, 777) is False


async def test_remove_like_only_touches_requested_pair(session_maker: SessionMaker):
    author_id = await create_user(session_maker, "author")
    first_id = await create_user(session_maker, "first_fan")
    second_id = await create_user(session_maker, "second_fan")
    post_id = await create_post(session_maker, author_id)
    await ledger_add(session_maker, first_id, post_id)
    await ledger_add(session_maker, second_id, post_id)
    assert await stored_like_count(session_maker, post_id) == 2

    assert await ledger_remove(session_maker, first_id, post_id) is True

    async with session_maker() as session:
        result = await session.execute(
            select(cast(ColumnElement[int], Like.user_id)).where(_eq(Like.post_id, post_id))
        )
        assert [row[0] for row in result.all()] == [second_id]
    assert await stored_like_count(session_maker, post_id) == 1


async def test_concurrent_likes_from_distinct_users_are_all_counted(
    session_maker: SessionMaker,
):
    author_id = await create_user(session_maker, "author")
    post_id = await create_post(session_maker, author_id)
    fan_ids = [await create_user(session_maker, f"fan_{index}") for index in range(10)]

    likes = await asyncio.gather(
        *(ledger_add(session_maker, fan_id, post_id) for fan_id in fan_ids)
    )

    assert sorted(like.user_id for like in likes) == sorted(fan_ids)
    assert await stored_like_count(session_maker, post_id) == len(fan_ids)
    assert await like_rows(session_maker, post_id) == len(fan_ids)
    assert await mismatches(session_maker) == []


async def test_concurrent_duplicate_likes_succeed_once(session_maker: SessionMaker):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "eager_fan")
    post_id = await create_post(session_maker, author_id)

    results = await asyncio.gather(
        *(ledger_add(session_maker, fan_id, post_id) for _ in range(6)),
        return_exceptions=True,
    )

    created = [result for result in results if isinstance(result, Like)]
    rejected = [result for result in results if isinstance(result, LikeAlreadyExistsError)]
    assert len(created) == 1
    assert len(rejected) == 5
    assert await stored_like_count(session_maker, post_id) == 1
    assert await like_rows(session_maker, post_id) == 1


async def test_interleaved_like_and_unlike_keep_counter_consistent(
    session_maker: SessionMaker,
):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "flip_flopper")
    post_id = await create_post(session_maker, author_id)

    operations = []
    for index in range(12):
        if index % 2 == 0:
            operations.append(ledger_add(session_maker, fan_id, post_id))
        else:
            operations.append(ledger_remove(session_maker, fan_id, post_id))
    results = await asyncio.gather(*operations, return_exceptions=True)

    for result in results:
        if isinstance(result, BaseException):
            assert isinstance(result, LikeAlreadyExistsError)
    rows = await like_rows(session_maker, post_id)
    assert rows in (0, 1)
    assert await stored_like_count(session_maker, post_id) == rows
    assert await mismatches(session_maker) == []


async def test_concurrent_likes_on_different_posts(session_maker: SessionMaker):
    author_id = await create_user(session_maker, "author")
    fan_ids = [await create_user(session_maker, f"reader_{index}") for index in range(4)]
    post_ids = [
        await create_post(session_maker, author_id, content=f"post {index}")
        for index in range(3)
    ]

    await asyncio.gather(
        *(
            ledger_add(session_maker, fan_id, post_id)
            for fan_id in fan_ids
            for post_id in post_ids
        )
    )

    for post_id in post_ids:
        assert await stored_like_count(session_maker, post_id) == len(fan_ids)
    assert await mismatches(session_maker) == []


async def test_unique_violation_on_insert_maps_to_already_exists(
    session_maker: SessionMaker,
    monkeypatch: pytest.MonkeyPatch,
):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "racer")
    post_id = await create_post(session_maker, author_id)
    await ledger_add(session_maker, fan_id, post_id)

    async def never_finds_like(*args, **kwargs):
        return None

    # Simulates a concurrent insert slipping past the existence check.
    monkeypatch.setattr(like_ledger, "_find_like_id", never_finds_like)

    with pytest.raises(LikeAlreadyExistsError) as exc_info:
        await ledger_add(session_maker, fan_id, post_id)

    assert isinstance(exc_info.value.__cause__, IntegrityError)
    assert await stored_like_count(session_maker, post_id) == 1
    assert await like_rows(session_maker, post_id) == 1


async def test_storage_failure_is_wrapped_and_rolled_back(
    session_maker: SessionMaker,
    monkeypatch: pytest.MonkeyPatch,
):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "unlucky")
    post_id = await create_post(session_maker, author_id)

    async def failing_increment(session, post_id):
        raise OperationalError(
            "UPDATE posts",
            {"post_id": post_id},
            Exception("database is locked"),
        )

    monkeypatch.setattr(like_ledger, "_increment_like_count", failing_increment)

    with pytest.raises(LikeStorageError) as exc_info:
        await ledger_add(session_maker, fan_id, post_id)

    assert exc_info.value.kind is LikeErrorKind.STORAGE_FAILURE
    assert isinstance(exc_info.value.__cause__, OperationalError)
    assert await like_rows(session_maker, post_id) == 0
    assert await stored_like_count(session_maker, post_id) == 0


async def test_remove_like_guards_against_counter_underflow(session_maker: SessionMaker):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "sneaky")
    post_id = await create_post(session_maker, author_id, likes_count=0)
    async with session_maker() as session:
        # Written behind the ledger's back so the counter is already wrong.
        session.add(Like(user_id=fan_id, post_id=post_id))
        await session.commit()

    with pytest.raises(LikeCountInvariantError):
        await ledger_remove(session_maker, fan_id, post_id)

    assert await like_rows(session_maker, post_id) == 1
    assert await stored_like_count(session_maker, post_id) == 0
    assert await mismatches(session_maker) == [
        like_ledger.LikeCountMismatch(post_id=post_id, likes_count=0, like_rows=1)
    ]


async def test_mutation_requires_session_without_open_transaction(
    session_maker: SessionMaker,
):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "impatient")
    post_id = await create_post(session_maker, author_id)

    async with session_maker() as session:
        await session.execute(select(cast(ColumnElement[int], Post.id)))
        with pytest.raises(RuntimeError):
            await add_like(session, fan_id, post_id)
        await session.rollback()

    assert await stored_like_count(session_maker, post_id) == 0


async def test_liked_post_ids_returns_only_liked_subset(session_maker: SessionMaker):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "picky")
    other_id = await create_user(session_maker, "other")
    post_ids = [
        await create_post(session_maker, author_id, content=f"post {index}")
        for index in range(4)
    ]
    await ledger_add(session_maker, fan_id, post_ids[0])
    await ledger_add(session_maker, fan_id, post_ids[2])
    await ledger_add(session_maker, other_id, post_ids[1])

    async with session_maker() as session:
        assert await liked_post_ids(session, fan_id, post_ids) == {post_ids[0], post_ids[2]}
        assert await liked_post_ids(session, fan_id, post_ids[1:2]) == set()
        assert await liked_post_ids(session, fan_id, []) == set()


async def test_get_like_count_returns_none_for_missing_post(session_maker: SessionMaker):
    assert await stored_like_count(session_maker, 31337) is None


async def test_deleting_post_cascades_to_likes(session_maker: SessionMaker):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "fan")
    post_id = await create_post(session_maker, author_id)
    await ledger_add(session_maker, fan_id, post_id)

    async with session_maker() as session:
        await session.execute(delete(Post).where(_eq(Post.id, post_id)))
        await session.commit()

    assert await like_rows(session_maker, post_id) == 0


async def test_deleting_user_cascades_to_their_likes_without_touching_counters(
    session_maker: SessionMaker,
):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "leaving_fan")
    post_id = await create_post(session_maker, author_id)
    await ledger_add(session_maker, fan_id, post_id)

    async with session_maker() as session:
        await session.execute(delete(User).where(_eq(User.id, fan_id)))
        await session.commit()

    assert await like_rows(session_maker, post_id) == 0
    assert await stored_like_count(session_maker, post_id) == 1
    assert await mismatches(session_maker) == [
        like_ledger.LikeCountMismatch(post_id=post_id, likes_count=1, like_rows=0)
    ]


def _set_clause(statement: str) -> str:
    return " ".join(statement.split()).split(" WHERE ")[0].replace("posts.", "")


async def test_mutations_lock_the_post_row_before_anything_else(
    session_maker: SessionMaker,
    test_engine: AsyncEngine,
):
    author_id = await create_user(session_maker, "author")
    fan_id = await create_user(session_maker, "fan")
    post_id = await create_post(session_maker, author_id)
    statements: list[str] = []

    def record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(test_engine.sync_engine, "before_cursor_execute", record)
    try:
        await ledger_add(session_maker, fan_id, post_id)
        add_statements = list(statements)
        statements.clear()
        assert await ledger_remove(session_maker, fan_id, post_id) is True
        remove_statements = list(statements)
    finally:
        event.remove(test_engine.sync_engine, "before_cursor_execute", record)

    for recorded in (add_statements, remove_statements):
        assert _set_clause(recorded[0]) == "UPDATE posts SET likes_count=likes_count"
        assert not any("likes_count=likes_count" in _set_clause(s) for s in recorded[1:])
    assert add_statements[1].lstrip().upper().startswith("SELECT USERS.ID")
