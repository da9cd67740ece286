"""Database seed script for local development.

Usage:
    python scripts/seed.py

Creates a handful of demo users and posts, then has users like each other's
posts through the like ledger so counters stay consistent.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.sql import ColumnElement

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from db.session import AsyncSessionMaker  # noqa: E402
from models import Post, User  # noqa: E402
from services import LikeAlreadyExistsError, add_like, create_post, create_user  # noqa: E402


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


@dataclass(frozen=True)
class SeedUser:
    username: str
    email: str
    display_name: str
    bio: str | None


@dataclass(frozen=True)
class SeedPost:
    username: str
    content: str


SEED_USERS: Sequence[SeedUser] = [
    SeedUser("demo_alex", "alex@example.com", "Alex Demo", "Trying out the feed!"),
    SeedUser("demo_sam", "sam@example.com", "Sam Demo", "Coffee, code, repeat."),
    SeedUser("demo_riley", "riley@example.com", "Riley Demo", None),
]

SEED_POSTS: Sequence[SeedPost] = [
    SeedPost("demo_alex", "Hello world, first post here."),
    SeedPost("demo_sam", "Shipped a tiny feature today."),
    SeedPost("demo_riley", "Anyone up for a walk later?"),
    SeedPost("demo_alex", "Second post, still figuring this out."),
]

# (liker, index into SEED_POSTS)
SEED_LIKES: Sequence[tuple[str, int]] = [
    ("demo_sam", 0),
    ("demo_riley", 0),
    ("demo_alex", 1),
    ("demo_alex", 2),
    ("demo_sam", 3),
]


async def get_or_create_user(payload: SeedUser) -> User:
    async with AsyncSessionMaker() as session:
        result = await session.execute(
            select(User).where(_eq(User.username, payload.username))
        )
        user = result.scalar_one_or_none()
        if user is not None:
            return user
        return await create_user(
            session,
            username=payload.username,
            email=payload.email,
            display_name=payload.display_name,
            bio=payload.bio,
        )


async def get_or_create_post(author: User, payload: SeedPost) -> Post:
    if author.id is None:
        raise ValueError("Author missing identifier during seeding")

    async with AsyncSessionMaker() as session:
        result = await session.execute(
            select(Post).where(
                _eq(Post.user_id, author.id),
                _eq(Post.content, payload.content),
            )
        )
        post = result.scalar_one_or_none()
        if post is not None:
            return post
        return await create_post(session, user_id=author.id, content=payload.content)


async def ensure_like(liker: User, post: Post) -> bool:
    if liker.id is None or post.id is None:
        raise ValueError("Seed rows missing identifiers")

    async with AsyncSessionMaker() as session:
        try:
            await add_like(session, liker.id, post.id)
        except LikeAlreadyExistsError:
            return False
    return True


async def seed() -> None:
    users: dict[str, User] = {}
    for payload in SEED_USERS:
        user = await get_or_create_user(payload)
        users[user.username] = user

    posts = [await get_or_create_post(users[item.username], item) for item in SEED_POSTS]

    added_likes = 0
    for liker_username, post_index in SEED_LIKES:
        if await ensure_like(users[liker_username], posts[post_index]):
            added_likes += 1

    print("Seed data inserted.")
    print("   Users:", ", ".join(user.username for user in SEED_USERS))
    print("   Posts:", len(posts))
    print("   New likes:", added_likes)


if __name__ == "__main__":
    asyncio.run(seed())
