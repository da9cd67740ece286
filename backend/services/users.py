"""User directory operations."""

from __future__ import annotations

import logging
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from db.errors import is_unique_violation
from models import User

from .errors import UserConflictError

logger = logging.getLogger(__name__)


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def create_user(
    session: AsyncSession,
    *,
    username: str,
    email: str,
    display_name: str,
    bio: str | None = None,
) -> User:
    user = User(
        username=username,
        email=email,
        display_name=display_name,
        bio=bio,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            raise UserConflictError("Username or email already registered") from exc
        raise
    await session.refresh(user)
    logger.info("User created", extra={"user_id": user.id})
    return user


async def list_users(session: AsyncSession) -> list[User]:
    user_entity = cast(Any, User)
    result = await session.execute(
        select(user_entity).order_by(cast(Any, User.id).asc())
    )
    return list(result.scalars().all())


async def user_exists(session: AsyncSession, user_id: int) -> bool:
    user_id_column = cast(ColumnElement[int], User.id)
    result = await session.execute(
        select(user_id_column).where(_eq(user_id_column, user_id)).limit(1)
    )
    return result.scalar_one_or_none() is not None


__all__ = ["create_user", "list_users", "user_exists"]
