"""Post domain model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlmodel import Field, SQLModel


class Post(SQLModel, table=True):
    """Short text post authored by a user.

    ``likes_count`` is denormalized from the ``likes`` table and is only ever
    written by the like ledger.
    """

    __tablename__ = "posts"
    __table_args__ = (
        CheckConstraint("likes_count >= 0", name="ck_posts_likes_count_non_negative"),
        Index("ix_posts_created_at_id", "created_at", "id"),
    )

    id: int | None = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True),
    )
    user_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    content: str = Field(
        sa_column=Column(String(280), nullable=False)
    )
    likes_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default=text("0")),
    )
    created_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )
    )
