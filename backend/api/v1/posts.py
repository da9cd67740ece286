"""Post creation and listing endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from models import Post
from services import (
    MAX_POST_CONTENT_LENGTH,
    LikeError,
    ListedPost,
    PostNotFoundError,
    UserNotFoundError,
    create_post,
    get_like_count,
    list_posts,
)
from .errors import http_error_for

router = APIRouter(prefix="/posts", tags=["posts"])


class CreatePostRequest(BaseModel):
    user_id: int
    content: str = Field(min_length=1, max_length=MAX_POST_CONTENT_LENGTH)


class PostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    content: str
    likes_count: int
    created_at: datetime


class PostAuthor(BaseModel):
    username: str
    display_name: str


class PostWithUserResponse(PostResponse):
    user: PostAuthor
    is_liked: bool = False

    @classmethod
    def from_listed(cls, listed: ListedPost) -> "PostWithUserResponse":
        post = listed.post
        if post.id is None:
            raise ValueError("Post record missing identifier")
        return cls(
            id=post.id,
            user_id=post.user_id,
            content=post.content,
            likes_count=post.likes_count,
            created_at=post.created_at,
            user=PostAuthor(username=listed.username, display_name=listed.display_name),
            is_liked=listed.is_liked,
        )


class LikeCountResponse(BaseModel):
    post_id: int
    like_count: int


PostWithUserResponse.model_rebuild()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=PostResponse)
async def submit_post(
    payload: CreatePostRequest,
    session: AsyncSession = Depends(get_db),
) -> PostResponse:
    try:
        post: Post = await create_post(
            session,
            user_id=payload.user_id,
            content=payload.content,
        )
    except UserNotFoundError as exc:
        raise http_error_for(exc) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=str(exc),
        ) from exc
    return PostResponse.model_validate(post)


@router.get("", response_model=list[PostWithUserResponse])
async def get_posts(
    user_id: Annotated[int | None, Query()] = None,
    session: AsyncSession = Depends(get_db),
) -> list[PostWithUserResponse]:
    try:
        listed = await list_posts(session, viewer_id=user_id)
    except LikeError as exc:
        raise http_error_for(exc) from exc
    return [PostWithUserResponse.from_listed(item) for item in listed]


@router.get("/{post_id}/like-count", response_model=LikeCountResponse)
async def get_post_like_count(
    post_id: int,
    session: AsyncSession = Depends(get_db),
) -> LikeCountResponse:
    try:
        like_count = await get_like_count(session, post_id)
        if like_count is None:
            raise PostNotFoundError("Post not found", post_id=post_id)
    except LikeError as exc:
        raise http_error_for(exc) from exc
    return LikeCountResponse(post_id=post_id, like_count=like_count)
