"""Like and unlike endpoints backed by the like ledger."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from services import LikeError, add_like, has_liked, remove_like
from .errors import http_error_for

router = APIRouter(prefix="/likes", tags=["likes"])


class LikeRequest(BaseModel):
    user_id: int
    post_id: int


class LikeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    post_id: int
    created_at: datetime


class LikeStatusResponse(BaseModel):
    liked: bool


@router.post("", status_code=status.HTTP_201_CREATED, response_model=LikeResponse)
async def like_post(
    payload: LikeRequest,
    session: AsyncSession = Depends(get_db),
) -> LikeResponse:
    try:
        like = await add_like(session, payload.user_id, payload.post_id)
    except LikeError as exc:
        raise http_error_for(exc) from exc
    return LikeResponse.model_validate(like)


@router.delete("", status_code=status.HTTP_200_OK, response_model=bool)
async def unlike_post(
    user_id: Annotated[int, Query()],
    post_id: Annotated[int, Query()],
    session: AsyncSession = Depends(get_db),
) -> bool:
    try:
        return await remove_like(session, user_id, post_id)
    except LikeError as exc:
        raise http_error_for(exc) from exc


@router.get("/status", response_model=LikeStatusResponse)
async def like_status(
    user_id: Annotated[int, Query()],
    post_id: Annotated[int, Query()],
    session: AsyncSession = Depends(get_db),
) -> LikeStatusResponse:
    try:
        liked = await has_liked(session, user_id, post_id)
    except LikeError as exc:
        raise http_error_for(exc) from exc
    return LikeStatusResponse(liked=liked)
