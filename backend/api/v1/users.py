"""User registration and directory endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from services import UserConflictError, create_user, list_users

router = APIRouter(prefix="/users", tags=["users"])

USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"
MAX_BIO_LENGTH = 160


class CreateUserRequest(BaseModel):
    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: EmailStr
    display_name: str = Field(min_length=1, max_length=100)
    bio: str | None = Field(default=None, max_length=MAX_BIO_LENGTH)

    @field_validator("display_name")
    @classmethod
    def _reject_blank_display_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Display name must not be blank")
        return normalized


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    display_name: str
    bio: str | None = None
    created_at: datetime


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
async def register_user(
    payload: CreateUserRequest,
    session: AsyncSession = Depends(get_db),
) -> UserResponse:
    try:
        user = await create_user(
            session,
            username=payload.username,
            email=payload.email,
            display_name=payload.display_name,
            bio=payload.bio,
        )
    except UserConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return UserResponse.model_validate(user)


@router.get("", response_model=list[UserResponse])
async def get_users(session: AsyncSession = Depends(get_db)) -> list[UserResponse]:
    users = await list_users(session)
    return [UserResponse.model_validate(user) for user in users]
