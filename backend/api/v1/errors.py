"""Translation of service errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from services import LikeError, LikeErrorKind

LIKE_ERROR_STATUS: dict[LikeErrorKind, int] = {
    LikeErrorKind.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LikeErrorKind.POST_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LikeErrorKind.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    LikeErrorKind.STORAGE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def http_error_for(exc: LikeError) -> HTTPException:
    return HTTPException(status_code=LIKE_ERROR_STATUS[exc.kind], detail=str(exc))
