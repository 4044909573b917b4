"""Activity controller — maps service results to HTTP responses."""

from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.activity import service
from app.activity.schemas import (
    AssetDownloadResponse,
    TimeSpentRequest,
    TimeSpentResponse,
    VideoProgressResponse,
    VideoTickRequest,
)
from app.content.service import get_lesson, get_module
from app.database import store_guard
from app.exceptions import (
    ConcurrencyError,
    InfrastructureError,
    InvalidActivityError,
    InvalidAssetError,
    NotEnrolledError,
    NotFoundError,
)
from app.gating import service as gating


def _handle_domain_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, NotEnrolledError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enrolled in this course.",
        )
    if isinstance(exc, InvalidAssetError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, InvalidActivityError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, ConcurrencyError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InfrastructureError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error.",
    )


async def _require_enrollment(db: AsyncSession, user_id: UUID, lesson_id: UUID) -> None:
    lesson = await get_lesson(db, lesson_id)
    module = await get_module(db, lesson.module_id)
    if not await gating.is_enrolled(db, user_id, module.course_id, module.module_id):
        raise NotEnrolledError()


async def record_time(
    db: AsyncSession,
    lesson_id: UUID,
    user_id: UUID,
    body: TimeSpentRequest,
    timeout: float | None = None,
) -> TimeSpentResponse:
    try:
        async with store_guard(timeout):
            await _require_enrollment(db, user_id, lesson_id)
            record = await service.record_time(db, lesson_id, user_id, body.delta_secs)
            await db.commit()
        return TimeSpentResponse.model_validate(record)
    except Exception as exc:
        raise _handle_domain_error(exc) from exc


async def record_video_tick(
    db: AsyncSession,
    lesson_id: UUID,
    user_id: UUID,
    body: VideoTickRequest,
    redis: Redis | None = None,
    timeout: float | None = None,
) -> VideoProgressResponse:
    try:
        async with store_guard(timeout):
            await _require_enrollment(db, user_id, lesson_id)
            progress = await service.record_video_tick(
                db,
                lesson_id,
                user_id,
                position_secs=body.position_secs,
                delta_watched_secs=body.delta_watched_secs,
                completed=body.completed,
                redis=redis,
            )
            await db.commit()
        return VideoProgressResponse.model_validate(progress)
    except Exception as exc:
        raise _handle_domain_error(exc) from exc


async def record_asset_download(
    db: AsyncSession,
    lesson_id: UUID,
    asset_id: UUID,
    user_id: UUID,
    timeout: float | None = None,
) -> AssetDownloadResponse:
    try:
        async with store_guard(timeout):
            await _require_enrollment(db, user_id, lesson_id)
            progress = await service.record_asset_download(db, lesson_id, user_id, asset_id)
            await db.commit()
        return AssetDownloadResponse.model_validate(progress)
    except Exception as exc:
        raise _handle_domain_error(exc) from exc
