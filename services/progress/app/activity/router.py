"""Activity router — time on lesson, video ticks, asset downloads.

HTTP layer only. Delegates to controller for business logic.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.activity import controller
from app.activity.schemas import (
    AssetDownloadResponse,
    TimeSpentRequest,
    TimeSpentResponse,
    VideoProgressResponse,
    VideoTickRequest,
)
from app.database import get_db
from app.dependencies import get_current_user, get_redis, get_store_timeout

router = APIRouter(prefix="/activity", tags=["Activity"])


@router.post(
    "/lessons/{lesson_id}/time",
    response_model=TimeSpentResponse,
    summary="Report time spent on a lesson",
    description="Adds the reported seconds to the learner's time-on-lesson. "
    "The accumulator only grows.",
)
async def record_time(
    lesson_id: UUID,
    body: TimeSpentRequest,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user),
    timeout: float | None = Depends(get_store_timeout),
) -> TimeSpentResponse:
    return await controller.record_time(db, lesson_id, user_id, body, timeout)


@router.post(
    "/lessons/{lesson_id}/video",
    response_model=VideoProgressResponse,
    summary="Video playback tick",
    description="Records playback position and watched seconds. "
    "A tick with completed=true marks the video watched permanently; "
    "only replacing the lesson video clears it.",
)
async def record_video_tick(
    lesson_id: UUID,
    body: VideoTickRequest,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user),
    redis: Redis | None = Depends(get_redis),
    timeout: float | None = Depends(get_store_timeout),
) -> VideoProgressResponse:
    return await controller.record_video_tick(db, lesson_id, user_id, body, redis, timeout)


@router.post(
    "/lessons/{lesson_id}/assets/{asset_id}/download",
    response_model=AssetDownloadResponse,
    summary="Record an asset download",
    description="Called by the download handler after the file is served. "
    "Rejects asset ids that are not declared on the lesson.",
)
async def record_asset_download(
    lesson_id: UUID,
    asset_id: UUID,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user),
    timeout: float | None = Depends(get_store_timeout),
) -> AssetDownloadResponse:
    return await controller.record_asset_download(db, lesson_id, asset_id, user_id, timeout)
