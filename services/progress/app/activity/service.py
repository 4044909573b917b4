"""Activity service — learner interaction records (ActivityStore).

Pure business logic, no FastAPI imports.
Every accumulator is bumped with a single ``INSERT ... ON CONFLICT DO UPDATE``
so concurrent ticks never lose the base value. Redis is passed as
``Redis | None`` and all Redis ops are best-effort.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from uuid import UUID

from redis.asyncio import Redis
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.activity import cache as activity_cache
from app.content.service import get_lesson
from app.database import upsert
from app.exceptions import InvalidActivityError, InvalidAssetError
from app.models.asset_progress import AssetProgress
from app.models.lesson import Lesson, LessonAsset
from app.models.lesson_activity import LessonActivity
from app.models.types import utcnow
from app.models.video_progress import VideoProgress

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Time on lesson
# ---------------------------------------------------------------------------


async def record_time(
    db: AsyncSession,
    lesson_id: UUID,
    user_id: UUID,
    delta_secs: int,
) -> LessonActivity:
    """Add ``delta_secs`` to the learner's time-on-lesson and bump last access."""
    if delta_secs < 0:
        raise InvalidActivityError("delta_secs must be >= 0")
    await get_lesson(db, lesson_id)

    now = utcnow()
    stmt = upsert(db, LessonActivity).values(
        activity_id=uuid.uuid4(),
        user_id=user_id,
        lesson_id=lesson_id,
        time_spent_secs=delta_secs,
        last_accessed=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "lesson_id"],
        set_={
            "time_spent_secs": LessonActivity.time_spent_secs + stmt.excluded.time_spent_secs,
            "last_accessed": stmt.excluded.last_accessed,
        },
    )
    await db.execute(stmt)
    return await _fetch_one(
        db,
        select(LessonActivity).where(
            LessonActivity.user_id == user_id, LessonActivity.lesson_id == lesson_id,
        ),
    )


# ---------------------------------------------------------------------------
# Video playback
# ---------------------------------------------------------------------------


async def record_video_tick(
    db: AsyncSession,
    lesson_id: UUID,
    user_id: UUID,
    *,
    position_secs: int,
    delta_watched_secs: int,
    completed: bool,
    redis: Redis | None = None,
) -> VideoProgress:
    """Record a playback tick.

    ``completed`` is OR-ed into the stored flag: a later tick reporting
    ``False`` never clears it.
    """
    if position_secs < 0 or delta_watched_secs < 0:
        raise InvalidActivityError("position_secs and delta_watched_secs must be >= 0")
    await get_lesson(db, lesson_id)

    now = utcnow()
    stmt = upsert(db, VideoProgress).values(
        progress_id=uuid.uuid4(),
        user_id=user_id,
        lesson_id=lesson_id,
        watched_secs=delta_watched_secs,
        last_position_secs=position_secs,
        completed=completed,
        last_accessed=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "lesson_id"],
        set_={
            "watched_secs": VideoProgress.watched_secs + stmt.excluded.watched_secs,
            "last_position_secs": stmt.excluded.last_position_secs,
            "completed": or_(VideoProgress.completed, stmt.excluded.completed),
            "last_accessed": stmt.excluded.last_accessed,
        },
    )
    await db.execute(stmt)

    if redis is not None:
        try:
            await activity_cache.set_resume_position(user_id, lesson_id, position_secs, redis)
        except Exception:
            logger.warning("Resume cache write failed for lesson %s", lesson_id, exc_info=True)

    return await _fetch_one(
        db,
        select(VideoProgress).where(
            VideoProgress.user_id == user_id, VideoProgress.lesson_id == lesson_id,
        ),
    )


async def reset_video_progress(db: AsyncSession, lesson_id: UUID) -> list[UUID]:
    """Delete every learner's playback state for the lesson.

    Returns the affected learner ids.
    """
    await get_lesson(db, lesson_id)
    user_ids = list(
        (await db.execute(
            select(VideoProgress.user_id).where(VideoProgress.lesson_id == lesson_id)
        )).scalars().all()
    )
    await db.execute(
        delete(VideoProgress)
        .where(VideoProgress.lesson_id == lesson_id)
        .execution_options(synchronize_session=False)
    )
    logger.info("Reset video progress for lesson %s (%d learners)", lesson_id, len(user_ids))
    return user_ids


async def replace_lesson_video(
    db: AsyncSession,
    lesson_id: UUID,
    *,
    video_key: str,
    duration_secs: int | None = None,
    redis: Redis | None = None,
) -> Lesson:
    """Swap the lesson's video and drop completion state earned on the old one.

    Both writes go through ``db`` so they commit (or roll back) together.
    """
    lesson = await get_lesson(db, lesson_id)
    lesson.video_key = video_key
    lesson.video_duration_secs = duration_secs
    user_ids = await reset_video_progress(db, lesson_id)
    await db.flush()

    if redis is not None:
        try:
            await activity_cache.clear_resume_positions(user_ids, lesson_id, redis)
        except Exception:
            logger.warning("Resume cache clear failed for lesson %s", lesson_id, exc_info=True)
    return lesson


async def get_video_progress(
    db: AsyncSession, lesson_id: UUID, user_id: UUID,
) -> VideoProgress | None:
    stmt = select(VideoProgress).where(
        VideoProgress.user_id == user_id, VideoProgress.lesson_id == lesson_id,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_resume_position(
    db: AsyncSession,
    lesson_id: UUID,
    user_id: UUID,
    redis: Redis | None = None,
) -> int:
    """Resume position. Redis first, DB fallback."""
    if redis is not None:
        try:
            cached = await activity_cache.get_resume_position(user_id, lesson_id, redis)
            if cached is not None:
                return cached
        except Exception:
            logger.warning("Resume cache read failed for lesson %s", lesson_id, exc_info=True)
    progress = await get_video_progress(db, lesson_id, user_id)
    return progress.last_position_secs if progress is not None else 0


# ---------------------------------------------------------------------------
# Asset downloads
# ---------------------------------------------------------------------------


async def record_asset_download(
    db: AsyncSession,
    lesson_id: UUID,
    user_id: UUID,
    asset_id: UUID,
) -> AssetProgress:
    lesson = await get_lesson(db, lesson_id)
    if not lesson.has_asset(asset_id):
        raise InvalidAssetError(str(lesson_id), str(asset_id))

    now = utcnow()
    stmt = upsert(db, AssetProgress).values(
        progress_id=uuid.uuid4(),
        user_id=user_id,
        lesson_id=lesson_id,
        asset_id=asset_id,
        download_count=1,
        first_downloaded_at=now,
        last_downloaded_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "lesson_id", "asset_id"],
        set_={
            "download_count": AssetProgress.download_count + 1,
            "last_downloaded_at": stmt.excluded.last_downloaded_at,
        },
    )
    await db.execute(stmt)
    progress = await _fetch_one(
        db,
        select(AssetProgress).where(
            AssetProgress.user_id == user_id,
            AssetProgress.lesson_id == lesson_id,
            AssetProgress.asset_id == asset_id,
        ),
    )

    # The atomic upsert makes count == 1 true for exactly one caller.
    if progress.download_count == 1:
        await _bump_asset_counter(db, asset_id)
    return progress


async def _bump_asset_counter(db: AsyncSession, asset_id: UUID) -> None:
    """Denormalized per-asset counter. Failure never fails the download."""
    try:
        async with db.begin_nested():
            await db.execute(
                update(LessonAsset)
                .where(LessonAsset.asset_id == asset_id)
                .values(download_count=LessonAsset.download_count + 1)
                .execution_options(synchronize_session=False)
            )
    except SQLAlchemyError:
        logger.warning("Download counter update failed for asset %s", asset_id, exc_info=True)


# ---------------------------------------------------------------------------
# Learner activity snapshot (input to the evaluators)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LearnerActivity:
    video_completed: bool = False
    downloaded_asset_ids: frozenset[UUID] = field(default_factory=frozenset)
    time_spent_secs: int = 0


async def load_learner_activity(
    db: AsyncSession, user_id: UUID, lesson: Lesson,
) -> LearnerActivity:
    lesson_id = lesson.lesson_id
    video_completed = await db.scalar(
        select(VideoProgress.completed).where(
            VideoProgress.user_id == user_id, VideoProgress.lesson_id == lesson_id,
        )
    )
    downloaded = (await db.execute(
        select(AssetProgress.asset_id).where(
            AssetProgress.user_id == user_id,
            AssetProgress.lesson_id == lesson_id,
            AssetProgress.download_count >= 1,
        )
    )).scalars().all()
    time_spent = await db.scalar(
        select(LessonActivity.time_spent_secs).where(
            LessonActivity.user_id == user_id, LessonActivity.lesson_id == lesson_id,
        )
    )
    return LearnerActivity(
        video_completed=bool(video_completed),
        downloaded_asset_ids=frozenset(downloaded),
        time_spent_secs=int(time_spent or 0),
    )


async def list_asset_progress(
    db: AsyncSession, lesson_id: UUID, user_id: UUID,
) -> dict[UUID, AssetProgress]:
    stmt = select(AssetProgress).where(
        AssetProgress.user_id == user_id, AssetProgress.lesson_id == lesson_id,
    )
    return {p.asset_id: p for p in (await db.execute(stmt)).scalars().all()}


async def get_time_spent(db: AsyncSession, lesson_id: UUID, user_id: UUID) -> int:
    value = await db.scalar(
        select(LessonActivity.time_spent_secs).where(
            LessonActivity.user_id == user_id, LessonActivity.lesson_id == lesson_id,
        )
    )
    return int(value or 0)


async def _fetch_one(db: AsyncSession, stmt):
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one()
