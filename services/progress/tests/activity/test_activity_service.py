import uuid

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy import func, select
from sqlalchemy.sql.dml import Update

from app.activity import service
from app.exceptions import InvalidActivityError, InvalidAssetError, LessonNotFoundError
from app.models import AssetProgress, LessonAsset, VideoProgress


@pytest.mark.asyncio
async def test_record_time_accumulates(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module)

    await service.record_time(db_session, lesson.lesson_id, learner_id, 300)
    record = await service.record_time(db_session, lesson.lesson_id, learner_id, 301)

    assert record.time_spent_secs == 601
    assert await service.get_time_spent(db_session, lesson.lesson_id, learner_id) == 601


@pytest.mark.asyncio
async def test_record_time_zero_delta_keeps_total(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module)

    await service.record_time(db_session, lesson.lesson_id, learner_id, 40)
    record = await service.record_time(db_session, lesson.lesson_id, learner_id, 0)
    assert record.time_spent_secs == 40


@pytest.mark.asyncio
async def test_record_time_rejects_negative_delta(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module)

    with pytest.raises(InvalidActivityError):
        await service.record_time(db_session, lesson.lesson_id, learner_id, -5)


@pytest.mark.asyncio
async def test_record_time_unknown_lesson(db_session, learner_id) -> None:
    with pytest.raises(LessonNotFoundError):
        await service.record_time(db_session, uuid.uuid4(), learner_id, 10)


@pytest.mark.asyncio
async def test_video_completion_is_sticky(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module, video_key="v/1.mp4")

    await service.record_video_tick(
        db_session, lesson.lesson_id, learner_id,
        position_secs=590, delta_watched_secs=590, completed=True,
    )
    progress = await service.record_video_tick(
        db_session, lesson.lesson_id, learner_id,
        position_secs=30, delta_watched_secs=10, completed=False,
    )

    assert progress.completed is True
    assert progress.last_position_secs == 30
    assert progress.watched_secs == 600


@pytest.mark.asyncio
async def test_video_tick_survives_resume_cache_failure(db_session, seed, learner_id) -> None:
    class _DownRedis:
        async def hset(self, *args, **kwargs):
            raise ConnectionError("redis down")

        async def expire(self, *args, **kwargs):
            raise ConnectionError("redis down")

    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module, video_key="v/1.mp4")

    progress = await service.record_video_tick(
        db_session, lesson.lesson_id, learner_id,
        position_secs=12, delta_watched_secs=12, completed=False, redis=_DownRedis(),
    )
    assert progress.last_position_secs == 12


@pytest.mark.asyncio
async def test_resume_position_falls_back_to_db(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module, video_key="v/1.mp4")

    assert await service.get_resume_position(db_session, lesson.lesson_id, learner_id) == 0
    await service.record_video_tick(
        db_session, lesson.lesson_id, learner_id,
        position_secs=75, delta_watched_secs=75, completed=False,
    )
    assert await service.get_resume_position(db_session, lesson.lesson_id, learner_id) == 75


@pytest.mark.asyncio
async def test_asset_download_rejects_undeclared_asset(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module)
    other = await seed.lesson(module, sort_order=2)
    foreign_asset = await seed.asset(other)

    with pytest.raises(InvalidAssetError):
        await service.record_asset_download(
            db_session, lesson.lesson_id, learner_id, foreign_asset.asset_id,
        )


@pytest.mark.asyncio
async def test_asset_download_counts(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module)
    asset = await seed.asset(lesson, required=True)

    first = await service.record_asset_download(
        db_session, lesson.lesson_id, learner_id, asset.asset_id,
    )
    assert first.download_count == 1
    second = await service.record_asset_download(
        db_session, lesson.lesson_id, learner_id, asset.asset_id,
    )
    assert second.download_count == 2
    assert second.first_downloaded_at == first.first_downloaded_at

    # Denormalized counter moves on a learner's first download only.
    await service.record_asset_download(db_session, lesson.lesson_id, uuid.uuid4(), asset.asset_id)
    refreshed = await db_session.get(LessonAsset, asset.asset_id, populate_existing=True)
    assert refreshed.download_count == 2


@pytest.mark.asyncio
async def test_asset_counter_failure_keeps_download(
    db_session, seed, learner_id, monkeypatch,
) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module)
    asset = await seed.asset(lesson, required=True)

    execute = db_session.execute

    async def _execute(statement, *args, **kwargs):
        if isinstance(statement, Update) and statement.table is LessonAsset.__table__:
            raise sa_exc.OperationalError("UPDATE lesson_assets", None, Exception("locked"))
        return await execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", _execute)
    progress = await service.record_asset_download(
        db_session, lesson.lesson_id, learner_id, asset.asset_id,
    )
    await db_session.commit()
    monkeypatch.undo()

    assert progress.download_count == 1
    rows = await db_session.scalar(
        select(func.count()).select_from(AssetProgress).where(
            AssetProgress.asset_id == asset.asset_id, AssetProgress.user_id == learner_id,
        )
    )
    assert rows == 1
    refreshed = await db_session.get(LessonAsset, asset.asset_id, populate_existing=True)
    assert refreshed.download_count == 0
    activity = await service.load_learner_activity(db_session, learner_id, lesson)
    assert asset.asset_id in activity.downloaded_asset_ids


@pytest.mark.asyncio
async def test_replace_video_resets_progress(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module, video_key="v/old.mp4", require_video_watch=True)
    other_lesson = await seed.lesson(module, sort_order=2, video_key="v/other.mp4")

    for lid in (lesson.lesson_id, other_lesson.lesson_id):
        await service.record_video_tick(
            db_session, lid, learner_id,
            position_secs=100, delta_watched_secs=100, completed=True,
        )

    updated = await service.replace_lesson_video(
        db_session, lesson.lesson_id, video_key="v/new.mp4", duration_secs=900,
    )
    await db_session.commit()

    assert updated.video_key == "v/new.mp4"
    assert await service.get_video_progress(db_session, lesson.lesson_id, learner_id) is None
    remaining = await db_session.scalar(
        select(func.count()).select_from(VideoProgress).where(
            VideoProgress.lesson_id == other_lesson.lesson_id,
        )
    )
    assert remaining == 1

    activity = await service.load_learner_activity(db_session, learner_id, updated)
    assert activity.video_completed is False
