"""Content lookups — read-only view of authored courses, modules and lessons.

Pure business logic, no FastAPI imports. Authoring itself happens elsewhere;
the only writes here are the lesson-removal rules that must respect
completed progress.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.exceptions import CourseNotFoundError, LessonNotFoundError, ModuleNotFoundError
from app.models.course import Course
from app.models.course_module import CourseModule
from app.models.lesson import Lesson
from app.models.module_progress import ModuleProgress

logger = logging.getLogger(__name__)


def _lesson_query():
    # Assets and quiz are needed by every evaluator; load them eagerly and
    # refresh identity-mapped rows so requirement reads never see stale state.
    return (
        select(Lesson)
        .options(selectinload(Lesson.assets), selectinload(Lesson.quiz))
        .execution_options(populate_existing=True)
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_course(db: AsyncSession, course_id: UUID) -> Course:
    course = await db.get(Course, course_id)
    if course is None:
        raise CourseNotFoundError(str(course_id))
    return course


async def get_module(
    db: AsyncSession, module_id: UUID, course_id: UUID | None = None,
) -> CourseModule:
    stmt = (
        select(CourseModule)
        .where(CourseModule.module_id == module_id, CourseModule.is_deleted.is_(False))
        .options(selectinload(CourseModule.prerequisites))
        .execution_options(populate_existing=True)
    )
    module = (await db.execute(stmt)).scalar_one_or_none()
    if module is None or (course_id is not None and module.course_id != course_id):
        raise ModuleNotFoundError(str(module_id))
    return module


async def list_course_modules(db: AsyncSession, course_id: UUID) -> list[CourseModule]:
    stmt = (
        select(CourseModule)
        .where(CourseModule.course_id == course_id, CourseModule.is_deleted.is_(False))
        .options(selectinload(CourseModule.prerequisites))
        .order_by(CourseModule.sort_order)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_lesson(
    db: AsyncSession, lesson_id: UUID, module_id: UUID | None = None,
) -> Lesson:
    stmt = _lesson_query().where(Lesson.lesson_id == lesson_id, Lesson.is_deleted.is_(False))
    lesson = (await db.execute(stmt)).scalar_one_or_none()
    if lesson is None or (module_id is not None and lesson.module_id != module_id):
        raise LessonNotFoundError(str(lesson_id))
    return lesson


async def count_live_lessons(db: AsyncSession, module_id: UUID) -> int:
    stmt = select(func.count()).select_from(Lesson).where(
        Lesson.module_id == module_id, Lesson.is_deleted.is_(False),
    )
    return int(await db.scalar(stmt) or 0)


async def count_live_lessons_by_module(
    db: AsyncSession, module_ids: list[UUID],
) -> dict[UUID, int]:
    if not module_ids:
        return {}
    stmt = (
        select(Lesson.module_id, func.count())
        .where(Lesson.module_id.in_(module_ids), Lesson.is_deleted.is_(False))
        .group_by(Lesson.module_id)
    )
    counts = {mid: 0 for mid in module_ids}
    for mid, n in (await db.execute(stmt)).all():
        counts[mid] = int(n)
    return counts


async def get_previous_lesson(db: AsyncSession, lesson: Lesson) -> Lesson | None:
    """Nearest preceding live lesson by sort order (tolerates order holes)."""
    stmt = (
        _lesson_query()
        .where(
            Lesson.module_id == lesson.module_id,
            Lesson.is_deleted.is_(False),
            Lesson.sort_order < lesson.sort_order,
        )
        .order_by(Lesson.sort_order.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_next_lesson(db: AsyncSession, lesson: Lesson) -> Lesson | None:
    stmt = (
        _lesson_query()
        .where(
            Lesson.module_id == lesson.module_id,
            Lesson.is_deleted.is_(False),
            Lesson.sort_order > lesson.sort_order,
        )
        .order_by(Lesson.sort_order)
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


# ---------------------------------------------------------------------------
# Lesson removal
# ---------------------------------------------------------------------------


async def _lesson_has_completions(db: AsyncSession, lesson: Lesson) -> bool:
    stmt = select(ModuleProgress.completed_lesson_ids).where(
        ModuleProgress.module_id == lesson.module_id,
    )
    lesson_key = str(lesson.lesson_id)
    for completed in (await db.execute(stmt)).scalars():
        if lesson_key in (completed or []):
            return True
    return False


async def remove_lesson(db: AsyncSession, lesson_id: UUID) -> bool:
    """Remove a lesson without breaking existing completion records.

    A lesson any learner has completed is soft-deleted (its quiz with it) so
    ledger entries keep pointing at a real row. Otherwise the row is deleted
    and the following lessons move up one place.

    Returns True when the lesson was soft-deleted.
    """
    lesson = await get_lesson(db, lesson_id)

    if await _lesson_has_completions(db, lesson):
        lesson.is_deleted = True
        if lesson.quiz is not None:
            lesson.quiz.is_deleted = True
        await db.flush()
        logger.info("Soft-deleted lesson %s (has completions)", lesson_id)
        return True

    module_id, position = lesson.module_id, lesson.sort_order
    await db.delete(lesson)
    await db.flush()
    await db.execute(
        update(Lesson)
        .where(
            Lesson.module_id == module_id,
            Lesson.is_deleted.is_(False),
            Lesson.sort_order > position,
        )
        .values(sort_order=Lesson.sort_order - 1)
        .execution_options(synchronize_session=False)
    )
    logger.info("Deleted lesson %s and reindexed module %s", lesson_id, module_id)
    return False
