"""Ledger service — the authoritative per-(learner, module) completion record.

``update_on_completion`` is the only writer of ``ModuleProgress``. It
re-evaluates the lesson's requirements inside its own transaction, so a
check made before the call is never trusted, and it either commits the
whole update or leaves the entry exactly as it was.

Reads recompute progress from the live lesson count, so adding or removing
lessons moves a learner's percentage without any new activity.

Pure business logic, no FastAPI imports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.assessment import service as quiz_gate
from app.content.service import (
    count_live_lessons,
    count_live_lessons_by_module,
    get_lesson,
    get_module,
)
from app.database import atomic, store_guard
from app.exceptions import LedgerEntryNotFoundError, QuizNotFoundError
from app.models.module_progress import ModuleProgress
from app.models.types import utcnow
from app.requirements import service as requirements

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionResult:
    completed: bool
    progress: float
    completed_lessons: list[str] = field(default_factory=list)
    completed_quizzes: list[str] = field(default_factory=list)
    unmet_requirements: list[dict] | None = None


@dataclass(frozen=True)
class LedgerSnapshot:
    user_id: UUID
    course_id: UUID
    module_id: UUID
    completed_lessons: list[str]
    completed_quizzes: list[str]
    progress: float
    last_accessed: datetime
    updated_at: datetime


def compute_progress(completed_count: int, live_lesson_count: int) -> float:
    if live_lesson_count <= 0:
        return 0.0
    return round(min(100.0, 100.0 * completed_count / live_lesson_count), 2)


def _snapshot(entry: ModuleProgress, live_lesson_count: int) -> LedgerSnapshot:
    lessons = list(entry.completed_lesson_ids or [])
    return LedgerSnapshot(
        user_id=entry.user_id,
        course_id=entry.course_id,
        module_id=entry.module_id,
        completed_lessons=lessons,
        completed_quizzes=list(entry.completed_quiz_ids or []),
        progress=compute_progress(len(lessons), live_lesson_count),
        last_accessed=entry.last_accessed,
        updated_at=entry.updated_at,
    )


async def _load_entry(
    db: AsyncSession, user_id: UUID, module_id: UUID, *, for_update: bool = False,
) -> ModuleProgress | None:
    stmt = select(ModuleProgress).where(
        ModuleProgress.user_id == user_id, ModuleProgress.module_id == module_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Completion protocol
# ---------------------------------------------------------------------------


async def update_on_completion(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    quiz_id: UUID | None = None,
    *,
    timeout: float | None = None,
) -> CompletionResult:
    """Mark ``lesson_id`` complete for the learner if its requirements hold.

    Idempotent: re-marking a completed lesson changes nothing but the access
    timestamps. An unmet requirement is returned as a result with
    ``completed=False``; store failures raise ConcurrencyError or
    InfrastructureError and leave the ledger untouched.
    """
    async with store_guard(timeout):
        async with atomic(db):
            await get_module(db, module_id, course_id)
            lesson = await get_lesson(db, lesson_id, module_id)

            check = await requirements.evaluate(db, user_id, lesson)
            if not check.satisfied:
                logger.info(
                    "Completion aborted user=%s lesson=%s clause=%s",
                    user_id, lesson_id, check.unmet[0]["clause"],
                )
                entry = await _load_entry(db, user_id, module_id)
                live = await count_live_lessons(db, module_id)
                lessons = list(entry.completed_lesson_ids or []) if entry else []
                return CompletionResult(
                    completed=False,
                    progress=compute_progress(len(lessons), live),
                    completed_lessons=lessons,
                    completed_quizzes=list(entry.completed_quiz_ids or []) if entry else [],
                    unmet_requirements=check.unmet,
                )

            quiz_key = None
            if quiz_id is not None:
                quiz = lesson.active_quiz
                if quiz is None or quiz.quiz_id != quiz_id:
                    raise QuizNotFoundError(str(quiz_id))
                if await quiz_gate.has_passed(db, user_id, lesson):
                    quiz_key = str(quiz_id)

            entry = await _load_entry(db, user_id, module_id, for_update=True)
            if entry is None:
                entry = ModuleProgress(
                    user_id=user_id,
                    course_id=course_id,
                    module_id=module_id,
                    completed_lesson_ids=[],
                    completed_quiz_ids=[],
                    progress_pct=0.0,
                )
                db.add(entry)

            # Reassign rather than mutate so the JSON column is marked dirty.
            lessons = list(entry.completed_lesson_ids or [])
            if str(lesson_id) not in lessons:
                lessons.append(str(lesson_id))
            quizzes = list(entry.completed_quiz_ids or [])
            if quiz_key is not None and quiz_key not in quizzes:
                quizzes.append(quiz_key)

            live = await count_live_lessons(db, module_id)
            entry.completed_lesson_ids = lessons
            entry.completed_quiz_ids = quizzes
            entry.progress_pct = compute_progress(len(lessons), live)
            entry.last_accessed = utcnow()
            await db.flush()

    logger.info(
        "Ledger updated user=%s module=%s lessons=%d progress=%.2f",
        user_id, module_id, len(lessons), entry.progress_pct,
    )
    return CompletionResult(
        completed=True,
        progress=entry.progress_pct,
        completed_lessons=lessons,
        completed_quizzes=quizzes,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def find_entry(
    db: AsyncSession, user_id: UUID, module_id: UUID,
) -> LedgerSnapshot | None:
    entry = await _load_entry(db, user_id, module_id)
    if entry is None:
        return None
    return _snapshot(entry, await count_live_lessons(db, module_id))


async def get_entry(db: AsyncSession, user_id: UUID, module_id: UUID) -> LedgerSnapshot:
    snapshot = await find_entry(db, user_id, module_id)
    if snapshot is None:
        raise LedgerEntryNotFoundError(f"user {user_id} module {module_id}")
    return snapshot


async def list_entries(
    db: AsyncSession, user_id: UUID, module_ids: list[UUID],
) -> dict[UUID, LedgerSnapshot]:
    """Snapshots keyed by module id; modules without an entry are absent."""
    if not module_ids:
        return {}
    stmt = select(ModuleProgress).where(
        ModuleProgress.user_id == user_id, ModuleProgress.module_id.in_(module_ids),
    )
    entries = (await db.execute(stmt)).scalars().all()
    live = await count_live_lessons_by_module(db, [e.module_id for e in entries])
    return {e.module_id: _snapshot(e, live.get(e.module_id, 0)) for e in entries}


async def progress_by_module(
    db: AsyncSession, user_id: UUID, module_ids: list[UUID],
) -> dict[UUID, float]:
    """Live progress per module; modules without an entry read as 0."""
    snapshots = await list_entries(db, user_id, module_ids)
    return {
        mid: snapshots[mid].progress if mid in snapshots else 0.0
        for mid in module_ids
    }
