"""Assessment service — quiz gating (QuizGate).

Attempts are created and graded by the quiz subsystem; this module only
reads them. The latest finalized attempt is authoritative: a learner who
passes and then retakes and fails is gated again.

Pure business logic, no FastAPI imports.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.activity.service import LearnerActivity, load_learner_activity
from app.exceptions import QuizNotFoundError
from app.models.enums import FINALIZED_ATTEMPT_STATUSES, QuizAttemptStatus, ShowQuizAt
from app.models.lesson import Lesson
from app.models.quiz import Quiz
from app.models.quiz_attempt import QuizAttempt


def require_quiz(lesson: Lesson) -> Quiz:
    quiz = lesson.active_quiz
    if quiz is None:
        raise QuizNotFoundError(f"lesson {lesson.lesson_id}")
    return quiz


def passing_threshold(lesson: Lesson, quiz: Quiz) -> float:
    """Lesson override wins, including an explicit 0."""
    if lesson.quiz_min_passing_score is not None:
        return float(lesson.quiz_min_passing_score)
    return float(quiz.passing_score)


def attempt_passes(attempt: QuizAttempt | None, threshold: float) -> bool:
    if attempt is None or attempt.status not in FINALIZED_ATTEMPT_STATUSES:
        return False
    if attempt.percentage is None:
        return False
    return attempt.percentage >= threshold


# ---------------------------------------------------------------------------
# Attempt reads
# ---------------------------------------------------------------------------


async def get_latest_finalized_attempt(
    db: AsyncSession, quiz_id: UUID, user_id: UUID,
) -> QuizAttempt | None:
    stmt = (
        select(QuizAttempt)
        .where(
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.user_id == user_id,
            QuizAttempt.status.in_(FINALIZED_ATTEMPT_STATUSES),
        )
        .order_by(
            QuizAttempt.submitted_at.desc().nulls_last(),
            QuizAttempt.attempt_number.desc(),
        )
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_attempts(
    db: AsyncSession, quiz_id: UUID, user_id: UUID,
) -> list[QuizAttempt]:
    """Attempt history, newest first."""
    stmt = (
        select(QuizAttempt)
        .where(QuizAttempt.quiz_id == quiz_id, QuizAttempt.user_id == user_id)
        .order_by(QuizAttempt.attempt_number.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def count_submitted_attempts(db: AsyncSession, quiz_id: UUID, user_id: UUID) -> int:
    stmt = select(func.count()).select_from(QuizAttempt).where(
        QuizAttempt.quiz_id == quiz_id,
        QuizAttempt.user_id == user_id,
        QuizAttempt.status != QuizAttemptStatus.IN_PROGRESS,
    )
    return int(await db.scalar(stmt) or 0)


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


async def has_passed(db: AsyncSession, user_id: UUID, lesson: Lesson) -> bool:
    quiz = require_quiz(lesson)
    attempt = await get_latest_finalized_attempt(db, quiz.quiz_id, user_id)
    return attempt_passes(attempt, passing_threshold(lesson, quiz))


def content_viewed(lesson: Lesson, activity: LearnerActivity) -> bool:
    """Non-quiz prerequisites for a quiz shown after the lesson content."""
    if lesson.has_video and not activity.video_completed:
        return False
    if any(a not in activity.downloaded_asset_ids for a in lesson.required_asset_ids):
        return False
    return activity.time_spent_secs >= (lesson.quiz_min_time_secs or 0)


async def can_attempt(db: AsyncSession, user_id: UUID, lesson: Lesson) -> bool:
    """Whether the quiz may be opened now.

    The max-attempts ceiling belongs to the quiz subsystem and is not checked.
    """
    require_quiz(lesson)
    if lesson.quiz_show_at != ShowQuizAt.AFTER:
        return True
    activity = await load_learner_activity(db, user_id, lesson)
    return content_viewed(lesson, activity)
