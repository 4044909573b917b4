"""Requirement evaluation — is a lesson's completion requirement met?

Clauses are checked in a fixed order (video, asset, time, quiz) and
evaluation stops at the first unmet one. Reads only; never writes.

Pure business logic, no FastAPI imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.activity.service import LearnerActivity, load_learner_activity
from app.assessment import service as quiz_gate
from app.models.lesson import Lesson

CLAUSE_VIDEO = "video"
CLAUSE_ASSET = "asset"
CLAUSE_TIME = "time"
CLAUSE_QUIZ = "quiz"


@dataclass(frozen=True)
class RequirementCheck:
    satisfied: bool
    unmet: list[dict] = field(default_factory=list)


def first_unmet_clause(
    lesson: Lesson, activity: LearnerActivity, quiz_passed: bool | None = None,
) -> dict | None:
    """Return the first failing clause as a dict, or None when all are met.

    ``quiz_passed`` may be None only for lessons without a required quiz.
    """
    if lesson.require_video_watch:
        if not lesson.has_video:
            return {"clause": CLAUSE_VIDEO, "reason": "no_video_attached"}
        if not activity.video_completed:
            return {"clause": CLAUSE_VIDEO, "reason": "video_not_completed"}

    missing = [a for a in lesson.required_asset_ids if a not in activity.downloaded_asset_ids]
    if missing:
        return {
            "clause": CLAUSE_ASSET,
            "reason": "required_assets_not_downloaded",
            "missing_asset_ids": [str(a) for a in missing],
        }

    required_secs = lesson.min_time_spent_secs or 0
    if required_secs > 0 and activity.time_spent_secs < required_secs:
        return {
            "clause": CLAUSE_TIME,
            "reason": "minimum_time_not_reached",
            "required_secs": required_secs,
            "time_spent_secs": activity.time_spent_secs,
        }

    if lesson.quiz_is_required and not quiz_passed:
        return {
            "clause": CLAUSE_QUIZ,
            "reason": "quiz_not_passed",
            "quiz_id": str(lesson.active_quiz.quiz_id),
        }
    return None


async def evaluate(db: AsyncSession, user_id: UUID, lesson: Lesson) -> RequirementCheck:
    activity = await load_learner_activity(db, user_id, lesson)
    quiz_passed = None
    if lesson.quiz_is_required:
        quiz_passed = await quiz_gate.has_passed(db, user_id, lesson)

    unmet = first_unmet_clause(lesson, activity, quiz_passed)
    if unmet is None:
        return RequirementCheck(satisfied=True)
    return RequirementCheck(satisfied=False, unmet=[unmet])


async def is_satisfied(db: AsyncSession, user_id: UUID, lesson: Lesson) -> bool:
    return (await evaluate(db, user_id, lesson)).satisfied
