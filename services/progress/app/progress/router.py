"""Progress router — lesson completion, summaries, access and eligibility.

HTTP layer only. Delegates to controller for business logic.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, get_redis, get_store_timeout
from app.progress import controller
from app.progress.schemas import (
    CompleteLessonRequest,
    CompletionResponse,
    CourseCompletionResponse,
    LessonProgressResponse,
    ModuleAccessResponse,
    ModuleCompletionResponse,
    QuizEligibilityResponse,
)

router = APIRouter(prefix="/progress", tags=["Progress"])


@router.post(
    "/courses/{course_id}/modules/{module_id}/lessons/{lesson_id}/complete",
    response_model=CompletionResponse,
    summary="Mark a lesson complete",
    description="Re-evaluates the lesson's completion requirements (video, assets, "
    "time, quiz) and, when all hold, records the lesson in the module ledger. "
    "Idempotent. Returns 422 naming the first unmet requirement; 409 and 503 "
    "are safe to retry.",
)
async def complete_lesson(
    course_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    body: CompleteLessonRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user),
    timeout: float | None = Depends(get_store_timeout),
) -> CompletionResponse:
    return await controller.complete_lesson(
        db, user_id, course_id, module_id, lesson_id,
        body or CompleteLessonRequest(), timeout,
    )


@router.get(
    "/courses/{course_id}/modules/{module_id}/lessons/{lesson_id}",
    response_model=LessonProgressResponse,
    summary="Lesson progress summary",
    description="Completion state, time spent, video and asset progress, quiz "
    "attempts with eligibility, and whether the next lesson is unlocked.",
)
async def get_lesson_progress(
    course_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user),
    redis: Redis | None = Depends(get_redis),
    timeout: float | None = Depends(get_store_timeout),
) -> LessonProgressResponse:
    return await controller.get_lesson_progress(
        db, user_id, course_id, module_id, lesson_id, redis, timeout,
    )


@router.get(
    "/courses/{course_id}/modules/{module_id}/access",
    response_model=ModuleAccessResponse,
    summary="Module prerequisite check",
    description="Whether the module is unlocked, with the learner's progress "
    "against each prerequisite's required completion.",
)
async def get_module_access(
    course_id: UUID,
    module_id: UUID,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user),
    timeout: float | None = Depends(get_store_timeout),
) -> ModuleAccessResponse:
    return await controller.get_module_access(db, user_id, course_id, module_id, timeout)


@router.get(
    "/courses/{course_id}/modules/{module_id}/completion",
    response_model=ModuleCompletionResponse,
    summary="Module completion",
)
async def get_module_completion(
    course_id: UUID,
    module_id: UUID,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user),
    timeout: float | None = Depends(get_store_timeout),
) -> ModuleCompletionResponse:
    return await controller.get_module_completion(db, user_id, course_id, module_id, timeout)


@router.get(
    "/courses/{course_id}/completion",
    response_model=CourseCompletionResponse,
    summary="Course completion and certificate eligibility",
    description="Only full enrollments are eligible. Complete when every module "
    "of the course is at 100%.",
)
async def get_course_completion(
    course_id: UUID,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user),
    timeout: float | None = Depends(get_store_timeout),
) -> CourseCompletionResponse:
    return await controller.get_course_completion(db, user_id, course_id, timeout)


@router.get(
    "/lessons/{lesson_id}/quiz/eligibility",
    response_model=QuizEligibilityResponse,
    summary="Quiz eligibility",
    description="can_attempt: content requirements for a quiz shown after the "
    "lesson are met. has_passed: the latest finalized attempt meets the "
    "passing score.",
)
async def get_quiz_eligibility(
    lesson_id: UUID,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user),
    timeout: float | None = Depends(get_store_timeout),
) -> QuizEligibilityResponse:
    return await controller.get_quiz_eligibility(db, user_id, lesson_id, timeout)
