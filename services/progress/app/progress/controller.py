"""Progress controller — access checks, then completion or summaries."""

from __future__ import annotations

from dataclasses import asdict
from uuid import UUID

from fastapi import HTTPException, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.assessment import service as quiz_gate
from app.content.service import get_lesson, get_module
from app.database import store_guard
from app.exceptions import (
    ConcurrencyError,
    InfrastructureError,
    LessonGatedError,
    ModuleLockedError,
    NotEnrolledError,
    NotFoundError,
    RequirementsUnmetError,
)
from app.gating import service as gating
from app.ledger import service as ledger
from app.progress import service
from app.progress.schemas import (
    CompleteLessonRequest,
    CompletionResponse,
    CourseCompletionResponse,
    LessonProgressResponse,
    ModuleAccessResponse,
    ModuleCompletionResponse,
    QuizEligibilityResponse,
)


def _handle_domain_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, NotEnrolledError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enrolled in this course.",
        )
    if isinstance(exc, (ModuleLockedError, LessonGatedError)):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, RequirementsUnmetError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "code": "requirements_unmet",
                "message": str(exc),
                "details": exc.unmet,
            },
        )
    if isinstance(exc, ConcurrencyError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InfrastructureError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error.",
    )


async def _require_enrollment(
    db: AsyncSession, user_id: UUID, course_id: UUID, module_id: UUID | None = None,
) -> None:
    if not await gating.is_enrolled(db, user_id, course_id, module_id):
        raise NotEnrolledError()


async def complete_lesson(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    body: CompleteLessonRequest,
    timeout: float | None = None,
) -> CompletionResponse:
    try:
        async with store_guard(timeout):
            await _require_enrollment(db, user_id, course_id, module_id)
            if not await gating.can_access_module(db, user_id, module_id):
                raise ModuleLockedError(str(module_id))
            lesson = await get_lesson(db, lesson_id, module_id)
            if not await gating.can_access_lesson_content(db, user_id, lesson):
                raise LessonGatedError(str(lesson_id))

        result = await ledger.update_on_completion(
            db, user_id, course_id, module_id, lesson_id, body.quiz_id, timeout=timeout,
        )
        # Access checks opened the request transaction; until this commit the
        # ledger write is only a savepoint.
        async with store_guard(timeout):
            await db.commit()
        if not result.completed:
            raise RequirementsUnmetError(str(lesson_id), result.unmet_requirements)
        return CompletionResponse(**asdict(result))
    except Exception as exc:
        raise _handle_domain_error(exc) from exc


async def get_lesson_progress(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    redis: Redis | None = None,
    timeout: float | None = None,
) -> LessonProgressResponse:
    try:
        async with store_guard(timeout):
            await _require_enrollment(db, user_id, course_id, module_id)
            result = await service.get_lesson_summary(
                db, user_id, course_id, module_id, lesson_id, redis,
            )
        return LessonProgressResponse(**result)
    except Exception as exc:
        raise _handle_domain_error(exc) from exc


async def get_module_access(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    module_id: UUID,
    timeout: float | None = None,
) -> ModuleAccessResponse:
    try:
        async with store_guard(timeout):
            await _require_enrollment(db, user_id, course_id, module_id)
            access = await gating.check_module_access(db, user_id, module_id, course_id)
        return ModuleAccessResponse.model_validate(access)
    except Exception as exc:
        raise _handle_domain_error(exc) from exc


async def get_module_completion(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    module_id: UUID,
    timeout: float | None = None,
) -> ModuleCompletionResponse:
    try:
        async with store_guard(timeout):
            await _require_enrollment(db, user_id, course_id, module_id)
            result = await service.get_module_completion(db, user_id, course_id, module_id)
        return ModuleCompletionResponse(**result)
    except Exception as exc:
        raise _handle_domain_error(exc) from exc


async def get_course_completion(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    timeout: float | None = None,
) -> CourseCompletionResponse:
    try:
        async with store_guard(timeout):
            result = await service.get_course_completion(db, user_id, course_id)
        return CourseCompletionResponse(**result)
    except Exception as exc:
        raise _handle_domain_error(exc) from exc


async def get_quiz_eligibility(
    db: AsyncSession,
    user_id: UUID,
    lesson_id: UUID,
    timeout: float | None = None,
) -> QuizEligibilityResponse:
    try:
        async with store_guard(timeout):
            lesson = await get_lesson(db, lesson_id)
            module = await get_module(db, lesson.module_id)
            await _require_enrollment(db, user_id, module.course_id, module.module_id)
            quiz = quiz_gate.require_quiz(lesson)
            return QuizEligibilityResponse(
                lesson_id=lesson_id,
                quiz_id=quiz.quiz_id,
                can_attempt=await quiz_gate.can_attempt(db, user_id, lesson),
                has_passed=await quiz_gate.has_passed(db, user_id, lesson),
                passing_score=quiz_gate.passing_threshold(lesson, quiz),
            )
    except Exception as exc:
        raise _handle_domain_error(exc) from exc
