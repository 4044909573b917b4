"""Progress service — read-side summaries over the ledger and activity.

Lesson summaries, module completion and course (certificate) eligibility.
Nothing here writes; completion goes through ``app.ledger.service``.

Pure business logic, no FastAPI imports.
"""

from __future__ import annotations

from uuid import UUID

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.activity import service as activity
from app.assessment import service as quiz_gate
from app.content.service import (
    count_live_lessons,
    get_course,
    get_lesson,
    get_module,
    get_next_lesson,
    list_course_modules,
)
from app.exceptions import NotEnrolledError
from app.gating.service import can_access_lesson_content, get_enrollment
from app.ledger.service import find_entry, list_entries
from app.models.enums import EnrollmentType


async def get_lesson_summary(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    module_id: UUID,
    lesson_id: UUID,
    redis: Redis | None = None,
) -> dict:
    await get_module(db, module_id, course_id)
    lesson = await get_lesson(db, lesson_id, module_id)
    entry = await find_entry(db, user_id, module_id)
    completed_lessons = set(entry.completed_lessons) if entry else set()
    completed_quizzes = set(entry.completed_quizzes) if entry else set()

    result: dict = {
        "lesson_id": lesson.lesson_id,
        "completed": str(lesson.lesson_id) in completed_lessons,
        "time_spent_secs": await activity.get_time_spent(db, lesson_id, user_id),
        "video": None,
        "assets": [],
        "quiz": None,
        "next_lesson": None,
    }

    if lesson.has_video:
        video = await activity.get_video_progress(db, lesson_id, user_id)
        result["video"] = {
            "watched_secs": video.watched_secs if video else 0,
            "last_position_secs": await activity.get_resume_position(
                db, lesson_id, user_id, redis,
            ),
            "completed": bool(video and video.completed),
            "duration_secs": lesson.video_duration_secs,
        }

    downloads = await activity.list_asset_progress(db, lesson_id, user_id)
    for asset in lesson.assets:
        record = downloads.get(asset.asset_id)
        result["assets"].append({
            "asset_id": asset.asset_id,
            "title": asset.title,
            "required": asset.download_required,
            "download_count": record.download_count if record else 0,
            "last_downloaded_at": record.last_downloaded_at if record else None,
        })

    quiz = lesson.active_quiz
    if quiz is not None:
        attempts = await quiz_gate.list_attempts(db, quiz.quiz_id, user_id)
        submitted = await quiz_gate.count_submitted_attempts(db, quiz.quiz_id, user_id)
        result["quiz"] = {
            "quiz_id": quiz.quiz_id,
            "required": lesson.quiz_is_required,
            "completed": str(quiz.quiz_id) in completed_quizzes,
            "passing_score": quiz_gate.passing_threshold(lesson, quiz),
            "has_passed": await quiz_gate.has_passed(db, user_id, lesson),
            "can_attempt": await quiz_gate.can_attempt(db, user_id, lesson),
            "remaining_attempts": max(quiz.max_attempts - submitted, 0),
            "attempts": [
                {
                    "attempt_id": a.attempt_id,
                    "attempt_number": a.attempt_number,
                    "status": a.status,
                    "percentage": a.percentage,
                    "passed": a.passed,
                    "submitted_at": a.submitted_at,
                }
                for a in attempts
            ],
        }

    next_lesson = await get_next_lesson(db, lesson)
    if next_lesson is not None:
        result["next_lesson"] = {
            "lesson_id": next_lesson.lesson_id,
            "title": next_lesson.title,
            "accessible": await can_access_lesson_content(db, user_id, next_lesson),
        }
    return result


async def get_module_completion(
    db: AsyncSession, user_id: UUID, course_id: UUID, module_id: UUID,
) -> dict:
    await get_module(db, module_id, course_id)
    entry = await find_entry(db, user_id, module_id)
    total = await count_live_lessons(db, module_id)
    progress = entry.progress if entry else 0.0
    is_completed = progress >= 100.0
    return {
        "module_id": module_id,
        "is_completed": is_completed,
        "total_lessons": total,
        "completed_lessons": len(entry.completed_lessons) if entry else 0,
        "progress": progress,
        "completion_date": entry.updated_at if entry and is_completed else None,
    }


async def get_course_completion(db: AsyncSession, user_id: UUID, course_id: UUID) -> dict:
    """Certificate eligibility: full enrollment and every live module at 100%."""
    await get_course(db, course_id)
    enrollment = await get_enrollment(db, user_id, course_id)
    if enrollment is None:
        raise NotEnrolledError()

    modules = await list_course_modules(db, course_id)
    entries = await list_entries(db, user_id, [m.module_id for m in modules])
    module_rows = [
        {
            "module_id": m.module_id,
            "title": m.title,
            "progress": entries[m.module_id].progress if m.module_id in entries else 0.0,
        }
        for m in modules
    ]

    eligible = enrollment.enrollment_type == EnrollmentType.FULL
    is_completed = eligible and bool(modules) and all(r["progress"] >= 100.0 for r in module_rows)
    completion_date = None
    if is_completed:
        completion_date = max(entries[m.module_id].updated_at for m in modules)

    return {
        "course_id": course_id,
        "enrollment_type": enrollment.enrollment_type,
        "certificate_eligible": is_completed,
        "is_completed": is_completed,
        "completed_modules": sum(1 for r in module_rows if r["progress"] >= 100.0),
        "total_modules": len(modules),
        "completion_date": completion_date,
        "modules": module_rows,
    }
