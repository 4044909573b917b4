"""Progress domain Pydantic V2 schemas.

Covers lesson completion, lesson summaries, module access and
course/module completion.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import EnrollmentType, QuizAttemptStatus


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


class CompleteLessonRequest(BaseModel):
    quiz_id: UUID | None = Field(
        default=None,
        description="Quiz to record as completed alongside the lesson. "
        "Only recorded when the learner's latest attempt passes.",
    )


class CompletionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    completed: bool
    progress: float = Field(description="Module progress 0-100 after the update.")
    completed_lessons: list[str]
    completed_quizzes: list[str]
    unmet_requirements: list[dict] | None = None


# ---------------------------------------------------------------------------
# Lesson summary
# ---------------------------------------------------------------------------


class VideoSummary(BaseModel):
    watched_secs: int
    last_position_secs: int
    completed: bool
    duration_secs: int | None = None


class AssetSummary(BaseModel):
    asset_id: UUID
    title: str
    required: bool
    download_count: int
    last_downloaded_at: datetime | None = None


class AttemptSummary(BaseModel):
    attempt_id: UUID
    attempt_number: int
    status: QuizAttemptStatus
    percentage: float | None = None
    passed: bool | None = None
    submitted_at: datetime | None = None


class QuizSummary(BaseModel):
    quiz_id: UUID
    required: bool
    completed: bool
    passing_score: float
    has_passed: bool
    can_attempt: bool
    remaining_attempts: int
    attempts: list[AttemptSummary]


class NextLessonSummary(BaseModel):
    lesson_id: UUID
    title: str
    accessible: bool


class LessonProgressResponse(BaseModel):
    lesson_id: UUID
    completed: bool
    time_spent_secs: int
    video: VideoSummary | None = None
    assets: list[AssetSummary] = []
    quiz: QuizSummary | None = None
    next_lesson: NextLessonSummary | None = None


# ---------------------------------------------------------------------------
# Access & completion
# ---------------------------------------------------------------------------


class PrerequisiteStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    module_id: UUID
    required_completion: float
    progress: float
    met: bool


class ModuleAccessResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    module_id: UUID
    accessible: bool
    prerequisites: list[PrerequisiteStatusResponse]


class ModuleCompletionResponse(BaseModel):
    module_id: UUID
    is_completed: bool
    total_lessons: int
    completed_lessons: int
    progress: float
    completion_date: datetime | None = None


class ModuleProgressRow(BaseModel):
    module_id: UUID
    title: str
    progress: float


class CourseCompletionResponse(BaseModel):
    course_id: UUID
    enrollment_type: EnrollmentType
    certificate_eligible: bool
    is_completed: bool
    completed_modules: int
    total_modules: int
    completion_date: datetime | None = None
    modules: list[ModuleProgressRow]


class QuizEligibilityResponse(BaseModel):
    lesson_id: UUID
    quiz_id: UUID
    can_attempt: bool
    has_passed: bool
    passing_score: float
