import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, SmallInteger, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.database.postgres import Base

from .enums import QuizAttemptStatus, quiz_attempt_status_enum
from .types import utcnow


class QuizAttempt(Base):
    """Written by the quiz subsystem; read-only here.

    COMPLETED = submitted and auto-graded, GRADED = manual grading finished,
    GRADING = submitted but awaiting manual grading.
    """

    __tablename__ = "quiz_attempts"

    attempt_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quizzes.quiz_id", ondelete="CASCADE"),
        nullable=False,
    )
    # Soft reference to the identity service
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    attempt_number: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    status: Mapped[QuizAttemptStatus] = mapped_column(
        quiz_attempt_status_enum, nullable=False, default=QuizAttemptStatus.IN_PROGRESS
    )
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    passed: Mapped[bool | None] = mapped_column(nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    quiz = relationship("Quiz", lazy="select")

    __table_args__ = (
        UniqueConstraint("quiz_id", "user_id", "attempt_number", name="uq_quiz_attempt_number"),
        Index("ix_quiz_attempts_quiz_user", "quiz_id", "user_id"),
    )
