import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, SmallInteger, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.database.postgres import Base

from .types import utcnow


class Quiz(Base):
    """Quiz metadata the gate needs; questions and grading live in the quiz subsystem."""

    __tablename__ = "quizzes"

    quiz_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lesson_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("lessons.lesson_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    passing_score: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=50)
    max_attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=3)
    time_limit_secs: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    lesson = relationship("Lesson", back_populates="quiz", lazy="select")
