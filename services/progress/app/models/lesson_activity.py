import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from shared.database.postgres import Base

from .types import utcnow


class LessonActivity(Base):
    """Time-on-lesson accumulator per (learner, lesson). Never decreases."""

    __tablename__ = "lesson_activity"

    activity_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    lesson_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("lessons.lesson_id", ondelete="CASCADE"),
        nullable=False,
    )
    time_spent_secs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", name="uq_lesson_activity_user_lesson"),
        CheckConstraint("time_spent_secs >= 0", name="ck_lesson_activity_time_spent"),
        Index("ix_lesson_activity_lesson_id", "lesson_id"),
    )
