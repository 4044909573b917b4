import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
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


class VideoProgress(Base):
    """Per (learner, lesson) playback state.

    ``completed`` is client-reported and sticky: once true it is only cleared
    by deleting the row when the lesson's video is replaced.
    """

    __tablename__ = "video_progress"

    progress_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    lesson_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("lessons.lesson_id", ondelete="CASCADE"),
        nullable=False,
    )
    watched_secs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_position_secs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_accessed: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", name="uq_video_progress_user_lesson"),
        CheckConstraint("watched_secs >= 0", name="ck_video_progress_watched"),
        CheckConstraint("last_position_secs >= 0", name="ck_video_progress_position"),
        Index("ix_video_progress_lesson_id", "lesson_id"),
    )
