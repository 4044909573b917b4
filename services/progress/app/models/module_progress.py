import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shared.database.postgres import Base

from .types import JSONType, utcnow


class ModuleProgress(Base):
    """Ledger entry: the authoritative completion record per (learner, module).

    Written only by ``app.ledger.service.update_on_completion``.
    ``completed_lesson_ids`` / ``completed_quiz_ids`` hold id strings and only grow.
    ``progress_pct`` is the value at the last write; reads recompute it from
    the live lesson count.
    """

    __tablename__ = "module_progress"

    entry_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    # Denormalized for per-course queries (certificate eligibility)
    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("courses.course_id", ondelete="CASCADE"),
        nullable=False,
    )
    module_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("course_modules.module_id", ondelete="CASCADE"),
        nullable=False,
    )
    completed_lesson_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    completed_quiz_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    progress_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_accessed: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_module_progress_user_module"),
        Index("ix_module_progress_user_course", "user_id", "course_id"),
    )
