import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.database.postgres import Base

from .enums import ShowQuizAt, show_quiz_at_enum
from .types import utcnow


class Lesson(Base):
    __tablename__ = "lessons"

    lesson_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("course_modules.module_id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    # Unique per module among non-deleted lessons; soft deletes leave a transient hole.
    sort_order: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Video facts written by the upload handler (storage itself is external)
    video_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    video_duration_secs: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # ── Completion requirements ────────────────────────────────────────
    require_video_watch: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_time_spent_secs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Quiz settings ──────────────────────────────────────────────────
    quiz_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Legacy flag from older lesson documents; same meaning as quiz_required.
    require_quiz_pass: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # None = use the quiz's own passing_score
    quiz_min_passing_score: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    quiz_block_progress: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    quiz_show_at: Mapped[ShowQuizAt] = mapped_column(
        show_quiz_at_enum, nullable=False, default=ShowQuizAt.AFTER
    )
    quiz_min_time_secs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    module = relationship("CourseModule", lazy="select")
    assets = relationship(
        "LessonAsset",
        back_populates="lesson",
        cascade="all, delete-orphan",
        order_by="LessonAsset.uploaded_at",
        lazy="selectin",
    )
    quiz = relationship(
        "Quiz", back_populates="lesson", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (
        Index("ix_lessons_module_id_sort_order", "module_id", "sort_order"),
    )

    @property
    def has_video(self) -> bool:
        return bool(self.video_key)

    @property
    def active_quiz(self):
        if self.quiz is None or self.quiz.is_deleted:
            return None
        return self.quiz

    @property
    def quiz_is_required(self) -> bool:
        return self.active_quiz is not None and (self.quiz_required or self.require_quiz_pass)

    @property
    def required_asset_ids(self) -> list[uuid.UUID]:
        return [a.asset_id for a in self.assets if a.download_required]

    def has_asset(self, asset_id: uuid.UUID) -> bool:
        return any(a.asset_id == asset_id for a in self.assets)


class LessonAsset(Base):
    __tablename__ = "lesson_assets"

    asset_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lesson_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("lessons.lesson_id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    file_key: Mapped[str] = mapped_column(String(500), nullable=False)
    # completionRequirements.downloadAssets[].required
    download_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Denormalized, best-effort counter; AssetProgress is authoritative.
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    lesson = relationship("Lesson", back_populates="assets", lazy="select")

    __table_args__ = (
        Index("ix_lesson_assets_lesson_id", "lesson_id"),
    )
