import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shared.database.postgres import Base

from .types import utcnow


class AssetProgress(Base):
    """Per (learner, lesson, asset) download record; existence satisfies a required download."""

    __tablename__ = "asset_progress"

    progress_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    lesson_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("lessons.lesson_id", ondelete="CASCADE"),
        nullable=False,
    )
    asset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("lesson_assets.asset_id", ondelete="CASCADE"),
        nullable=False,
    )
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_downloaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_downloaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "lesson_id", "asset_id", name="uq_asset_progress_user_lesson_asset"
        ),
        Index("ix_asset_progress_user_lesson", "user_id", "lesson_id"),
    )
