import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.database.postgres import Base

from .types import utcnow


class CourseModule(Base):
    __tablename__ = "course_modules"

    module_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("courses.course_id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    sort_order: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    course = relationship("Course", back_populates="modules", lazy="select")
    prerequisites = relationship(
        "ModulePrerequisite",
        foreign_keys="ModulePrerequisite.module_id",
        back_populates="module",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_course_modules_course_id", "course_id"),
    )


class ModulePrerequisite(Base):
    """Depth-1 prerequisite edge: ``module_id`` requires ``prerequisite_module_id``."""

    __tablename__ = "module_prerequisites"

    module_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("course_modules.module_id", ondelete="CASCADE"),
        primary_key=True,
    )
    prerequisite_module_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("course_modules.module_id", ondelete="CASCADE"),
        primary_key=True,
    )
    # Minimum ledger progress (0-100) on the prerequisite module.
    required_completion: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)

    module = relationship(
        "CourseModule", foreign_keys=[module_id], back_populates="prerequisites", lazy="select"
    )

    __table_args__ = (
        CheckConstraint(
            "required_completion >= 0 AND required_completion <= 100",
            name="ck_module_prerequisites_required_completion",
        ),
        Index("ix_module_prerequisites_prerequisite", "prerequisite_module_id"),
    )
