import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shared.database.postgres import Base

from .enums import EnrollmentType, enrollment_type_enum
from .types import JSONType, utcnow


class Enrollment(Base):
    """Written by the enrollment/payment flows; consulted before any progress check."""

    __tablename__ = "enrollments"

    enrollment_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Soft reference: User lives in the identity service
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("courses.course_id", ondelete="CASCADE"),
        nullable=False,
    )
    enrollment_type: Mapped[EnrollmentType] = mapped_column(
        enrollment_type_enum, nullable=False, default=EnrollmentType.FULL
    )
    # PARTIAL enrollments only: module ids (as strings) the learner bought
    enrolled_module_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollments_user_course"),
        Index("ix_enrollments_user_id", "user_id"),
    )

    def covers_module(self, module_id: uuid.UUID) -> bool:
        if self.enrollment_type == EnrollmentType.FULL:
            return True
        return str(module_id) in {str(m) for m in self.enrolled_module_ids or []}
