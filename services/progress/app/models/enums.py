import enum

from sqlalchemy import Enum as SAEnum


class EnrollmentType(str, enum.Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"


class ShowQuizAt(str, enum.Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"
    ANY = "ANY"


class QuizAttemptStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    GRADING = "GRADING"
    GRADED = "GRADED"


# Only finalized attempts may satisfy a quiz gate.
FINALIZED_ATTEMPT_STATUSES = (QuizAttemptStatus.COMPLETED, QuizAttemptStatus.GRADED)


# Stored as VARCHAR (+ CHECK) rather than a native PG enum so the same
# schema runs on Postgres and on the SQLite test database.
enrollment_type_enum = SAEnum(
    EnrollmentType, name="enrollment_type", native_enum=False, length=20, create_constraint=True
)
show_quiz_at_enum = SAEnum(
    ShowQuizAt, name="show_quiz_at", native_enum=False, length=20, create_constraint=True
)
quiz_attempt_status_enum = SAEnum(
    QuizAttemptStatus,
    name="quiz_attempt_status",
    native_enum=False,
    length=20,
    create_constraint=True,
)
