"""Domain exception classes for the progress service.

These are raised by service-layer code and caught by controllers
to map to appropriate HTTP responses.

Negative evaluation results ("requirement not met", "module locked") are
returned as values by the evaluators; only lookups that fail and store
failures propagate as exceptions from them.
"""


class NotFoundError(Exception):
    """Base for a missing lesson, module, quiz or ledger entry."""

    entity = "Resource"

    def __init__(self, identifier: str = ""):
        self.identifier = identifier
        super().__init__(f"{self.entity} not found: {identifier}")


class LessonNotFoundError(NotFoundError):
    entity = "Lesson"


class ModuleNotFoundError(NotFoundError):
    entity = "Module"


class CourseNotFoundError(NotFoundError):
    entity = "Course"


class QuizNotFoundError(NotFoundError):
    entity = "Quiz"


class LedgerEntryNotFoundError(NotFoundError):
    entity = "Progress entry"


class InvalidAssetError(Exception):
    """Raised when an asset id is not among the lesson's declared assets."""

    def __init__(self, lesson_id: str = "", asset_id: str = ""):
        self.lesson_id = lesson_id
        self.asset_id = asset_id
        super().__init__(f"Asset {asset_id} is not declared on lesson {lesson_id}")


class RequirementsUnmetError(Exception):
    """A lesson's completion requirements are not currently satisfied.

    Not a system fault: a normal negative result, kept distinct from
    ConcurrencyError / InfrastructureError so callers never confuse the two.
    """

    def __init__(self, lesson_id: str = "", unmet: list[dict] | None = None):
        self.lesson_id = lesson_id
        self.unmet = unmet or []
        clauses = ", ".join(item["clause"] for item in self.unmet) or "unknown"
        super().__init__(f"Completion requirements not met for lesson {lesson_id}: {clauses}")


class ConcurrencyError(Exception):
    """Transaction conflict (write conflict, serialization failure, duplicate entry)."""

    retryable = True


class InfrastructureError(Exception):
    """Store unavailable or timed out; the outcome could not be determined."""

    retryable = True


class NotEnrolledError(Exception):
    """Raised when an operation requires an enrollment covering the module."""


class ModuleLockedError(Exception):
    """Raised when user tries to access a module that is locked by prerequisites."""

    def __init__(self, module_id: str = ""):
        self.module_id = module_id
        super().__init__(f"Module is locked: {module_id}")


class LessonGatedError(Exception):
    """Raised when the preceding lesson's blocking quiz has not been passed."""

    def __init__(self, lesson_id: str = ""):
        self.lesson_id = lesson_id
        super().__init__(f"Pass the previous lesson's quiz to unlock this content: {lesson_id}")


class InvalidDependencyGraphError(Exception):
    """Raised when module dependency graph contains a cycle or invalid references."""

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(f"Invalid dependency graph: {detail}")


class InvalidActivityError(Exception):
    """Raised when an activity delta would decrease an accumulator."""
