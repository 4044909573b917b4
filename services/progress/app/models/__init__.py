# Import all models so Alembic can discover them via Base.metadata
from .asset_progress import AssetProgress
from .course import Course
from .course_module import CourseModule, ModulePrerequisite
from .enrollment import Enrollment
from .lesson import Lesson, LessonAsset
from .lesson_activity import LessonActivity
from .module_progress import ModuleProgress
from .quiz import Quiz
from .quiz_attempt import QuizAttempt
from .video_progress import VideoProgress

__all__ = [
    "AssetProgress",
    "Course",
    "CourseModule",
    "Enrollment",
    "Lesson",
    "LessonActivity",
    "LessonAsset",
    "ModulePrerequisite",
    "ModuleProgress",
    "Quiz",
    "QuizAttempt",
    "VideoProgress",
]
