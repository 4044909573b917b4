import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import get_db
from app.dependencies import get_settings
from app.main import create_app
from app.models import (
    Course,
    CourseModule,
    Enrollment,
    Lesson,
    LessonAsset,
    ModulePrerequisite,
    Quiz,
    QuizAttempt,
)
from app.models.enums import EnrollmentType, QuizAttemptStatus
from shared.database.postgres import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_JWT_SECRET = "progress-test-secret"

_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the outer
    # transaction as they do on PostgreSQL.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def learner_id() -> uuid.UUID:
    return uuid.uuid4()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


class Seeder:
    """Writes content, enrollment and quiz-attempt rows; commits after each call."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def course(self, title: str = "Course") -> Course:
        return await self._save(Course(title=title))

    async def module(
        self,
        course: Course,
        *,
        sort_order: int = 1,
        prerequisites: list[tuple[CourseModule, float]] = (),
    ) -> CourseModule:
        module = await self._save(
            CourseModule(
                course_id=course.course_id,
                title=f"Module {sort_order}",
                sort_order=sort_order,
            )
        )
        for prereq, required in prerequisites:
            self.db.add(
                ModulePrerequisite(
                    module_id=module.module_id,
                    prerequisite_module_id=prereq.module_id,
                    required_completion=required,
                )
            )
        await self.db.commit()
        return module

    async def lesson(self, module: CourseModule, *, sort_order: int = 1, **fields) -> Lesson:
        fields.setdefault("title", f"Lesson {sort_order}")
        return await self._save(
            Lesson(module_id=module.module_id, sort_order=sort_order, **fields)
        )

    async def lessons(self, module: CourseModule, count: int, start: int = 1) -> list[Lesson]:
        return [await self.lesson(module, sort_order=start + i) for i in range(count)]

    async def asset(self, lesson: Lesson, *, required: bool = False) -> LessonAsset:
        return await self._save(
            LessonAsset(
                lesson_id=lesson.lesson_id,
                title="Handout",
                file_key=f"assets/{uuid.uuid4()}.pdf",
                download_required=required,
            )
        )

    async def quiz(
        self, lesson: Lesson, *, passing_score: int = 70, max_attempts: int = 3,
    ) -> Quiz:
        return await self._save(
            Quiz(
                lesson_id=lesson.lesson_id,
                title="Quiz",
                passing_score=passing_score,
                max_attempts=max_attempts,
            )
        )

    async def attempt(
        self,
        quiz: Quiz,
        user_id: uuid.UUID,
        *,
        number: int,
        percentage: float | None,
        status: QuizAttemptStatus = QuizAttemptStatus.COMPLETED,
    ) -> QuizAttempt:
        submitted = status != QuizAttemptStatus.IN_PROGRESS
        return await self._save(
            QuizAttempt(
                quiz_id=quiz.quiz_id,
                user_id=user_id,
                attempt_number=number,
                status=status,
                percentage=percentage,
                passed=None if percentage is None else percentage >= quiz.passing_score,
                started_at=_BASE_TIME + timedelta(minutes=10 * number),
                submitted_at=_BASE_TIME + timedelta(minutes=10 * number + 5) if submitted else None,
            )
        )

    async def enroll(
        self,
        user_id: uuid.UUID,
        course: Course,
        *,
        enrollment_type: EnrollmentType = EnrollmentType.FULL,
        modules: list[CourseModule] = (),
    ) -> Enrollment:
        return await self._save(
            Enrollment(
                user_id=user_id,
                course_id=course.course_id,
                enrollment_type=enrollment_type,
                enrolled_module_ids=[str(m.module_id) for m in modules],
            )
        )


@pytest.fixture
def seed(db_session: AsyncSession) -> Seeder:
    return Seeder(db_session)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def make_token(user_id: uuid.UUID) -> str:
    return jwt.encode({"sub": str(user_id)}, TEST_JWT_SECRET, algorithm="HS256")


@pytest_asyncio.fixture
async def async_client(
    db_session: AsyncSession, learner_id: uuid.UUID,
) -> AsyncGenerator[AsyncClient, None]:
    app = create_app()

    async def _get_db() -> AsyncGenerator[AsyncSession, None]:
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: Settings(
        jwt_secret=TEST_JWT_SECRET, store_timeout_secs=5.0,
    )

    transport = ASGITransport(app=app)
    headers = {"Authorization": f"Bearer {make_token(learner_id)}"}
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as ac:
        yield ac
