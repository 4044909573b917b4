import uuid

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy import func, select

from app.models import AssetProgress, LessonAsset, ModuleProgress
from app.models.enums import EnrollmentType


async def _enrolled_course(seed, learner_id, **lesson_fields):
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module, **lesson_fields)
    await seed.enroll(learner_id, course)
    return course, module, lesson


def _complete_url(course, module, lesson) -> str:
    return (
        f"/api/v1/progress/courses/{course.course_id}/modules/{module.module_id}"
        f"/lessons/{lesson.lesson_id}/complete"
    )


@pytest.mark.asyncio
async def test_health(async_client) -> None:
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "progress"}


@pytest.mark.asyncio
async def test_requires_bearer_token(async_client, seed, learner_id) -> None:
    course, module, lesson = await _enrolled_course(seed, learner_id)
    response = await async_client.post(
        _complete_url(course, module, lesson), headers={"Authorization": ""},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_complete_lesson(async_client, seed, learner_id) -> None:
    course, module, lesson = await _enrolled_course(seed, learner_id)

    response = await async_client.post(_complete_url(course, module, lesson), json={})

    assert response.status_code == 200
    data = response.json()
    assert data["completed"] is True
    assert data["progress"] == 100.0
    assert data["completed_lessons"] == [str(lesson.lesson_id)]
    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_unmet_requirement_names_clause(async_client, seed, learner_id) -> None:
    course, module, lesson = await _enrolled_course(seed, learner_id, min_time_spent_secs=600)

    response = await async_client.post(
        _complete_url(course, module, lesson), headers={"X-Request-ID": "req-1"},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["request_id"] == "req-1"
    assert body["error"]["code"] == "requirements_unmet"
    assert body["error"]["retryable"] is False
    assert body["error"]["details"][0]["clause"] == "time"


@pytest.mark.asyncio
async def test_time_reports_unlock_completion(async_client, seed, learner_id) -> None:
    course, module, lesson = await _enrolled_course(seed, learner_id, min_time_spent_secs=600)

    for delta in (300, 301):
        response = await async_client.post(
            f"/api/v1/activity/lessons/{lesson.lesson_id}/time", json={"delta_secs": delta},
        )
        assert response.status_code == 200
    assert response.json()["time_spent_secs"] == 601

    response = await async_client.post(_complete_url(course, module, lesson))
    assert response.status_code == 200
    assert response.json()["completed"] is True


@pytest.mark.asyncio
async def test_not_enrolled_is_forbidden(async_client, seed) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module)

    response = await async_client.post(_complete_url(course, module, lesson))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_locked_module_is_forbidden(async_client, seed, learner_id) -> None:
    course = await seed.course()
    prereq = await seed.module(course, sort_order=1)
    await seed.lessons(prereq, 2)
    gated = await seed.module(course, sort_order=2, prerequisites=[(prereq, 100.0)])
    lesson = await seed.lesson(gated)
    await seed.enroll(learner_id, course)

    response = await async_client.post(_complete_url(course, gated, lesson))
    assert response.status_code == 403

    access = await async_client.get(
        f"/api/v1/progress/courses/{course.course_id}/modules/{gated.module_id}/access",
    )
    assert access.status_code == 200
    data = access.json()
    assert data["accessible"] is False
    assert data["prerequisites"][0]["progress"] == 0.0
    assert data["prerequisites"][0]["required_completion"] == 100.0


@pytest.mark.asyncio
async def test_unknown_asset_is_bad_request(async_client, seed, learner_id) -> None:
    _, _, lesson = await _enrolled_course(seed, learner_id)
    response = await async_client.post(
        f"/api/v1/activity/lessons/{lesson.lesson_id}/assets/{uuid.uuid4()}/download",
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_lesson_is_not_found(async_client) -> None:
    response = await async_client.post(
        f"/api/v1/activity/lessons/{uuid.uuid4()}/video",
        json={"position_secs": 10, "delta_watched_secs": 10, "completed": False},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_quiz_eligibility(async_client, seed, learner_id) -> None:
    _, _, lesson = await _enrolled_course(seed, learner_id, quiz_required=True)
    quiz = await seed.quiz(lesson, passing_score=70)
    await seed.attempt(quiz, learner_id, number=1, percentage=70)

    response = await async_client.get(f"/api/v1/progress/lessons/{lesson.lesson_id}/quiz/eligibility")

    assert response.status_code == 200
    data = response.json()
    assert data["quiz_id"] == str(quiz.quiz_id)
    assert data["has_passed"] is True
    assert data["can_attempt"] is True


@pytest.mark.asyncio
async def test_course_completion_endpoint(async_client, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module)
    await seed.enroll(learner_id, course, enrollment_type=EnrollmentType.PARTIAL, modules=[module])

    await async_client.post(_complete_url(course, module, lesson))
    response = await async_client.get(f"/api/v1/progress/courses/{course.course_id}/completion")

    assert response.status_code == 200
    data = response.json()
    assert data["is_completed"] is False
    assert data["certificate_eligible"] is False
    assert data["modules"][0]["progress"] == 100.0


@pytest.mark.asyncio
async def test_failed_commit_is_not_reported_as_completed(
    async_client, db_session, seed, learner_id, monkeypatch,
) -> None:
    course, module, lesson = await _enrolled_course(seed, learner_id)

    async def _failing_commit() -> None:
        raise sa_exc.OperationalError("COMMIT", None, Exception("connection reset"))

    monkeypatch.setattr(db_session, "commit", _failing_commit)
    response = await async_client.post(_complete_url(course, module, lesson))
    monkeypatch.undo()

    assert response.status_code == 503
    assert response.json()["error"]["retryable"] is True
    entries = await db_session.scalar(
        select(func.count()).select_from(ModuleProgress).where(
            ModuleProgress.user_id == learner_id,
        )
    )
    assert entries == 0


@pytest.mark.asyncio
async def test_activity_requires_enrollment(async_client, db_session, seed) -> None:
    course = await seed.course()
    module = await seed.module(course)
    lesson = await seed.lesson(module)
    asset = await seed.asset(lesson, required=True)

    download = await async_client.post(
        f"/api/v1/activity/lessons/{lesson.lesson_id}/assets/{asset.asset_id}/download",
    )
    time_spent = await async_client.post(
        f"/api/v1/activity/lessons/{lesson.lesson_id}/time", json={"delta_secs": 30},
    )
    tick = await async_client.post(
        f"/api/v1/activity/lessons/{lesson.lesson_id}/video",
        json={"position_secs": 10, "delta_watched_secs": 10, "completed": False},
    )

    assert download.status_code == 403
    assert time_spent.status_code == 403
    assert tick.status_code == 403
    rows = await db_session.scalar(
        select(func.count()).select_from(AssetProgress).where(
            AssetProgress.asset_id == asset.asset_id,
        )
    )
    assert rows == 0
    refreshed = await db_session.get(LessonAsset, asset.asset_id, populate_existing=True)
    assert refreshed.download_count == 0


@pytest.mark.asyncio
async def test_partial_enrollment_limits_activity(async_client, seed, learner_id) -> None:
    course = await seed.course()
    covered = await seed.module(course, sort_order=1)
    uncovered = await seed.module(course, sort_order=2)
    open_lesson = await seed.lesson(covered)
    closed_lesson = await seed.lesson(uncovered)
    await seed.enroll(
        learner_id, course, enrollment_type=EnrollmentType.PARTIAL, modules=[covered],
    )

    allowed = await async_client.post(
        f"/api/v1/activity/lessons/{open_lesson.lesson_id}/time", json={"delta_secs": 30},
    )
    denied = await async_client.post(
        f"/api/v1/activity/lessons/{closed_lesson.lesson_id}/time", json={"delta_secs": 30},
    )

    assert allowed.status_code == 200
    assert denied.status_code == 403
