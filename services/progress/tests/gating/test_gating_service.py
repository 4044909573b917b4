import uuid

import pytest

from app.content.service import get_lesson
from app.exceptions import InvalidDependencyGraphError
from app.gating import service
from app.gating.service import evaluate_prerequisites, validate_module_dependencies
from app.ledger.service import update_on_completion
from app.models import CourseModule, ModulePrerequisite
from app.models.enums import EnrollmentType


# ---------------------------------------------------------------------------
# Prerequisite evaluation
# ---------------------------------------------------------------------------


def test_required_completion_boundary() -> None:
    prereq = uuid.uuid4()
    assert evaluate_prerequisites([(prereq, 80.0)], {prereq: 80.0})[0].met is True
    assert evaluate_prerequisites([(prereq, 80.0)], {prereq: 79.9})[0].met is False


def test_missing_entry_counts_as_zero() -> None:
    prereq = uuid.uuid4()
    assert evaluate_prerequisites([(prereq, 100.0)], {})[0].met is False
    assert evaluate_prerequisites([(prereq, 0.0)], {})[0].met is True


def test_all_prerequisites_must_hold() -> None:
    a, b = uuid.uuid4(), uuid.uuid4()
    statuses = evaluate_prerequisites([(a, 50.0), (b, 50.0)], {a: 100.0, b: 10.0})
    assert [s.met for s in statuses] == [True, False]


@pytest.mark.asyncio
async def test_module_without_prerequisites_is_open(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    assert await service.can_access_module(db_session, learner_id, module.module_id) is True


@pytest.mark.asyncio
async def test_module_unlocks_at_required_completion(db_session, seed, learner_id) -> None:
    course = await seed.course()
    prereq = await seed.module(course, sort_order=1)
    lessons = await seed.lessons(prereq, 5)
    gated = await seed.module(course, sort_order=2, prerequisites=[(prereq, 80.0)])

    for lesson in lessons[:3]:
        await update_on_completion(
            db_session, learner_id, course.course_id, prereq.module_id, lesson.lesson_id,
        )
    access = await service.check_module_access(db_session, learner_id, gated.module_id)
    assert access.accessible is False
    assert access.prerequisites[0].progress == 60.0

    await update_on_completion(
        db_session, learner_id, course.course_id, prereq.module_id, lessons[3].lesson_id,
    )
    assert await service.can_access_module(db_session, learner_id, gated.module_id) is True


# ---------------------------------------------------------------------------
# Sequential lesson gating
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_blocking_quiz_gates_next_lesson(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    first = await seed.lesson(module, sort_order=1, quiz_required=True, quiz_block_progress=True)
    quiz = await seed.quiz(first, passing_score=70)
    second = await get_lesson(db_session, (await seed.lesson(module, sort_order=2)).lesson_id)

    assert await service.can_access_lesson_content(db_session, learner_id, second) is False

    await seed.attempt(quiz, learner_id, number=1, percentage=72)
    assert await service.can_access_lesson_content(db_session, learner_id, second) is True


@pytest.mark.asyncio
async def test_non_blocking_quiz_does_not_gate(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    first = await seed.lesson(module, sort_order=1, quiz_required=True, quiz_block_progress=False)
    await seed.quiz(first)
    second = await get_lesson(db_session, (await seed.lesson(module, sort_order=2)).lesson_id)

    assert await service.can_access_lesson_content(db_session, learner_id, second) is True


@pytest.mark.asyncio
async def test_gating_skips_order_holes(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    first = await seed.lesson(module, sort_order=1, quiz_required=True)
    await seed.quiz(first)
    await seed.lesson(module, sort_order=2, is_deleted=True)
    third = await get_lesson(db_session, (await seed.lesson(module, sort_order=3)).lesson_id)

    assert await service.can_access_lesson_content(db_session, learner_id, third) is False


@pytest.mark.asyncio
async def test_first_lesson_is_always_open(db_session, seed, learner_id) -> None:
    course = await seed.course()
    module = await seed.module(course)
    first = await get_lesson(db_session, (await seed.lesson(module)).lesson_id)
    assert await service.can_access_lesson_content(db_session, learner_id, first) is True


# ---------------------------------------------------------------------------
# Enrollment
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_partial_enrollment_covers_listed_modules(db_session, seed, learner_id) -> None:
    course = await seed.course()
    bought = await seed.module(course, sort_order=1)
    other = await seed.module(course, sort_order=2)
    await seed.enroll(learner_id, course, enrollment_type=EnrollmentType.PARTIAL, modules=[bought])

    assert await service.is_enrolled(db_session, learner_id, course.course_id, bought.module_id)
    assert not await service.is_enrolled(db_session, learner_id, course.course_id, other.module_id)
    assert not await service.is_enrolled(db_session, uuid.uuid4(), course.course_id)


# ---------------------------------------------------------------------------
# Authoring-time validation
# ---------------------------------------------------------------------------


def _graph(edges: dict[str, list[str]]) -> list[CourseModule]:
    ids = {name: uuid.uuid4() for name in edges}
    modules = []
    for name, prereqs in edges.items():
        modules.append(
            CourseModule(
                module_id=ids[name],
                prerequisites=[
                    ModulePrerequisite(
                        module_id=ids[name],
                        prerequisite_module_id=ids.get(p, uuid.uuid4()),
                    )
                    for p in prereqs
                ],
            )
        )
    return modules


def test_acyclic_graph_validates() -> None:
    validate_module_dependencies(_graph({"a": [], "b": ["a"], "c": ["a", "b"]}))


def test_cycle_is_rejected() -> None:
    with pytest.raises(InvalidDependencyGraphError, match="Cycle"):
        validate_module_dependencies(_graph({"a": ["b"], "b": ["a"], "c": []}))


def test_unknown_prerequisite_is_rejected() -> None:
    with pytest.raises(InvalidDependencyGraphError, match="not found"):
        validate_module_dependencies(_graph({"a": ["missing"]}))


@pytest.mark.asyncio
async def test_validate_course_dependencies(db_session, seed) -> None:
    course = await seed.course()
    first = await seed.module(course, sort_order=1)
    await seed.module(course, sort_order=2, prerequisites=[(first, 100.0)])
    await service.validate_course_dependencies(db_session, course.course_id)
