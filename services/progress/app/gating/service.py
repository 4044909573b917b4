"""Gating service — who may open which module or lesson.

Module access is decided by depth-1 prerequisites against live ledger
progress. Lesson access looks at the nearest preceding lesson: when it
carries a required quiz that blocks progress, that quiz must be passed.

Cycle detection is an authoring-time check (``validate_module_dependencies``);
the evaluation path never walks the prerequisite graph.

Pure business logic, no FastAPI imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.assessment import service as quiz_gate
from app.content.service import get_module, get_previous_lesson, list_course_modules
from app.exceptions import InvalidDependencyGraphError
from app.ledger.service import progress_by_module
from app.models.course_module import CourseModule
from app.models.enrollment import Enrollment
from app.models.lesson import Lesson


@dataclass(frozen=True)
class PrerequisiteStatus:
    module_id: UUID
    required_completion: float
    progress: float
    met: bool


@dataclass(frozen=True)
class ModuleAccess:
    module_id: UUID
    accessible: bool
    prerequisites: list[PrerequisiteStatus]


# ---------------------------------------------------------------------------
# Enrollment
# ---------------------------------------------------------------------------


async def get_enrollment(
    db: AsyncSession, user_id: UUID, course_id: UUID,
) -> Enrollment | None:
    stmt = select(Enrollment).where(
        Enrollment.user_id == user_id,
        Enrollment.course_id == course_id,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def is_enrolled(
    db: AsyncSession, user_id: UUID, course_id: UUID, module_id: UUID | None = None,
) -> bool:
    """Full enrollments cover every module; partial ones only the listed modules."""
    enrollment = await get_enrollment(db, user_id, course_id)
    if enrollment is None:
        return False
    return module_id is None or enrollment.covers_module(module_id)


# ---------------------------------------------------------------------------
# Module prerequisites
# ---------------------------------------------------------------------------


def evaluate_prerequisites(
    prerequisites: list[tuple[UUID, float]],
    progress: dict[UUID, float],
) -> list[PrerequisiteStatus]:
    """Compare each (module, required_completion) pair against ledger progress.

    A module missing from ``progress`` counts as 0%.
    """
    statuses = []
    for prereq_id, required in prerequisites:
        current = progress.get(prereq_id, 0.0)
        statuses.append(
            PrerequisiteStatus(
                module_id=prereq_id,
                required_completion=required,
                progress=current,
                met=current >= required,
            )
        )
    return statuses


async def check_module_access(
    db: AsyncSession, user_id: UUID, module_id: UUID, course_id: UUID | None = None,
) -> ModuleAccess:
    module = await get_module(db, module_id, course_id)
    prerequisites = [
        (p.prerequisite_module_id, p.required_completion) for p in module.prerequisites
    ]
    progress = await progress_by_module(db, user_id, [pid for pid, _ in prerequisites])
    statuses = evaluate_prerequisites(prerequisites, progress)
    return ModuleAccess(
        module_id=module_id,
        accessible=all(s.met for s in statuses),
        prerequisites=statuses,
    )


async def can_access_module(db: AsyncSession, user_id: UUID, module_id: UUID) -> bool:
    return (await check_module_access(db, user_id, module_id)).accessible


# ---------------------------------------------------------------------------
# Sequential lesson gating
# ---------------------------------------------------------------------------


def blocks_next_lesson(lesson: Lesson) -> bool:
    return lesson.quiz_is_required and lesson.quiz_block_progress


async def can_access_lesson_content(db: AsyncSession, user_id: UUID, lesson: Lesson) -> bool:
    previous = await get_previous_lesson(db, lesson)
    if previous is None or not blocks_next_lesson(previous):
        return True
    return await quiz_gate.has_passed(db, user_id, previous)


# ---------------------------------------------------------------------------
# Authoring-time dependency validation
# ---------------------------------------------------------------------------


def validate_module_dependencies(modules: list[CourseModule]) -> None:
    """Topological sort (Kahn's algorithm) to detect cycles in prerequisites."""
    module_ids = {m.module_id for m in modules}
    in_degree: dict[UUID, int] = {m.module_id: 0 for m in modules}
    adjacency: dict[UUID, list[UUID]] = {m.module_id: [] for m in modules}

    for m in modules:
        for prereq in m.prerequisites:
            prereq_id = prereq.prerequisite_module_id
            if prereq_id not in module_ids:
                raise InvalidDependencyGraphError(
                    f"Prerequisite {prereq_id} not found in course modules."
                )
            adjacency[prereq_id].append(m.module_id)
            in_degree[m.module_id] += 1

    queue = [mid for mid, deg in in_degree.items() if deg == 0]
    visited = 0
    while queue:
        node = queue.pop(0)
        visited += 1
        for neighbor in adjacency[node]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    if visited != len(modules):
        raise InvalidDependencyGraphError("Cycle detected in module prerequisites.")


async def validate_course_dependencies(db: AsyncSession, course_id: UUID) -> None:
    validate_module_dependencies(await list_course_modules(db, course_id))
