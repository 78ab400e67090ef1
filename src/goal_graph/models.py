"""Domain models for goals, task graphs and task plans."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import NewType

from goal_graph.errors import InvalidStatusTransition

TaskId = NewType("TaskId", str)
"""Durable task identifier assigned by storage."""

PlanLocalId = NewType("PlanLocalId", str)
"""Identifier that only exists inside one task plan."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in {TaskStatus.COMPLETED, TaskStatus.FAILED}


class GoalStatus(str, Enum):
    """Goal lifecycle states."""

    PLANNING = "PLANNING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ABANDONED = "ABANDONED"

    @property
    def is_terminal(self) -> bool:
        return self in {GoalStatus.COMPLETED, GoalStatus.FAILED, GoalStatus.ABANDONED}


class DependencyType(str, Enum):
    """How strongly a task depends on another one."""

    BLOCKING = "BLOCKING"
    """Task cannot start until the dependency is completed."""

    INFORMATIONAL = "INFORMATIONAL"
    """Task can start independently but benefits from the dependency result."""


@dataclass(frozen=True, slots=True)
class Task:
    """Unit of work owned by one goal.

    ``task_id`` is ``None`` until storage assigns it. Updates never mutate the
    value in place, every ``with_*`` helper returns a new ``Task``.
    """

    description: str
    task_id: TaskId | None = None
    goal_id: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    result: str | None = None
    blocking_dependencies: tuple[TaskId, ...] = ()
    informational_dependencies: tuple[TaskId, ...] = ()
    created_at: datetime = field(default_factory=_utc_now)
    completed_at: datetime | None = None

    def with_status(self, status: TaskStatus) -> Task:
        """Return a copy moved to ``status``; terminal states are final."""

        if self.status.is_terminal and status != self.status:
            raise InvalidStatusTransition(
                task_id=self.task_id,
                current=self.status.value,
                requested=status.value,
            )
        completed_at = self.completed_at
        if status.is_terminal and completed_at is None:
            completed_at = _utc_now()
        return replace(self, status=status, completed_at=completed_at)

    def with_result(self, result: str) -> Task:
        """Attach a result and mark the task completed."""

        return replace(self.with_status(TaskStatus.COMPLETED), result=result)

    def with_failure(self, reason: str) -> Task:
        """Attach the failure reason as result and mark the task failed."""

        return replace(self.with_status(TaskStatus.FAILED), result=reason)

    def can_execute(self, completed_task_ids: Iterable[TaskId]) -> bool:
        completed = set(completed_task_ids)
        return all(dependency in completed for dependency in self.blocking_dependencies)


@dataclass(frozen=True, slots=True)
class TaskDependency:
    """Persisted dependency edge between two tasks of the same goal."""

    dependency_id: str
    task_id: TaskId
    depends_on_task_id: TaskId
    dependency_type: DependencyType
    reason: str | None = None
    created_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True, slots=True)
class Goal:
    """Top-level user objective.

    ``tasks`` is only populated when a caller loads them explicitly.
    """

    goal_id: str
    query: str
    status: GoalStatus = GoalStatus.PLANNING
    summary: str | None = None
    created_at: datetime = field(default_factory=_utc_now)
    completed_at: datetime | None = None
    tasks: tuple[Task, ...] = ()

    def with_tasks(self, tasks: Iterable[Task]) -> Goal:
        return replace(self, tasks=tuple(tasks), status=GoalStatus.IN_PROGRESS)

    def with_summary(self, summary: str) -> Goal:
        return replace(
            self,
            summary=summary,
            status=GoalStatus.COMPLETED,
            completed_at=_utc_now(),
        )

    def with_status(self, status: GoalStatus) -> Goal:
        completed_at = self.completed_at
        if status == GoalStatus.COMPLETED:
            completed_at = _utc_now()
        return replace(self, status=status, completed_at=completed_at)


@dataclass(frozen=True, slots=True)
class PlannedDependency:
    """Dependency declaration expressed in plan-local identifiers."""

    on: PlanLocalId
    dependency_type: DependencyType = DependencyType.BLOCKING
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class PlannedTask:
    """Task as produced by the planner, before it has a durable identity."""

    local_id: PlanLocalId
    description: str
    dependencies: tuple[PlannedDependency, ...] = ()


@dataclass(frozen=True, slots=True)
class TaskPlan:
    """Ordered, never persisted set of planned tasks."""

    tasks: tuple[PlannedTask, ...] = ()

    @property
    def dependency_count(self) -> int:
        return sum(len(task.dependencies) for task in self.tasks)
