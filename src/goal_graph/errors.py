"""Typed failures raised by planning, persistence and remote calls."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class RemoteCallFailure(Exception):
    """Remote call exhausted its attempts or hit a non-retryable error."""

    operation: str
    attempts: int
    cause: BaseException | None = None

    def __str__(self) -> str:
        reason = f": {self.cause}" if self.cause is not None else ""
        return f"Failed to execute {self.operation} after {self.attempts} attempt(s){reason}"


@dataclass(slots=True)
class RemoteCallCancelled(RemoteCallFailure):
    """Caller cancelled the call while it was waiting for a retry."""

    def __str__(self) -> str:
        return f"Cancelled {self.operation} while waiting to retry (after {self.attempts} attempt(s))"


class TaskPlanError(Exception):
    """Task plan violates the planning input contract."""


@dataclass(slots=True)
class UnresolvedDependencyReference(TaskPlanError):
    """Dependency points at a plan-local id that no planned task declares."""

    plan_local_id: str
    referenced_by: str | None = None

    def __str__(self) -> str:
        source = f" (declared by {self.referenced_by!r})" if self.referenced_by else ""
        return f"Dependency references undeclared task {self.plan_local_id!r}{source}"


@dataclass(slots=True)
class SelfDependencyReference(TaskPlanError):
    plan_local_id: str

    def __str__(self) -> str:
        return f"Task {self.plan_local_id!r} depends on itself"


@dataclass(slots=True)
class DuplicatePlanLocalId(TaskPlanError):
    plan_local_id: str

    def __str__(self) -> str:
        return f"Task plan declares {self.plan_local_id!r} more than once"


@dataclass(slots=True)
class DuplicateDependencyEdge(TaskPlanError):
    """Planned task declares the same dependency twice."""

    plan_local_id: str
    depends_on: str
    dependency_type: str

    def __str__(self) -> str:
        return (
            f"Task {self.plan_local_id!r} declares the {self.dependency_type} dependency "
            f"on {self.depends_on!r} more than once"
        )


@dataclass(slots=True)
class CyclicDependencyPlan(TaskPlanError):
    """Blocking dependencies form a cycle, so the plan can never finish."""

    cycle: tuple[str, ...]

    def __str__(self) -> str:
        return "Blocking dependency cycle: " + " -> ".join(self.cycle)


@dataclass(slots=True)
class TaskGraphPersistenceError(Exception):
    """Storage failed while materializing a task plan."""

    goal_id: str
    phase: str
    cause: BaseException | None = None

    def __str__(self) -> str:
        return f"Task graph persistence failed for goal {self.goal_id} during {self.phase}: {self.cause}"


@dataclass(slots=True)
class UnknownTaskReference(Exception):
    """Update requested for a task that has no durable identity."""

    task_id: str | None
    description: str | None = None

    def __str__(self) -> str:
        if self.task_id is None:
            return f"Task {self.description!r} has no durable identifier yet"
        return f"Task not found: {self.task_id}"


@dataclass(slots=True)
class UnknownGoalReference(Exception):
    goal_id: str

    def __str__(self) -> str:
        return f"Goal not found: {self.goal_id}"


@dataclass(slots=True)
class InvalidStatusTransition(ValueError):
    """Terminal task status cannot move back to a non-terminal one."""

    task_id: str | None
    current: str
    requested: str

    def __str__(self) -> str:
        return (
            f"Task {self.task_id or '<unsaved>'} cannot move from {self.current} "
            f"to {self.requested}"
        )
