"""Dependency validation for task plans and readiness analysis for persisted tasks."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence

from goal_graph.errors import (
    CyclicDependencyPlan,
    DuplicateDependencyEdge,
    DuplicatePlanLocalId,
    SelfDependencyReference,
)
from goal_graph.models import DependencyType, PlanLocalId, Task, TaskId, TaskPlan, TaskStatus


def validate_plan_structure(plan: TaskPlan) -> None:
    """Reject duplicate ids, self dependencies, repeated edges and blocking cycles.

    References to undeclared tasks are left for the resolver, which reports
    them while mapping plan-local ids to durable ones.
    """

    declared: set[PlanLocalId] = set()
    for task in plan.tasks:
        if task.local_id in declared:
            raise DuplicatePlanLocalId(plan_local_id=task.local_id)
        declared.add(task.local_id)

    graph: dict[str, list[str]] = {}
    for task in plan.tasks:
        edges = graph.setdefault(task.local_id, [])
        seen: set[tuple[PlanLocalId, DependencyType]] = set()
        for dependency in task.dependencies:
            if dependency.on == task.local_id:
                raise SelfDependencyReference(plan_local_id=task.local_id)
            edge = (dependency.on, dependency.dependency_type)
            if edge in seen:
                raise DuplicateDependencyEdge(
                    plan_local_id=task.local_id,
                    depends_on=dependency.on,
                    dependency_type=dependency.dependency_type.value,
                )
            seen.add(edge)
            if dependency.dependency_type != DependencyType.BLOCKING:
                continue
            if dependency.on in declared:
                edges.append(dependency.on)

    cycles = find_dependency_cycles(graph)
    if cycles:
        raise CyclicDependencyPlan(cycle=tuple(cycles[0]))


def find_dependency_cycles(graph: Mapping[str, Sequence[str]]) -> list[list[str]]:
    """Detect cycles in an adjacency mapping of node -> depended-on nodes.

    Iterative depth-first walk with temporary/permanent markers.
    """

    cycles: list[list[str]] = []
    state: dict[str, str] = {}

    for root in graph:
        if state.get(root) == "permanent":
            continue
        state[root] = "temporary"
        path: list[str] = [root]
        stack: list[Iterator[str]] = [iter(graph.get(root, ()))]
        while stack:
            neighbour = next(stack[-1], None)
            if neighbour is None:
                stack.pop()
                state[path.pop()] = "permanent"
                continue
            marker = state.get(neighbour)
            if marker == "permanent":
                continue
            if marker == "temporary":
                cycle = path[path.index(neighbour) :] + [neighbour]
                if cycle not in cycles:
                    cycles.append(cycle)
                continue
            state[neighbour] = "temporary"
            path.append(neighbour)
            stack.append(iter(graph.get(neighbour, ())))
    return cycles


def executable_tasks(tasks: Sequence[Task]) -> list[Task]:
    """Pending tasks whose blocking dependencies are all completed."""

    completed = _completed_task_ids(tasks)
    return [
        task
        for task in tasks
        if task.status == TaskStatus.PENDING and task.can_execute(completed)
    ]


def tasks_informed_by(tasks: Sequence[Task], completed_task_id: TaskId) -> list[Task]:
    """Pending tasks that would benefit from the result of ``completed_task_id``."""

    return [
        task
        for task in tasks
        if task.status == TaskStatus.PENDING
        and completed_task_id in task.informational_dependencies
    ]


def dependency_chain(task: Task, tasks: Sequence[Task]) -> list[TaskId]:
    """All tasks ``task`` transitively blocks on, deepest first, without duplicates."""

    by_id = {item.task_id: item for item in tasks if item.task_id is not None}
    chain: list[TaskId] = []
    in_chain: set[TaskId] = set()
    visiting: set[TaskId] = set()
    stack: list[tuple[TaskId | None, Iterator[TaskId]]] = [
        (None, iter(task.blocking_dependencies)),
    ]
    while stack:
        owner, pending = stack[-1]
        dependency_id = next(pending, None)
        if dependency_id is None:
            stack.pop()
            if owner is not None:
                visiting.discard(owner)
                chain.append(owner)
                in_chain.add(owner)
            continue
        if dependency_id in visiting or dependency_id in in_chain:
            continue
        visiting.add(dependency_id)
        upstream = by_id.get(dependency_id)
        upstream_ids = upstream.blocking_dependencies if upstream is not None else ()
        stack.append((dependency_id, iter(upstream_ids)))
    return chain


def validate_task_dependencies(tasks: Sequence[Task]) -> list[str]:
    """Describe every dependency that points outside of ``tasks``."""

    known = {task.task_id for task in tasks}
    errors: list[str] = []
    for task in tasks:
        for dependency_id in task.blocking_dependencies:
            if dependency_id not in known:
                errors.append(
                    f"Task {task.description!r} has invalid blocking dependency: {dependency_id}",
                )
        for dependency_id in task.informational_dependencies:
            if dependency_id not in known:
                errors.append(
                    f"Task {task.description!r} has invalid informational dependency: "
                    f"{dependency_id}",
                )
    return errors


def has_circular_dependencies(tasks: Sequence[Task]) -> bool:
    graph = {
        str(task.task_id): [str(item) for item in task.blocking_dependencies]
        for task in tasks
        if task.task_id is not None
    }
    return bool(find_dependency_cycles(graph))


def _completed_task_ids(tasks: Sequence[Task]) -> set[TaskId]:
    return {
        task.task_id
        for task in tasks
        if task.status == TaskStatus.COMPLETED and task.task_id is not None
    }
