"""Two-phase materialization of a task plan into durable tasks and dependency edges."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from goal_graph.analysis import validate_plan_structure
from goal_graph.errors import TaskGraphPersistenceError, TaskPlanError, UnresolvedDependencyReference
from goal_graph.models import DependencyType, PlanLocalId, Task, TaskId, TaskPlan
from goal_graph.storage.repository import TaskStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _ResolvedEdges:
    blocking: list[TaskId]
    informational: list[TaskId]


class TaskGraphResolver:
    """Assigns durable ids to planned tasks and persists their dependency edges.

    Phase 1 writes every task and records ``plan-local id -> durable id``.
    Phase 2 starts only after phase 1 has finished for the whole plan, so an
    edge may point forward or backward in plan order. Both phases run inside
    one store transaction: a failure in either leaves no rows behind.

    The id mapping lives in local variables of a single call and is never
    shared between concurrent resolutions.
    """

    def __init__(self, store: TaskStore) -> None:
        self.store = store

    def coordinate_task_persistence(self, plan: TaskPlan, goal_id: str) -> list[Task]:
        """Persist ``plan`` under ``goal_id`` and return the tasks in plan order."""

        try:
            validate_plan_structure(plan)
        except TaskPlanError as error:
            logger.error("Rejected task plan for goal %s: %s", goal_id, error)
            raise

        logger.info(
            "Persisting task plan for goal %s: %d task(s), %d dependency edge(s)",
            goal_id,
            len(plan.tasks),
            plan.dependency_count,
        )
        with self.store.transaction():
            id_map, persisted = self._materialize_tasks(plan, goal_id)
            edges = self._materialize_edges(plan, goal_id, id_map)

        result = [
            replace(
                task,
                blocking_dependencies=tuple(edges[planned.local_id].blocking),
                informational_dependencies=tuple(edges[planned.local_id].informational),
            )
            for planned, task in zip(plan.tasks, persisted, strict=True)
        ]
        logger.info("Persisted %d task(s) for goal %s", len(result), goal_id)
        return result

    def _materialize_tasks(
        self,
        plan: TaskPlan,
        goal_id: str,
    ) -> tuple[dict[PlanLocalId, TaskId], list[Task]]:
        id_map: dict[PlanLocalId, TaskId] = {}
        persisted: list[Task] = []
        for position, planned in enumerate(plan.tasks):
            try:
                saved = self.store.save_task(
                    Task(description=planned.description, goal_id=goal_id),
                    goal_id,
                    position=position,
                )
            except Exception as exc:
                logger.error(
                    "Failed to persist task %r for goal %s: %s",
                    planned.local_id,
                    goal_id,
                    exc,
                )
                raise TaskGraphPersistenceError(goal_id=goal_id, phase="tasks", cause=exc) from exc
            if saved.task_id is None:
                raise TaskGraphPersistenceError(
                    goal_id=goal_id,
                    phase="tasks",
                    cause=ValueError(f"store returned no id for task {planned.local_id!r}"),
                )
            id_map[planned.local_id] = saved.task_id
            persisted.append(saved)
            logger.debug("Mapped plan task %r to %s", planned.local_id, saved.task_id)
        return id_map, persisted

    def _materialize_edges(
        self,
        plan: TaskPlan,
        goal_id: str,
        id_map: dict[PlanLocalId, TaskId],
    ) -> dict[PlanLocalId, _ResolvedEdges]:
        edges: dict[PlanLocalId, _ResolvedEdges] = {}
        for planned in plan.tasks:
            resolved = edges.setdefault(planned.local_id, _ResolvedEdges([], []))
            task_id = id_map[planned.local_id]
            for dependency in planned.dependencies:
                depends_on_id = id_map.get(dependency.on)
                if depends_on_id is None:
                    logger.error(
                        "Task %r of goal %s depends on undeclared task %r",
                        planned.local_id,
                        goal_id,
                        dependency.on,
                    )
                    raise UnresolvedDependencyReference(
                        plan_local_id=dependency.on,
                        referenced_by=planned.local_id,
                    )
                try:
                    self.store.save_dependency(
                        task_id,
                        depends_on_id,
                        dependency.dependency_type,
                        dependency.reason,
                    )
                except Exception as exc:
                    logger.error(
                        "Failed to persist dependency %r -> %r for goal %s: %s",
                        planned.local_id,
                        dependency.on,
                        goal_id,
                        exc,
                    )
                    raise TaskGraphPersistenceError(
                        goal_id=goal_id,
                        phase="dependencies",
                        cause=exc,
                    ) from exc
                if dependency.dependency_type == DependencyType.BLOCKING:
                    resolved.blocking.append(depends_on_id)
                else:
                    resolved.informational.append(depends_on_id)
                logger.debug(
                    "Persisted %s dependency %s -> %s",
                    dependency.dependency_type.value,
                    task_id,
                    depends_on_id,
                )
        return edges
