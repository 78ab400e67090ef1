"""Persistence entry points used by the workflow around a goal's tasks."""

from __future__ import annotations

import logging

from goal_graph.errors import UnknownTaskReference
from goal_graph.models import Task, TaskDependency, TaskPlan
from goal_graph.planning.resolver import TaskGraphResolver
from goal_graph.storage.repository import TaskStore

logger = logging.getLogger(__name__)


class TaskPersistenceCoordinator:
    """Plan persistence goes through the resolver, single-task writes straight to storage."""

    def __init__(self, store: TaskStore, resolver: TaskGraphResolver | None = None) -> None:
        self.store = store
        self.resolver = resolver or TaskGraphResolver(store)

    def persist_task_plan(self, plan: TaskPlan, goal_id: str) -> list[Task]:
        return self.resolver.coordinate_task_persistence(plan, goal_id)

    def save_task_update(self, task: Task, goal_id: str) -> Task:
        """Overwrite status and result of an already persisted task."""

        if task.task_id is None:
            logger.error("Refusing update for unsaved task %r of goal %s", task.description, goal_id)
            raise UnknownTaskReference(task_id=None, description=task.description)
        saved = self.store.save_task(task, goal_id)
        logger.debug("Saved task %s of goal %s as %s", saved.task_id, goal_id, saved.status.value)
        return saved

    def load_tasks_for_goal(self, goal_id: str) -> list[Task]:
        return self.store.find_tasks_by_goal_id(goal_id)

    def load_dependencies_for_goal(self, goal_id: str) -> list[TaskDependency]:
        return self.store.find_dependencies_by_goal_id(goal_id)
