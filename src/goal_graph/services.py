"""Use-case services around a goal's task graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from goal_graph.analysis import executable_tasks
from goal_graph.errors import UnknownGoalReference, UnknownTaskReference
from goal_graph.models import Goal, Task, TaskPlan, TaskStatus
from goal_graph.planning.coordinator import TaskPersistenceCoordinator
from goal_graph.storage.repository import WorkflowRepository
from goal_graph.summary import GoalSummarizer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AcceptedPlan:
    """Goal created for a plan together with its persisted tasks in plan order."""

    goal: Goal
    tasks: list[Task]


class GoalWorkflowService:
    """Coordinates goal records, task persistence and the final summary."""

    def __init__(
        self,
        *,
        repository: WorkflowRepository,
        summarizer: GoalSummarizer | None = None,
        coordinator: TaskPersistenceCoordinator | None = None,
    ) -> None:
        self.repository = repository
        self.summarizer = summarizer
        self.coordinator = coordinator or TaskPersistenceCoordinator(repository)

    def accept_plan(self, query: str, plan: TaskPlan) -> AcceptedPlan:
        """Create a goal for ``query`` and persist ``plan`` under it, all or nothing."""

        with self.repository.transaction():
            goal = self.repository.create_goal(query)
            tasks = self.coordinator.persist_task_plan(plan, goal.goal_id)
            goal = self.repository.save_goal(goal.with_tasks(tasks))
        logger.info("Accepted plan for goal %s with %d task(s)", goal.goal_id, len(tasks))
        return AcceptedPlan(goal=goal, tasks=tasks)

    def record_task_outcome(
        self,
        goal_id: str,
        task_id: str,
        status: TaskStatus,
        result: str | None = None,
    ) -> Task:
        """Move a persisted task to ``status``, storing ``result`` when given."""

        task = self.repository.get_task(task_id)
        if task is None or task.goal_id != goal_id:
            raise UnknownTaskReference(task_id=task_id)

        if status == TaskStatus.COMPLETED:
            updated = task.with_result(result if result is not None else task.result or "")
        elif status == TaskStatus.FAILED:
            updated = task.with_failure(result if result is not None else task.result or "")
        else:
            updated = task.with_status(status)
            if result is not None:
                updated = replace(updated, result=result)
        return self.coordinator.save_task_update(updated, goal_id)

    def load_goal(self, goal_id: str) -> Goal:
        """Goal with its tasks loaded."""

        goal = self.repository.get_goal(goal_id)
        if goal is None:
            raise UnknownGoalReference(goal_id=goal_id)
        tasks = self.coordinator.load_tasks_for_goal(goal_id)
        return replace(goal, tasks=tuple(tasks))

    def ready_tasks(self, goal_id: str) -> list[Task]:
        """Pending tasks whose blocking dependencies have all completed."""

        return executable_tasks(self.load_goal(goal_id).tasks)

    def finish_goal(self, goal_id: str) -> Goal:
        """Summarize the goal and store it as completed.

        A summarization failure propagates and leaves the stored goal untouched.
        """

        if self.summarizer is None:
            raise ValueError("A goal summarizer is required to finish a goal.")
        goal = self.load_goal(goal_id)
        unfinished = [task for task in goal.tasks if not task.status.is_terminal]
        if unfinished:
            logger.warning(
                "Summarizing goal %s with %d unfinished task(s)",
                goal_id,
                len(unfinished),
            )
        summarized = self.summarizer.summarize_goal_completion(goal)
        self.repository.save_goal(summarized)
        logger.info("Goal %s completed", goal_id)
        return summarized
