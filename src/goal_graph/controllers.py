"""Controllers for goal-graph CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from goal_graph.config import Settings
from goal_graph.models import Task, TaskStatus
from goal_graph.planning.plan_loader import load_task_plan
from goal_graph.remote import RemoteCallExecutor, RetryPolicy, build_backend
from goal_graph.services import GoalWorkflowService
from goal_graph.storage.repository import WorkflowRepository
from goal_graph.summary import GoalSummarizer


@dataclass(slots=True)
class GoalPlanCommand:
    """CLI input for accepting a task plan under a new goal."""

    db_path: Path | None
    plan_file: Path
    query: str


@dataclass(slots=True)
class GoalTasksCommand:
    """CLI input for task listing of one goal."""

    db_path: Path | None
    goal_id: str


@dataclass(slots=True)
class TaskUpdateCommand:
    """CLI input for recording a task outcome."""

    db_path: Path | None
    goal_id: str
    task_id: str
    status: str
    result: str | None


@dataclass(slots=True)
class GoalSummarizeCommand:
    db_path: Path | None
    goal_id: str


class GoalGraphCliController:
    """Coordinates plan acceptance, task inspection and goal summaries."""

    def plan(self, command: GoalPlanCommand) -> list[str]:
        plan = load_task_plan(command.plan_file)
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            accepted = GoalWorkflowService(repository=repository).accept_plan(command.query, plan)

        lines = [
            f"Goal created: goal_id={accepted.goal.goal_id} status={accepted.goal.status.value} "
            f"tasks={len(accepted.tasks)} dependencies={plan.dependency_count}",
        ]
        for planned, task in zip(plan.tasks, accepted.tasks, strict=True):
            lines.append(f"{planned.local_id} -> {task.task_id}")
        return lines

    def tasks(self, command: GoalTasksCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            goal = GoalWorkflowService(repository=repository).load_goal(command.goal_id)

        lines = [
            f"Goal {goal.goal_id}: status={goal.status.value} tasks={len(goal.tasks)}",
            f"Query: {goal.query}",
        ]
        lines.extend(_task_line(task) for task in goal.tasks)
        if goal.summary:
            lines.append(f"Summary: {goal.summary}")
        return lines

    def ready(self, command: GoalTasksCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            ready = GoalWorkflowService(repository=repository).ready_tasks(command.goal_id)

        if not ready:
            return [f"No executable tasks for goal {command.goal_id}."]
        return [f"Executable tasks: {len(ready)}", *(_task_line(task) for task in ready)]

    def update_task(self, command: TaskUpdateCommand) -> list[str]:
        status = TaskStatus(command.status.strip().upper())
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            task = GoalWorkflowService(repository=repository).record_task_outcome(
                command.goal_id,
                command.task_id,
                status,
                command.result,
            )
        return [f"Task updated: task_id={task.task_id} status={task.status.value}"]

    def summarize(self, command: GoalSummarizeCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        backend = build_backend(settings.llm)
        executor = RemoteCallExecutor(
            backend,
            policy=RetryPolicy.from_settings(settings.remote_call),
        )
        try:
            with _repository(settings) as repository:
                service = GoalWorkflowService(
                    repository=repository,
                    summarizer=GoalSummarizer(executor),
                )
                goal = service.finish_goal(command.goal_id)
        finally:
            close = getattr(backend, "close", None)
            if callable(close):
                close()

        return [
            f"Goal completed: goal_id={goal.goal_id} status={goal.status.value}",
            f"Summary: {goal.summary}",
        ]


def _task_line(task: Task) -> str:
    result = f" result={task.result!r}" if task.result is not None else ""
    return (
        f"- {task.task_id} [{task.status.value}] {task.description} "
        f"(blocking={len(task.blocking_dependencies)} "
        f"informational={len(task.informational_dependencies)}){result}"
    )


@contextmanager
def _repository(settings: Settings) -> Iterator[WorkflowRepository]:
    repository = WorkflowRepository(db_path=settings.db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
