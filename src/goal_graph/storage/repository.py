"""Goal and task graph repository backed by SQLModel + SQLite."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlmodel import Session, col, select

from goal_graph.errors import InvalidStatusTransition
from goal_graph.models import (
    DependencyType,
    Goal,
    GoalStatus,
    Task,
    TaskDependency,
    TaskId,
    TaskStatus,
)
from goal_graph.storage.alembic_runner import upgrade_head
from goal_graph.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from goal_graph.storage.sqlmodel_models import GoalRow, GoalTaskRow, TaskDependencyRow

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """Storage operations the planning layer relies on."""

    def transaction(self) -> AbstractContextManager[None]:
        """Group the enclosed store calls into one all-or-nothing unit."""

    def save_task(self, task: Task, goal_id: str, *, position: int = 0) -> Task:
        """Insert a new task or update a persisted one; returns it with its durable id."""

    def save_dependency(
        self,
        task_id: TaskId,
        depends_on_task_id: TaskId,
        dependency_type: DependencyType,
        reason: str | None = None,
    ) -> TaskDependency:
        """Persist one dependency edge between two persisted tasks."""

    def find_tasks_by_goal_id(self, goal_id: str) -> list[Task]:
        """Tasks of a goal in creation order."""

    def find_dependencies_by_goal_id(self, goal_id: str) -> list[TaskDependency]:
        """Dependency edges whose dependent task belongs to the goal."""

    def delete_tasks_by_goal_id(self, goal_id: str) -> int:
        """Delete a goal's tasks; their dependency rows go with them."""

    def delete_dependencies_by_goal_id(self, goal_id: str) -> int:
        """Delete the dependency rows of a goal's tasks."""


class WorkflowRepository:
    """Persistence facade for goals, tasks and dependency edges."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)
        self._local = threading.local()

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Share one session across the enclosed calls made by this thread.

        Commits when the block exits normally, rolls back on any exception.
        Nested blocks join the outermost transaction.
        """

        if getattr(self._local, "session", None) is not None:
            yield
            return

        with Session(self.engine) as session:
            self._local.session = session
            try:
                yield
            except BaseException:
                session.rollback()
                raise
            else:
                session.commit()
            finally:
                self._local.session = None

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        active = getattr(self._local, "session", None)
        if active is not None:
            yield active
            return
        with Session(self.engine) as session:
            yield session
            session.commit()

    # Goals

    def create_goal(self, query: str) -> Goal:
        goal = Goal(goal_id=str(uuid4()), query=query)
        return self.save_goal(goal)

    def save_goal(self, goal: Goal) -> Goal:
        """Insert or update the stored goal fields (tasks are stored separately)."""

        with self._session_scope() as session:
            row = session.get(GoalRow, goal.goal_id)
            if row is None:
                row = GoalRow(
                    goal_id=goal.goal_id,
                    query=goal.query,
                    status=goal.status.value,
                    created_at=to_db_datetime(goal.created_at),
                )
            row.query = goal.query
            row.summary = goal.summary
            row.status = goal.status.value
            row.completed_at = (
                to_db_datetime(goal.completed_at) if goal.completed_at is not None else None
            )
            session.add(row)
            session.flush()
            return _to_goal(row)

    def get_goal(self, goal_id: str) -> Goal | None:
        with self._session_scope() as session:
            row = session.get(GoalRow, goal_id)
            if row is None:
                return None
            return _to_goal(row)

    def list_goals(self, *, status: GoalStatus | None = None, limit: int = 50) -> list[Goal]:
        with self._session_scope() as session:
            statement = select(GoalRow).order_by(col(GoalRow.created_at).desc()).limit(limit)
            if status is not None:
                statement = statement.where(GoalRow.status == status.value)
            return [_to_goal(row) for row in session.exec(statement).all()]

    def delete_goal(self, goal_id: str) -> bool:
        """Delete a goal; tasks and dependency rows cascade."""

        with self._session_scope() as session:
            result = session.exec(
                sa_delete(GoalRow)
                .where(col(GoalRow.goal_id) == goal_id)
                .execution_options(synchronize_session=False),
            )
            return result.rowcount == 1

    # Tasks

    def save_task(self, task: Task, goal_id: str, *, position: int = 0) -> Task:
        now = utc_now()
        with self._session_scope() as session:
            row = session.get(GoalTaskRow, task.task_id) if task.task_id is not None else None
            if row is None:
                row = GoalTaskRow(
                    task_id=task.task_id or str(uuid4()),
                    goal_id=goal_id,
                    position=position,
                    description=task.description,
                    status=task.status.value,
                    created_at=to_db_datetime(task.created_at),
                    updated_at=to_db_datetime(now),
                )
            else:
                current = TaskStatus(row.status)
                if current.is_terminal and task.status != current:
                    raise InvalidStatusTransition(
                        task_id=row.task_id,
                        current=current.value,
                        requested=task.status.value,
                    )
            row.description = task.description
            row.status = task.status.value
            row.result = task.result
            row.completed_at = (
                to_db_datetime(task.completed_at) if task.completed_at is not None else None
            )
            row.updated_at = to_db_datetime(now)
            session.add(row)
            session.flush()
            return _to_task(
                row,
                blocking=task.blocking_dependencies,
                informational=task.informational_dependencies,
            )

    def get_task(self, task_id: str) -> Task | None:
        with self._session_scope() as session:
            row = session.get(GoalTaskRow, task_id)
            if row is None:
                return None
            edges = session.exec(
                select(TaskDependencyRow).where(TaskDependencyRow.task_id == task_id),
            ).all()
            return _to_task_with_edges(row, edges)

    def find_tasks_by_goal_id(self, goal_id: str) -> list[Task]:
        with self._session_scope() as session:
            rows = session.exec(
                select(GoalTaskRow)
                .where(GoalTaskRow.goal_id == goal_id)
                .order_by(col(GoalTaskRow.created_at).asc(), col(GoalTaskRow.position).asc()),
            ).all()
            edges_by_task: dict[str, list[TaskDependencyRow]] = {}
            for edge in self._dependency_rows_for_goal(session, goal_id):
                edges_by_task.setdefault(edge.task_id, []).append(edge)
            return [_to_task_with_edges(row, edges_by_task.get(row.task_id, [])) for row in rows]

    def delete_tasks_by_goal_id(self, goal_id: str) -> int:
        with self._session_scope() as session:
            result = session.exec(
                sa_delete(GoalTaskRow)
                .where(col(GoalTaskRow.goal_id) == goal_id)
                .execution_options(synchronize_session=False),
            )
            logger.debug("Deleted %d task(s) of goal %s", result.rowcount, goal_id)
            return result.rowcount

    # Dependencies

    def save_dependency(
        self,
        task_id: TaskId,
        depends_on_task_id: TaskId,
        dependency_type: DependencyType,
        reason: str | None = None,
    ) -> TaskDependency:
        with self._session_scope() as session:
            row = TaskDependencyRow(
                dependency_id=str(uuid4()),
                task_id=task_id,
                depends_on_task_id=depends_on_task_id,
                dependency_type=dependency_type.value,
                reason=reason,
                created_at=to_db_datetime(utc_now()),
            )
            session.add(row)
            session.flush()
            return _to_dependency(row)

    def find_dependencies_by_goal_id(self, goal_id: str) -> list[TaskDependency]:
        with self._session_scope() as session:
            return [_to_dependency(row) for row in self._dependency_rows_for_goal(session, goal_id)]

    def delete_dependencies_by_goal_id(self, goal_id: str) -> int:
        goal_task_ids = select(GoalTaskRow.task_id).where(GoalTaskRow.goal_id == goal_id)
        with self._session_scope() as session:
            result = session.exec(
                sa_delete(TaskDependencyRow)
                .where(col(TaskDependencyRow.task_id).in_(goal_task_ids))
                .execution_options(synchronize_session=False),
            )
            return result.rowcount

    @staticmethod
    def _dependency_rows_for_goal(session: Session, goal_id: str) -> list[TaskDependencyRow]:
        goal_task_ids = select(GoalTaskRow.task_id).where(GoalTaskRow.goal_id == goal_id)
        return list(
            session.exec(
                select(TaskDependencyRow)
                .where(col(TaskDependencyRow.task_id).in_(goal_task_ids))
                .order_by(col(TaskDependencyRow.created_at).asc()),
            ).all(),
        )


def _to_goal(row: GoalRow) -> Goal:
    return Goal(
        goal_id=row.goal_id,
        query=row.query,
        summary=row.summary,
        status=GoalStatus(row.status),
        created_at=to_utc_aware_datetime(row.created_at),
        completed_at=(
            to_utc_aware_datetime(row.completed_at) if row.completed_at is not None else None
        ),
    )


def _to_task(
    row: GoalTaskRow,
    *,
    blocking: tuple[TaskId, ...] = (),
    informational: tuple[TaskId, ...] = (),
) -> Task:
    return Task(
        task_id=TaskId(row.task_id),
        goal_id=row.goal_id,
        description=row.description,
        status=TaskStatus(row.status),
        result=row.result,
        blocking_dependencies=blocking,
        informational_dependencies=informational,
        created_at=to_utc_aware_datetime(row.created_at),
        completed_at=(
            to_utc_aware_datetime(row.completed_at) if row.completed_at is not None else None
        ),
    )


def _to_task_with_edges(row: GoalTaskRow, edges: list[TaskDependencyRow]) -> Task:
    blocking = tuple(
        TaskId(edge.depends_on_task_id)
        for edge in edges
        if edge.dependency_type == DependencyType.BLOCKING.value
    )
    informational = tuple(
        TaskId(edge.depends_on_task_id)
        for edge in edges
        if edge.dependency_type == DependencyType.INFORMATIONAL.value
    )
    return _to_task(row, blocking=blocking, informational=informational)


def _to_dependency(row: TaskDependencyRow) -> TaskDependency:
    return TaskDependency(
        dependency_id=row.dependency_id,
        task_id=TaskId(row.task_id),
        depends_on_task_id=TaskId(row.depends_on_task_id),
        dependency_type=DependencyType(row.dependency_type),
        reason=row.reason,
        created_at=to_utc_aware_datetime(row.created_at),
    )
