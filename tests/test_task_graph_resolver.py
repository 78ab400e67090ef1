from __future__ import annotations

import random
import threading
from contextlib import nullcontext
from dataclasses import replace
from itertools import count

import allure
import pytest

from goal_graph.errors import (
    CyclicDependencyPlan,
    DuplicateDependencyEdge,
    TaskGraphPersistenceError,
    UnresolvedDependencyReference,
)
from goal_graph.models import (
    DependencyType,
    PlanLocalId,
    PlannedDependency,
    PlannedTask,
    Task,
    TaskDependency,
    TaskId,
    TaskPlan,
    TaskStatus,
)
from goal_graph.planning.resolver import TaskGraphResolver
from goal_graph.storage.repository import WorkflowRepository

pytestmark = [
    allure.epic("Goal Graph"),
    allure.feature("Two-Phase Plan Persistence"),
]


def _blocking(on: str) -> PlannedDependency:
    return PlannedDependency(on=PlanLocalId(on))


def _random_dag_plan(seed: int) -> TaskPlan:
    rng = random.Random(seed)
    size = rng.randint(1, 8)
    local_ids = [f"t{index}" for index in range(size)]
    order = local_ids[:]
    rng.shuffle(order)
    tasks = []
    for local_id in local_ids:
        rank = order.index(local_id)
        upstream = order[:rank]
        chosen = rng.sample(upstream, k=rng.randint(0, len(upstream))) if upstream else []
        tasks.append(
            PlannedTask(
                local_id=PlanLocalId(local_id),
                description=f"step {local_id}",
                dependencies=tuple(
                    PlannedDependency(
                        on=PlanLocalId(other),
                        dependency_type=rng.choice(list(DependencyType)),
                    )
                    for other in chosen
                ),
            ),
        )
    return TaskPlan(tasks=tuple(tasks))


class InMemoryTaskStore:
    """Thread-safe store keeping rows in dictionaries."""

    def __init__(self, *, save_delay: float = 0.0) -> None:
        self._ids = count(1)
        self._lock = threading.Lock()
        self.save_delay = save_delay
        self.tasks: dict[str, tuple[str, Task]] = {}
        self.dependencies: list[TaskDependency] = []

    def transaction(self):
        return nullcontext()

    def save_task(self, task: Task, goal_id: str, *, position: int = 0) -> Task:
        if self.save_delay:
            threading.Event().wait(self.save_delay)
        with self._lock:
            task_id = task.task_id or TaskId(f"task-{next(self._ids)}")
            saved = replace(task, task_id=task_id, goal_id=goal_id)
            self.tasks[task_id] = (goal_id, saved)
            return saved

    def save_dependency(self, task_id, depends_on_task_id, dependency_type, reason=None):
        with self._lock:
            dependency = TaskDependency(
                dependency_id=f"dep-{next(self._ids)}",
                task_id=task_id,
                depends_on_task_id=depends_on_task_id,
                dependency_type=dependency_type,
                reason=reason,
            )
            self.dependencies.append(dependency)
            return dependency

    def find_tasks_by_goal_id(self, goal_id: str) -> list[Task]:
        return [task for owner, task in self.tasks.values() if owner == goal_id]

    def find_dependencies_by_goal_id(self, goal_id: str) -> list[TaskDependency]:
        owned = {task.task_id for task in self.find_tasks_by_goal_id(goal_id)}
        return [edge for edge in self.dependencies if edge.task_id in owned]

    def delete_tasks_by_goal_id(self, goal_id: str) -> int:
        owned = [task_id for task_id, (owner, _) in self.tasks.items() if owner == goal_id]
        self.delete_dependencies_by_goal_id(goal_id)
        for task_id in owned:
            del self.tasks[task_id]
        return len(owned)

    def delete_dependencies_by_goal_id(self, goal_id: str) -> int:
        before = len(self.dependencies)
        owned = {task.task_id for task in self.find_tasks_by_goal_id(goal_id)}
        self.dependencies = [edge for edge in self.dependencies if edge.task_id not in owned]
        return before - len(self.dependencies)


def test_flight_then_hotel_scenario(repository: WorkflowRepository, goal, make_plan) -> None:
    plan = make_plan(
        ("t1", "book flight", ()),
        ("t2", "book hotel", (_blocking("t1"),)),
    )

    tasks = TaskGraphResolver(repository).coordinate_task_persistence(plan, goal.goal_id)

    assert [task.description for task in tasks] == ["book flight", "book hotel"]
    assert all(task.task_id for task in tasks)
    assert all(task.status == TaskStatus.PENDING and task.result is None for task in tasks)
    assert tasks[1].blocking_dependencies == (tasks[0].task_id,)

    dependencies = repository.find_dependencies_by_goal_id(goal.goal_id)
    assert len(dependencies) == 1
    assert dependencies[0].task_id == tasks[1].task_id
    assert dependencies[0].depends_on_task_id == tasks[0].task_id
    assert dependencies[0].dependency_type == DependencyType.BLOCKING


def test_forward_references_resolve(repository: WorkflowRepository, goal, make_plan) -> None:
    plan = make_plan(
        ("summary", "write summary", (_blocking("research"),)),
        ("research", "research options", ()),
    )

    tasks = TaskGraphResolver(repository).coordinate_task_persistence(plan, goal.goal_id)

    assert [task.description for task in tasks] == ["write summary", "research options"]
    assert tasks[0].blocking_dependencies == (tasks[1].task_id,)


def test_reasons_and_informational_edges_are_persisted(
    repository: WorkflowRepository,
    goal,
    make_plan,
) -> None:
    plan = make_plan(
        ("t1", "check weather", ()),
        (
            "t2",
            "pack bags",
            (
                PlannedDependency(
                    on=PlanLocalId("t1"),
                    dependency_type=DependencyType.INFORMATIONAL,
                    reason="pack for the forecast",
                ),
            ),
        ),
    )

    tasks = TaskGraphResolver(repository).coordinate_task_persistence(plan, goal.goal_id)

    assert tasks[1].informational_dependencies == (tasks[0].task_id,)
    assert tasks[1].blocking_dependencies == ()
    (edge,) = repository.find_dependencies_by_goal_id(goal.goal_id)
    assert edge.reason == "pack for the forecast"
    assert edge.dependency_type == DependencyType.INFORMATIONAL


@pytest.mark.parametrize("seed", range(12))
def test_random_dag_plans_persist_every_task_and_edge(
    repository: WorkflowRepository,
    seed: int,
) -> None:
    plan = _random_dag_plan(seed)
    goal = repository.create_goal(f"random plan {seed}")

    tasks = TaskGraphResolver(repository).coordinate_task_persistence(plan, goal.goal_id)

    task_ids = [task.task_id for task in tasks]
    assert len(tasks) == len(plan.tasks)
    assert len(set(task_ids)) == len(task_ids)
    assert [task.description for task in tasks] == [item.description for item in plan.tasks]

    dependencies = repository.find_dependencies_by_goal_id(goal.goal_id)
    assert len(dependencies) == plan.dependency_count
    for dependency in dependencies:
        assert dependency.task_id in task_ids
        assert dependency.depends_on_task_id in task_ids

    local_to_durable = {
        planned.local_id: task.task_id for planned, task in zip(plan.tasks, tasks, strict=True)
    }
    for planned, task in zip(plan.tasks, tasks, strict=True):
        expected_blocking = [
            local_to_durable[item.on]
            for item in planned.dependencies
            if item.dependency_type == DependencyType.BLOCKING
        ]
        assert list(task.blocking_dependencies) == expected_blocking


def test_undeclared_reference_fails_without_writing(
    repository: WorkflowRepository,
    goal,
    make_plan,
) -> None:
    plan = make_plan(
        ("t1", "book flight", ()),
        ("t2", "book hotel", (_blocking("t1"), _blocking("t9"))),
    )

    with pytest.raises(UnresolvedDependencyReference) as exc_info:
        TaskGraphResolver(repository).coordinate_task_persistence(plan, goal.goal_id)

    assert exc_info.value.plan_local_id == "t9"
    assert exc_info.value.referenced_by == "t2"
    assert repository.find_tasks_by_goal_id(goal.goal_id) == []
    assert repository.find_dependencies_by_goal_id(goal.goal_id) == []


def test_blocking_cycle_is_rejected_before_any_write(
    repository: WorkflowRepository,
    goal,
    make_plan,
) -> None:
    plan = make_plan(
        ("t1", "a", (_blocking("t2"),)),
        ("t2", "b", (_blocking("t1"),)),
    )

    with pytest.raises(CyclicDependencyPlan):
        TaskGraphResolver(repository).coordinate_task_persistence(plan, goal.goal_id)

    assert repository.find_tasks_by_goal_id(goal.goal_id) == []


def test_repeated_edge_is_rejected_before_any_write(
    repository: WorkflowRepository,
    goal,
    make_plan,
) -> None:
    plan = make_plan(
        ("t1", "book flight", ()),
        ("t2", "book hotel", (_blocking("t1"), _blocking("t1"))),
    )

    with pytest.raises(DuplicateDependencyEdge):
        TaskGraphResolver(repository).coordinate_task_persistence(plan, goal.goal_id)

    assert repository.find_tasks_by_goal_id(goal.goal_id) == []
    assert repository.find_dependencies_by_goal_id(goal.goal_id) == []


def test_long_chain_declared_before_its_dependencies_persists(
    repository: WorkflowRepository,
    goal,
    make_plan,
) -> None:
    size = 1500
    plan = make_plan(
        *(
            (
                f"t{index}",
                f"step {index}",
                (_blocking(f"t{index + 1}"),) if index + 1 < size else (),
            )
            for index in range(size)
        ),
    )

    tasks = TaskGraphResolver(repository).coordinate_task_persistence(plan, goal.goal_id)

    assert [task.description for task in tasks] == [f"step {index}" for index in range(size)]
    for task, upstream in zip(tasks, tasks[1:]):
        assert task.blocking_dependencies == (upstream.task_id,)
    assert tasks[-1].blocking_dependencies == ()
    assert len(repository.find_dependencies_by_goal_id(goal.goal_id)) == size - 1


def test_storage_failure_on_edge_rolls_back_tasks(
    repository: WorkflowRepository,
    goal,
    make_plan,
    monkeypatch,
) -> None:
    def fail_save_dependency(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(repository, "save_dependency", fail_save_dependency)
    plan = make_plan(
        ("t1", "book flight", ()),
        ("t2", "book hotel", (_blocking("t1"),)),
    )

    with pytest.raises(TaskGraphPersistenceError) as exc_info:
        TaskGraphResolver(repository).coordinate_task_persistence(plan, goal.goal_id)

    assert exc_info.value.phase == "dependencies"
    assert isinstance(exc_info.value.cause, RuntimeError)
    assert repository.find_tasks_by_goal_id(goal.goal_id) == []


def test_storage_failure_on_task_stops_before_edges(make_plan) -> None:
    class FlakyStore(InMemoryTaskStore):
        def save_task(self, task: Task, goal_id: str, *, position: int = 0) -> Task:
            if position == 1:
                raise OSError("connection lost")
            return super().save_task(task, goal_id, position=position)

    store = FlakyStore()
    plan = make_plan(
        ("t1", "book flight", ()),
        ("t2", "book hotel", (_blocking("t1"),)),
    )

    with pytest.raises(TaskGraphPersistenceError) as exc_info:
        TaskGraphResolver(store).coordinate_task_persistence(plan, "goal-1")

    assert exc_info.value.phase == "tasks"
    assert isinstance(exc_info.value.__cause__, OSError)
    assert store.dependencies == []


def test_unknown_goal_fails_in_task_phase(repository: WorkflowRepository, make_plan) -> None:
    plan = make_plan(("t1", "book flight", ()))

    with pytest.raises(TaskGraphPersistenceError) as exc_info:
        TaskGraphResolver(repository).coordinate_task_persistence(plan, "missing-goal")

    assert exc_info.value.phase == "tasks"
    assert exc_info.value.goal_id == "missing-goal"


def test_empty_plan_returns_empty_list(repository: WorkflowRepository, goal) -> None:
    assert TaskGraphResolver(repository).coordinate_task_persistence(TaskPlan(), goal.goal_id) == []


def test_concurrent_resolutions_do_not_share_mappings() -> None:
    store = InMemoryTaskStore(save_delay=0.001)
    resolver = TaskGraphResolver(store)
    plans = {f"goal-{index}": _random_dag_plan(100 + index) for index in range(6)}
    results: dict[str, list[Task]] = {}
    errors: list[BaseException] = []

    def run(goal_id: str, plan: TaskPlan) -> None:
        try:
            results[goal_id] = resolver.coordinate_task_persistence(plan, goal_id)
        except BaseException as error:  # noqa: BLE001
            errors.append(error)

    threads = [threading.Thread(target=run, args=item) for item in plans.items()]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    for goal_id, plan in plans.items():
        owned = {task.task_id for task in store.find_tasks_by_goal_id(goal_id)}
        assert {task.task_id for task in results[goal_id]} == owned
        for edge in store.find_dependencies_by_goal_id(goal_id):
            assert edge.depends_on_task_id in owned
        assert len(store.find_dependencies_by_goal_id(goal_id)) == plan.dependency_count
