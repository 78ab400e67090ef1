"""Shared test fixtures."""

from __future__ import annotations

import threading
from collections.abc import Iterator

import pytest

from goal_graph.models import Goal, PlanLocalId, PlannedDependency, PlannedTask, TaskPlan
from goal_graph.storage.repository import WorkflowRepository


class FakeBackend:
    """Completion backend that replays scripted outcomes."""

    def __init__(self, *outcomes: str | BaseException) -> None:
        self.outcomes = list(outcomes)
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleeper:
    """Sleeper that records requested delays without waiting."""

    def __init__(self, *, cancel_after: int | None = None) -> None:
        self.delays: list[float] = []
        self.cancel_after = cancel_after

    def wait(self, seconds: float, cancel_event: threading.Event) -> bool:
        self.delays.append(seconds)
        if cancel_event.is_set():
            return False
        return self.cancel_after is None or len(self.delays) <= self.cancel_after


def _make_plan(*tasks: tuple[str, str, tuple[PlannedDependency, ...]]) -> TaskPlan:
    return TaskPlan(
        tasks=tuple(
            PlannedTask(local_id=PlanLocalId(local_id), description=description, dependencies=deps)
            for local_id, description, deps in tasks
        ),
    )


@pytest.fixture()
def fake_backend() -> type[FakeBackend]:
    return FakeBackend


@pytest.fixture()
def sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture()
def make_plan():
    """Build a plan from ``(local_id, description, dependencies)`` triples."""

    return _make_plan


@pytest.fixture()
def repository(tmp_path) -> Iterator[WorkflowRepository]:
    repository = WorkflowRepository(tmp_path / "goal_graph.db")
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@pytest.fixture()
def goal(repository: WorkflowRepository) -> Goal:
    return repository.create_goal("Plan a trip to Lisbon")
