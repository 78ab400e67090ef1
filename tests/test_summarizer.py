from __future__ import annotations

import random

import allure
import pytest

from goal_graph.errors import RemoteCallFailure
from goal_graph.models import Goal, GoalStatus, Task, TaskStatus
from goal_graph.remote.backend import BackendCallError
from goal_graph.remote.executor import RemoteCallExecutor
from goal_graph.summary import SUMMARY_OPERATION, GoalSummarizer, build_summary_prompt

pytestmark = [
    allure.epic("Goal Graph"),
    allure.feature("Goal Summaries"),
]


def _goal_with(*tasks: Task) -> Goal:
    return Goal(goal_id="g-1", query="Plan a trip to Lisbon").with_tasks(tasks)


def test_prompt_reports_counts_and_task_lines() -> None:
    goal = _goal_with(
        Task(description="book flight").with_result("LH123"),
        Task(description="book hotel").with_result("Hotel Avenida"),
        Task(description="rent car").with_failure("no cars left"),
    )

    prompt = build_summary_prompt(goal)

    assert "Goal: Plan a trip to Lisbon" in prompt
    assert "Results: 2/3 completed, 1 failed" in prompt
    assert "- book flight [COMPLETED] LH123" in prompt
    assert "- rent car [FAILED] no cars left" in prompt


def test_prompt_uses_placeholder_for_missing_result() -> None:
    prompt = build_summary_prompt(
        _goal_with(Task(description="book flight", status=TaskStatus.IN_PROGRESS)),
    )

    assert "- book flight [IN_PROGRESS] No result" in prompt
    assert "Results: 0/1 completed, 0 failed" in prompt


def test_prompt_for_goal_without_tasks() -> None:
    assert "Results: 0/0 completed, 0 failed" in build_summary_prompt(_goal_with())


def test_summary_is_attached_to_new_goal_value(fake_backend, sleeper) -> None:
    backend = fake_backend("Trip is fully booked.")
    summarizer = GoalSummarizer(RemoteCallExecutor(backend, sleeper=sleeper))
    goal = _goal_with(Task(description="book flight").with_result("LH123"))

    summarized = summarizer.summarize_goal_completion(goal)

    assert summarized.summary == "Trip is fully booked."
    assert summarized.status == GoalStatus.COMPLETED
    assert summarized.completed_at is not None
    assert goal.summary is None
    assert goal.status == GoalStatus.IN_PROGRESS
    assert backend.prompts == [build_summary_prompt(goal)]


def test_summarization_failure_propagates_unchanged(fake_backend, sleeper) -> None:
    backend = fake_backend(*([BackendCallError("throttled", status_code=429)] * 3))
    summarizer = GoalSummarizer(
        RemoteCallExecutor(backend, sleeper=sleeper, rng=random.Random(0)),
    )
    goal = _goal_with(Task(description="book flight").with_failure("sold out"))

    with pytest.raises(RemoteCallFailure) as exc_info:
        summarizer.summarize_goal_completion(goal)

    assert exc_info.value.operation == SUMMARY_OPERATION == "goal summarization"
    assert exc_info.value.attempts == 3
    assert goal.tasks[0].status == TaskStatus.FAILED
