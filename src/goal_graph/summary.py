"""Goal completion summaries produced by the generative backend."""

from __future__ import annotations

import logging

from goal_graph.models import Goal, TaskStatus
from goal_graph.remote.executor import RemoteCallExecutor

logger = logging.getLogger(__name__)

SUMMARY_OPERATION = "goal summarization"

GOAL_SUMMARY_PROMPT = """\
Goal: {query}

Results: {completed}/{total} completed, {failed} failed

Tasks:
{task_lines}

Provide concise summary: goal achievement, key results, issues, overall assessment.
"""


def build_summary_prompt(goal: Goal) -> str:
    """Render the summary request for ``goal`` from its loaded tasks."""

    task_lines = "\n".join(
        f"- {task.description} [{task.status.value}] "
        f"{task.result if task.result is not None else 'No result'}"
        for task in goal.tasks
    )
    return GOAL_SUMMARY_PROMPT.format(
        query=goal.query,
        completed=sum(1 for task in goal.tasks if task.status == TaskStatus.COMPLETED),
        total=len(goal.tasks),
        failed=sum(1 for task in goal.tasks if task.status == TaskStatus.FAILED),
        task_lines=task_lines,
    )


class GoalSummarizer:
    """Attaches a backend-written summary to a goal whose tasks have finished."""

    def __init__(self, executor: RemoteCallExecutor) -> None:
        self.executor = executor

    def summarize_goal_completion(self, goal: Goal) -> Goal:
        """Return a copy of ``goal`` with the summary set.

        ``RemoteCallFailure`` from the executor propagates unchanged and
        ``goal`` is left as it was.
        """

        prompt = build_summary_prompt(goal)
        logger.info("Summarizing goal %s (%d task(s))", goal.goal_id, len(goal.tasks))
        summary = self.executor.execute(SUMMARY_OPERATION, prompt)
        return goal.with_summary(summary)
