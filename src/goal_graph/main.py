"""CLI entrypoint for goal-graph."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from goal_graph import __version__
from goal_graph.controllers import (
    GoalGraphCliController,
    GoalPlanCommand,
    GoalSummarizeCommand,
    GoalTasksCommand,
    TaskUpdateCommand,
)
from goal_graph.errors import (
    InvalidStatusTransition,
    RemoteCallFailure,
    TaskGraphPersistenceError,
    TaskPlanError,
    UnknownGoalReference,
    UnknownTaskReference,
)
from goal_graph.models import TaskStatus

click.rich_click.USE_MARKDOWN = True
CONTROLLER = GoalGraphCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
CLI_ERRORS = (
    TaskPlanError,
    TaskGraphPersistenceError,
    UnknownGoalReference,
    UnknownTaskReference,
    InvalidStatusTransition,
    RemoteCallFailure,
    ValueError,
)


@click.group()
@click.version_option(version=__version__, prog_name="goal-graph")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for diagnostics on stderr.",
)
def goal_graph(log_level: str) -> None:
    """Persist goal task graphs and summarize finished goals."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@goal_graph.command("plan")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--query", required=True, help="Goal query the plan was produced for.")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def plan(plan_file: Path, query: str, db_path: Path | None) -> None:
    """Create a goal and persist the task plan from a JSON file.

    The file holds `{"tasks": [{"id", "description", "dependencies": [{"on", "type", "reason"}]}]}`.
    """

    with _cli_errors():
        _emit_lines(
            CONTROLLER.plan(GoalPlanCommand(db_path=db_path, plan_file=plan_file, query=query)),
        )


@goal_graph.command("tasks")
@click.argument("goal_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def tasks(goal_id: str, db_path: Path | None) -> None:
    """List goal tasks in creation order."""

    with _cli_errors():
        _emit_lines(CONTROLLER.tasks(GoalTasksCommand(db_path=db_path, goal_id=goal_id)))


@goal_graph.command("ready")
@click.argument("goal_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def ready(goal_id: str, db_path: Path | None) -> None:
    """List pending tasks whose blocking dependencies are completed."""

    with _cli_errors():
        _emit_lines(CONTROLLER.ready(GoalTasksCommand(db_path=db_path, goal_id=goal_id)))


@goal_graph.command("update-task")
@click.argument("goal_id")
@click.argument("task_id")
@click.option(
    "--status",
    type=click.Choice([status.value for status in TaskStatus], case_sensitive=False),
    required=True,
    help="New task status.",
)
@click.option("--result", default=None, help="Task result or failure reason.")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def update_task(
    goal_id: str,
    task_id: str,
    status: str,
    result: str | None,
    db_path: Path | None,
) -> None:
    """Record a task status change."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.update_task(
                TaskUpdateCommand(
                    db_path=db_path,
                    goal_id=goal_id,
                    task_id=task_id,
                    status=status,
                    result=result,
                ),
            ),
        )


@goal_graph.command("summarize")
@click.argument("goal_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def summarize(goal_id: str, db_path: Path | None) -> None:
    """Summarize the goal with the configured backend and mark it completed."""

    with _cli_errors():
        _emit_lines(CONTROLLER.summarize(GoalSummarizeCommand(db_path=db_path, goal_id=goal_id)))


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except CLI_ERRORS as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    goal_graph()
