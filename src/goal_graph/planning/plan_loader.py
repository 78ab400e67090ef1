"""Task plan documents as accepted by the CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from goal_graph.models import DependencyType, PlanLocalId, PlannedDependency, PlannedTask, TaskPlan


def load_task_plan(path: Path) -> TaskPlan:
    """Read a JSON plan document from ``path``."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise ValueError(f"Task plan {path} is not valid JSON: {error}") from error
    return parse_task_plan(payload)


def parse_task_plan(payload: Any) -> TaskPlan:
    """Build a ``TaskPlan`` from ``{"tasks": [{"id", "description", "dependencies"}]}``.

    Each dependency is ``{"on": <id>, "type": "BLOCKING"|"INFORMATIONAL", "reason": ...}``;
    ``type`` defaults to BLOCKING. A bare string is accepted as a blocking dependency.
    """

    if not isinstance(payload, dict) or not isinstance(payload.get("tasks"), list):
        raise ValueError("Task plan must be an object with a 'tasks' list.")

    tasks: list[PlannedTask] = []
    for index, raw_task in enumerate(payload["tasks"]):
        if not isinstance(raw_task, dict):
            raise ValueError(f"tasks[{index}] must be an object.")
        local_id = _required_text(raw_task, "id", where=f"tasks[{index}]")
        description = _required_text(raw_task, "description", where=f"tasks[{index}]")
        raw_dependencies = raw_task.get("dependencies") or []
        if not isinstance(raw_dependencies, list):
            raise ValueError(f"tasks[{index}].dependencies must be a list.")
        tasks.append(
            PlannedTask(
                local_id=PlanLocalId(local_id),
                description=description,
                dependencies=tuple(
                    _parse_dependency(item, where=f"tasks[{index}].dependencies[{position}]")
                    for position, item in enumerate(raw_dependencies)
                ),
            ),
        )
    return TaskPlan(tasks=tuple(tasks))


def _parse_dependency(raw: Any, *, where: str) -> PlannedDependency:
    if isinstance(raw, str) and raw.strip():
        return PlannedDependency(on=PlanLocalId(raw.strip()))
    if not isinstance(raw, dict):
        raise ValueError(f"{where} must be an object or a task id.")
    on = _required_text(raw, "on", where=where)
    raw_type = str(raw.get("type") or DependencyType.BLOCKING.value).strip().upper()
    try:
        dependency_type = DependencyType(raw_type)
    except ValueError as error:
        raise ValueError(f"{where}.type has unsupported value {raw_type!r}.") from error
    reason = raw.get("reason")
    return PlannedDependency(
        on=PlanLocalId(on),
        dependency_type=dependency_type,
        reason=str(reason) if reason is not None else None,
    )


def _required_text(raw: dict[str, Any], key: str, *, where: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{where}.{key} must be a non-empty string.")
    return value.strip()
