"""SQLModel ORM tables for goal and task graph storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel


class GoalRow(SQLModel, table=True):
    __tablename__ = "goals"  # type: ignore[bad-override]

    goal_id: str = Field(primary_key=True)
    query: str = Field(sa_column=Column(Text, nullable=False))
    summary: str | None = Field(default=None, sa_column=Column(Text))
    status: str = Field(index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class GoalTaskRow(SQLModel, table=True):
    __tablename__ = "goal_tasks"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_goal_tasks_goal_created", "goal_id", "created_at"),)

    task_id: str = Field(primary_key=True)
    goal_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("goals.goal_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    position: int = Field(default=0)
    description: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(index=True)
    result: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class TaskDependencyRow(SQLModel, table=True):
    __tablename__ = "task_dependencies"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "task_id",
            "depends_on_task_id",
            "dependency_type",
            name="uq_task_dependencies_edge",
        ),
        CheckConstraint(
            "task_id <> depends_on_task_id",
            name="ck_task_dependencies_no_self",
        ),
    )

    dependency_id: str = Field(primary_key=True)
    task_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("goal_tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    depends_on_task_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("goal_tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    dependency_type: str
    reason: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
