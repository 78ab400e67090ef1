"""Goal, task and task dependency tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "goals",
        sa.Column("goal_id", sa.String(), nullable=False),
        sa.Column("query", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("goal_id"),
    )
    op.create_index("ix_goals_status", "goals", ["status"], unique=False)

    op.create_table(
        "goal_tasks",
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("goal_id", sa.String(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("result", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["goal_id"], ["goals.goal_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("task_id"),
    )
    op.create_index("ix_goal_tasks_goal_id", "goal_tasks", ["goal_id"], unique=False)
    op.create_index("ix_goal_tasks_status", "goal_tasks", ["status"], unique=False)
    op.create_index(
        "idx_goal_tasks_goal_created",
        "goal_tasks",
        ["goal_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "task_dependencies",
        sa.Column("dependency_id", sa.String(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("depends_on_task_id", sa.String(), nullable=False),
        sa.Column("dependency_type", sa.String(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["goal_tasks.task_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["depends_on_task_id"],
            ["goal_tasks.task_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("dependency_id"),
        sa.UniqueConstraint(
            "task_id",
            "depends_on_task_id",
            "dependency_type",
            name="uq_task_dependencies_edge",
        ),
        sa.CheckConstraint(
            "task_id <> depends_on_task_id",
            name="ck_task_dependencies_no_self",
        ),
    )
    op.create_index(
        "ix_task_dependencies_task_id",
        "task_dependencies",
        ["task_id"],
        unique=False,
    )
    op.create_index(
        "ix_task_dependencies_depends_on_task_id",
        "task_dependencies",
        ["depends_on_task_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_task_dependencies_depends_on_task_id", table_name="task_dependencies")
    op.drop_index("ix_task_dependencies_task_id", table_name="task_dependencies")
    op.drop_table("task_dependencies")
    op.drop_index("idx_goal_tasks_goal_created", table_name="goal_tasks")
    op.drop_index("ix_goal_tasks_status", table_name="goal_tasks")
    op.drop_index("ix_goal_tasks_goal_id", table_name="goal_tasks")
    op.drop_table("goal_tasks")
    op.drop_index("ix_goals_status", table_name="goals")
    op.drop_table("goals")
