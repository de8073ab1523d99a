"""chart_hierarchy

Create charts, visions, realities, tensions, actions, action_dependencies
and profiles.

Revision ID: 5e1c0a7b9d21
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e1c0a7b9d21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

    if "charts" not in existing_tables:
        op.create_table(
            "charts",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("workspace_id", sa.String(length=36), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("parent_action_id", sa.String(length=36), nullable=True),
            sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("status IN ('active','completed')", name="ck_chart_status"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_charts_workspace_id", "charts", ["workspace_id"])
        op.create_index("ix_charts_parent_action_id", "charts", ["parent_action_id"])
        op.create_index("ix_charts_archived_at", "charts", ["archived_at"])

    for table in ("visions", "realities"):
        if table in existing_tables:
            continue
        columns = [
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("chart_id", sa.String(length=36), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
        ]
        if table == "visions":
            columns += [
                sa.Column("assignee", sa.String(length=255), nullable=True),
                sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            ]
        op.create_table(
            table,
            *columns,
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["chart_id"], ["charts.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_chart_id", table, ["chart_id"])

    if "tensions" not in existing_tables:
        op.create_table(
            "tensions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("chart_id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("area", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["chart_id"], ["charts.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tensions_chart_id", "tensions", ["chart_id"])

    if "actions" not in existing_tables:
        op.create_table(
            "actions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("chart_id", sa.String(length=36), nullable=False),
            sa.Column("tension_id", sa.String(length=36), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=True),
            sa.Column("is_completed", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("assignee", sa.String(length=255), nullable=True),
            sa.Column("child_chart_id", sa.String(length=36), nullable=True),
            sa.Column("sub_chart_id", sa.String(length=36), nullable=True),
            sa.Column("has_sub_chart", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["chart_id"], ["charts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["tension_id"], ["tensions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_actions_chart_id", "actions", ["chart_id"])
        op.create_index("ix_actions_tension_id", "actions", ["tension_id"])
        op.create_index("ix_actions_child_chart_id", "actions", ["child_chart_id"])
        op.create_index("ix_actions_sub_chart_id", "actions", ["sub_chart_id"])

    if "action_dependencies" not in existing_tables:
        op.create_table(
            "action_dependencies",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("blocker_action_id", sa.String(length=36), nullable=False),
            sa.Column("blocked_action_id", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["blocker_action_id"], ["actions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["blocked_action_id"], ["actions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_action_dependencies_blocker_action_id", "action_dependencies", ["blocker_action_id"])
        op.create_index("ix_action_dependencies_blocked_action_id", "action_dependencies", ["blocked_action_id"])


def downgrade():
    for table in ("action_dependencies", "actions", "tensions", "realities", "visions", "charts", "profiles"):
        op.drop_table(table)
