"""Initial BacklogSync schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

This migration creates the initial BacklogSync schema with:
- Planning sessions with aggregate counters
- Epics keyed by (session_id, number)
- Stories keyed by (session_id, story_key), linked to their epic
- Soft-delete markers on all three tables
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    is_sqlite = bind.dialect.name == "sqlite"

    json_type = sa.Text() if is_sqlite else postgresql.JSONB()
    timestamp_type = sa.DateTime() if is_sqlite else sa.TIMESTAMP()
    empty_list = sa.text("'[]'") if is_sqlite else sa.text("'[]'::jsonb")
    empty_object = sa.text("'{}'") if is_sqlite else sa.text("'{}'::jsonb")

    op.create_table(
        "planning_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("project_name", sa.Text(), nullable=False),
        sa.Column("project_description", sa.Text(), nullable=True),
        sa.Column("current_step", sa.Text(), nullable=False, server_default="init"),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("total_epics", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_stories", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_story_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", timestamp_type, server_default=sa.func.now()),
        sa.Column("updated_at", timestamp_type, server_default=sa.func.now()),
        sa.Column("deleted_at", timestamp_type, nullable=True),
    )
    op.create_index("idx_planning_sessions_user", "planning_sessions", ["user_id"])

    op.create_table(
        "epics",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            sa.Integer(),
            sa.ForeignKey("planning_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("business_value", sa.Text(), nullable=True),
        sa.Column("functional_requirement_codes", json_type, server_default=empty_list),
        sa.Column("status", sa.Text(), nullable=False, server_default="backlog"),
        sa.Column("priority", sa.Text(), nullable=False, server_default="medium"),
        sa.Column("target_sprint", sa.Integer(), nullable=True),
        sa.Column("estimated_story_points", sa.Integer(), nullable=True),
        sa.Column("created_at", timestamp_type, server_default=sa.func.now()),
        sa.Column("updated_at", timestamp_type, server_default=sa.func.now()),
        sa.Column("deleted_at", timestamp_type, nullable=True),
        sa.CheckConstraint("number >= 1", name="ck_epics_number_positive"),
    )
    op.create_index("idx_epics_session_number", "epics", ["session_id", "number"])

    op.create_table(
        "stories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            sa.Integer(),
            sa.ForeignKey("planning_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("epic_id", sa.Integer(), sa.ForeignKey("epics.id", ondelete="CASCADE"), nullable=False),
        sa.Column("epic_number", sa.Integer(), nullable=False),
        sa.Column("story_number", sa.Integer(), nullable=False),
        sa.Column("story_key", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("as_a", sa.Text(), nullable=False),
        sa.Column("i_want", sa.Text(), nullable=False),
        sa.Column("so_that", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("acceptance_criteria", json_type, server_default=empty_list),
        sa.Column("tasks", json_type, server_default=empty_list),
        sa.Column("dev_notes", json_type, server_default=empty_object),
        sa.Column("status", sa.Text(), nullable=False, server_default="backlog"),
        sa.Column("priority", sa.Text(), nullable=False, server_default="medium"),
        sa.Column("story_points", sa.Integer(), nullable=True),
        sa.Column("target_sprint", sa.Integer(), nullable=True),
        sa.Column("functional_requirement_codes", json_type, server_default=empty_list),
        sa.Column("created_at", timestamp_type, server_default=sa.func.now()),
        sa.Column("updated_at", timestamp_type, server_default=sa.func.now()),
        sa.Column("deleted_at", timestamp_type, nullable=True),
        sa.CheckConstraint("epic_number >= 1", name="ck_stories_epic_number_positive"),
        sa.CheckConstraint("story_number >= 1", name="ck_stories_story_number_positive"),
    )
    op.create_index("idx_stories_session_key", "stories", ["session_id", "story_key"])
    op.create_index("idx_stories_epic", "stories", ["epic_id"])


def downgrade() -> None:
    op.drop_index("idx_stories_epic", table_name="stories")
    op.drop_index("idx_stories_session_key", table_name="stories")
    op.drop_index("idx_epics_session_number", table_name="epics")
    op.drop_index("idx_planning_sessions_user", table_name="planning_sessions")

    op.drop_table("stories")
    op.drop_table("epics")
    op.drop_table("planning_sessions")
