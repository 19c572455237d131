"""Create achievement engine tables

Revision ID: 4c2e9a71b0d3
Revises:
Create Date: 2026-10-19 09:12:44.118203

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4c2e9a71b0d3'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _now():
    return sa.func.now()


def upgrade() -> None:
    """Users, activity counters, badge catalog, awards, progression, inbox, audit."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_admin", sa.Boolean, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now()),
    )

    # --- user_stats ---
    op.create_table(
        "user_stats",
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("templates_created", sa.Integer, nullable=False),
        sa.Column("copies_received", sa.Integer, nullable=False),
        sa.Column("commands_generated", sa.Integer, nullable=False),
        sa.Column("likes_received", sa.Integer, nullable=False),
        sa.Column("total_views", sa.Integer, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=_now()),
    )
    op.create_index("ix_user_stats_templates_created", "user_stats", ["templates_created"])

    # --- badges ---
    op.create_table(
        "badges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("badge_image", sa.String(500), nullable=True),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("criteria", postgresql.JSONB, nullable=False),
        sa.Column("timeframe", sa.String(10), nullable=False),
        sa.Column("points_required", sa.Integer, nullable=False),
        sa.Column("rarity", sa.String(20), nullable=False),
        sa.Column("xp_bonus", sa.Integer, nullable=False),
        sa.Column("grants_profile_badge", sa.Boolean, nullable=True),
        sa.Column("special_privileges", postgresql.JSONB, nullable=True),
        sa.Column("active", sa.Boolean, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=_now()),
    )
    op.create_index("ix_badges_rarity", "badges", ["rarity"])
    op.create_index("ix_badges_category", "badges", ["category"])
    op.create_index("ix_badges_active", "badges", ["active"])

    # --- user_badges ---
    op.create_table(
        "user_badges",
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "badge_id", sa.Integer,
            sa.ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("earned_at", sa.DateTime(timezone=True), server_default=_now()),
        sa.Column("current_value", sa.Float, nullable=True),
        sa.Column("target_value", sa.Float, nullable=True),
        sa.Column("progress_percentage", sa.Integer, nullable=True),
        sa.Column("notification_sent", sa.Boolean, nullable=True),
        sa.Column("featured", sa.Boolean, nullable=True),
        sa.Column("reward_applied", sa.Boolean, nullable=True),
        sa.Column("granted_by", sa.Integer, nullable=True),
        sa.Column("reason", sa.String(200), nullable=True),
    )
    op.create_index("ix_user_badges_user_earned", "user_badges", ["user_id", "earned_at"])
    op.create_index("ix_user_badges_badge_earned", "user_badges", ["badge_id", "earned_at"])
    op.create_index("ix_user_badges_pending_reward", "user_badges", ["reward_applied"])

    # --- user_progress ---
    op.create_table(
        "user_progress",
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("experience", sa.Integer, nullable=False),
        sa.Column("level", sa.Integer, nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=_now()),
    )
    op.create_index("ix_user_progress_level", "user_progress", ["level"])

    # --- progression_log ---
    op.create_table(
        "progression_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), server_default=_now()),
        sa.Column("data", postgresql.JSONB, nullable=True),
    )
    op.create_index(
        "ix_progression_log_user_time", "progression_log", ["user_id", "earned_at"]
    )

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.String(1000), nullable=False),
        sa.Column("data", postgresql.JSONB, nullable=True),
        sa.Column("action_url", sa.String(500), nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now()),
    )
    op.create_index(
        "ix_notifications_user_read_time",
        "notifications", ["user_id", "is_read", "created_at"],
    )

    # --- admin_log ---
    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.Integer, nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=_now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )


def downgrade() -> None:
    for table in (
        "admin_log",
        "notifications",
        "progression_log",
        "user_progress",
        "user_badges",
        "badges",
        "user_stats",
        "users",
    ):
        op.drop_table(table)
