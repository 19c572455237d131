"""
devkit.database.models — SQLAlchemy 2.0 Data Models
====================================================

Schema for the achievement engine and the collaborators it reads from.

Tables:
- users             — Platform accounts (existence + admin flag only)
- user_stats        — Cumulative activity counters (the metric snapshot source)
- badges            — Admin-defined achievement catalog
- user_badges       — Award records, one per (user, badge)
- user_progress     — Experience / level progression with a CAS version
- progression_log   — Append-only progression journal (level-ups)
- notifications     — In-app notifications created on award
- admin_log         — Append-only audit trail
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all DevKit ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Metric(enum.StrEnum):
    """Activity counters a badge criterion can target."""
    TEMPLATES_CREATED = "templatesCreated"
    COPIES_RECEIVED = "copiesReceived"
    COMMANDS_GENERATED = "commandsGenerated"
    LIKES_RECEIVED = "likesReceived"
    TOTAL_VIEWS = "totalViews"


class Operator(enum.StrEnum):
    """Comparison applied between a metric value and the criterion target."""
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"
    BETWEEN = "between"


class Rarity(enum.StrEnum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class BadgeCategory(enum.StrEnum):
    GENERAL = "general"
    CREATOR = "creator"
    COMMUNITY = "community"
    USAGE = "usage"
    MILESTONE = "milestone"
    SPECIAL = "special"
    SEASONAL = "seasonal"
    ACHIEVEMENT = "achievement"


class Timeframe(enum.StrEnum):
    """Display-only window label; evaluation always uses cumulative counters."""
    ALL_TIME = "allTime"
    DAYS_30 = "30Days"
    DAYS_7 = "7Days"
    DAYS_1 = "1Day"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    MANUAL_AWARD = "MANUAL_AWARD"


# ---------------------------------------------------------------------------
# Users — one row per platform account
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    stats: Mapped[UserStats | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    progress: Mapped[UserProgress | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


# ---------------------------------------------------------------------------
# UserStats — cumulative activity counters
# ---------------------------------------------------------------------------
class UserStats(Base):
    __tablename__ = "user_stats"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    templates_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    copies_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    commands_generated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    likes_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="stats")

    __table_args__ = (
        Index("ix_user_stats_templates_created", "templates_created"),
    )

    def __repr__(self) -> str:
        return f"<UserStats user={self.user_id}>"


# ---------------------------------------------------------------------------
# Badge — admin-defined achievement with a single criterion
# ---------------------------------------------------------------------------
class Badge(Base):
    """Catalog entry.

    ``criteria`` holds ``{"metric": ..., "operator": ..., "target": ...}``
    where ``target`` is a number, or a ``[low, high]`` pair for ``between``.
    Parsed into a tagged :class:`~devkit.engine.criteria.Criterion` at
    evaluation time.
    """
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    badge_image: Mapped[str | None] = mapped_column(String(500), default=None)
    category: Mapped[str] = mapped_column(
        String(30), nullable=False, default=BadgeCategory.GENERAL.value
    )

    # Criterion
    criteria: Mapped[dict] = mapped_column(JSONB, nullable=False)
    timeframe: Mapped[str] = mapped_column(
        String(10), nullable=False, default=Timeframe.ALL_TIME.value
    )

    # Rarity & cost
    points_required: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rarity: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Rarity.COMMON.value
    )

    # Rewards
    xp_bonus: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    grants_profile_badge: Mapped[bool] = mapped_column(Boolean, default=True)
    special_privileges: Mapped[list | None] = mapped_column(JSONB, default=list)

    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    earned_by: Mapped[list[UserBadge]] = relationship(
        back_populates="badge", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_badges_rarity", "rarity"),
        Index("ix_badges_category", "category"),
        Index("ix_badges_active", "active"),
    )

    def __repr__(self) -> str:
        return f"<Badge id={self.id} name={self.name!r} rarity={self.rarity}>"


# ---------------------------------------------------------------------------
# UserBadge — award record; the composite PK is the at-most-once guarantee
# ---------------------------------------------------------------------------
class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Progress frozen at award time
    current_value: Mapped[float] = mapped_column(Float, default=0)
    target_value: Mapped[float] = mapped_column(Float, default=0)
    progress_percentage: Mapped[int] = mapped_column(Integer, default=100)

    # Bookkeeping
    notification_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    reward_applied: Mapped[bool] = mapped_column(Boolean, default=False)
    granted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)

    user: Mapped[User] = relationship(back_populates="badges")
    badge: Mapped[Badge] = relationship(back_populates="earned_by")

    __table_args__ = (
        Index("ix_user_badges_user_earned", "user_id", "earned_at"),
        Index("ix_user_badges_badge_earned", "badge_id", "earned_at"),
        Index("ix_user_badges_pending_reward", "reward_applied"),
    )

    @property
    def key(self) -> tuple[int, int]:
        return (self.user_id, self.badge_id)

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id} badge={self.badge_id}>"


# ---------------------------------------------------------------------------
# UserProgress — experience / level with an optimistic-concurrency version
# ---------------------------------------------------------------------------
class UserProgress(Base):
    __tablename__ = "user_progress"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    experience: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="progress")

    __table_args__ = (
        Index("ix_user_progress_level", "level"),
    )

    def __repr__(self) -> str:
        return f"<UserProgress user={self.user_id} lvl={self.level} xp={self.experience}>"


# ---------------------------------------------------------------------------
# ProgressionLog — append-only progression journal
# ---------------------------------------------------------------------------
class ProgressionLog(Base):
    __tablename__ = "progression_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        Index("ix_progression_log_user_time", "user_id", "earned_at"),
    )

    def __repr__(self) -> str:
        return f"<ProgressionLog id={self.id} user={self.user_id} type={self.type}>"


# ---------------------------------------------------------------------------
# Notification — in-app notifications
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    action_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_user_read_time", "user_id", "is_read", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} type={self.type!r}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
