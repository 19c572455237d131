"""
devkit.services.catalog_service — Badge Catalog Service Layer
==============================================================

Reads of the badge catalog for the award engine and the API, plus the
audited admin mutations.  Every write follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Validate and apply the change (:mod:`devkit.engine.catalog`)
  4. Write admin_log with before/after JSON
  5. Commit
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from devkit.constants import RARITY_ORDER
from devkit.database.models import AdminActionType, AdminLog, Badge, UserBadge
from devkit.engine.catalog import validate_badge_update, validate_new_badge
from devkit.errors import DuplicateBadgeName

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = ("created_at", "name", "rarity", "points_required", "xp_bonus")


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def _row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _all_names(session: Session, *, exclude_id: int | None = None) -> list[str]:
    stmt = select(Badge.name)
    if exclude_id is not None:
        stmt = stmt.where(Badge.id != exclude_id)
    return list(session.scalars(stmt).all())


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_badge(session: Session, badge_id: int) -> Badge | None:
    return session.get(Badge, badge_id)


def list_active_badges(session: Session) -> list[Badge]:
    """Active catalog in evaluation order (id ascending)."""
    return list(session.scalars(
        select(Badge).where(Badge.active.is_(True)).order_by(Badge.id)
    ).all())


def list_badges(
    session: Session,
    *,
    category: str | None = None,
    rarity: str | None = None,
    include_inactive: bool = False,
    limit: int = 50,
    offset: int = 0,
    sort: str = "created_at",
    order: str = "desc",
) -> tuple[list[Badge], int]:
    """Filtered, sorted page of the catalog.

    Returns ``(badges, total)`` where *total* counts every match ignoring
    pagination.  Unknown *sort* keys fall back to ``created_at``; rarity
    sorts by tier, not alphabetically.
    """
    stmt = select(Badge)
    if not include_inactive:
        stmt = stmt.where(Badge.active.is_(True))
    if category:
        stmt = stmt.where(Badge.category == category)
    if rarity:
        stmt = stmt.where(Badge.rarity == rarity)

    total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0

    if sort == "rarity":
        sort_col = case(
            {str(k): v for k, v in RARITY_ORDER.items()}, value=Badge.rarity, else_=-1
        )
    else:
        sort_col = getattr(Badge, sort if sort in SORTABLE_COLUMNS else "created_at")
    sort_expr = sort_col.asc() if order == "asc" else sort_col.desc()

    badges = session.scalars(
        stmt.order_by(sort_expr, Badge.id).limit(limit).offset(offset)
    ).all()
    return list(badges), total


def catalog_stats(session: Session) -> dict[str, Any]:
    """Catalog totals with per-category and per-rarity breakdowns."""
    total = session.scalar(select(func.count(Badge.id))) or 0
    active = session.scalar(
        select(func.count(Badge.id)).where(Badge.active.is_(True))
    ) or 0
    by_category = dict(session.execute(
        select(Badge.category, func.count(Badge.id)).group_by(Badge.category)
    ).all())
    by_rarity = dict(session.execute(
        select(Badge.rarity, func.count(Badge.id)).group_by(Badge.rarity)
    ).all())
    awards = session.scalar(select(func.count()).select_from(UserBadge)) or 0
    return {
        "total": total,
        "active": active,
        "by_category": by_category,
        "by_rarity": by_rarity,
        "total_awards": awards,
    }


# ---------------------------------------------------------------------------
# Audited mutations
# ---------------------------------------------------------------------------

def create_badge(
    engine: Engine,
    definition: Mapping[str, Any],
    *,
    actor_id: int,
) -> Badge:
    """Validate and insert a new catalog entry.

    Raises
    ------
    CatalogValidationError
        (or a subclass) when the definition breaks a catalog rule.
    """
    with Session(engine, expire_on_commit=False) as session:
        values = validate_new_badge(definition, existing_names=_all_names(session))
        badge = Badge(**values)
        session.add(badge)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise DuplicateBadgeName(
                "Badge with this name already exists", details={"name": values["name"]}
            ) from exc
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE,
            target_table="badges",
            target_id=str(badge.id),
            before=None,
            after=_row_to_dict(badge),
        )
        session.commit()
        session.refresh(badge)
        session.expunge(badge)

    logger.info("Badge %d (%s) created by %d", badge.id, badge.name, actor_id)
    return badge


def update_badge(
    engine: Engine,
    badge_id: int,
    changes: Mapping[str, Any],
    *,
    actor_id: int,
) -> Badge | None:
    """Re-validate and apply *changes*.  Returns ``None`` if not found."""
    with Session(engine, expire_on_commit=False) as session:
        badge = session.get(Badge, badge_id)
        if badge is None:
            return None
        before = _row_to_dict(badge)
        values = validate_badge_update(
            before,
            changes,
            other_names=_all_names(session, exclude_id=badge_id),
        )
        for key, value in values.items():
            setattr(badge, key, value)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise DuplicateBadgeName(
                "Badge with this name already exists", details={"name": values["name"]}
            ) from exc
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table="badges",
            target_id=str(badge.id),
            before=before,
            after=_row_to_dict(badge),
        )
        session.commit()
        session.refresh(badge)
        session.expunge(badge)
        return badge


def delete_badge(engine: Engine, badge_id: int, *, actor_id: int) -> bool:
    """Delete a catalog entry and its awards.  Returns True if it existed."""
    with Session(engine) as session:
        badge = session.get(Badge, badge_id)
        if badge is None:
            return False
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.DELETE,
            target_table="badges",
            target_id=str(badge.id),
            before=_row_to_dict(badge),
            after=None,
        )
        session.delete(badge)
        session.commit()

    logger.info("Badge %d deleted by %d", badge_id, actor_id)
    return True
