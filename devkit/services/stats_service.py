"""
devkit.services.stats_service — Metric Snapshot Provider
=========================================================

Reads the per-user activity counters that badge criteria are evaluated
against, and records new activity against them.  The evaluator only ever
sees the immutable :class:`~devkit.engine.criteria.MetricSnapshot`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from devkit.database.models import UserStats
from devkit.engine.criteria import METRIC_FIELDS, MetricSnapshot
from devkit.errors import SnapshotUnavailable

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _to_snapshot(stats: UserStats) -> MetricSnapshot:
    return MetricSnapshot(
        templates_created=stats.templates_created or 0,
        copies_received=stats.copies_received or 0,
        commands_generated=stats.commands_generated or 0,
        likes_received=stats.likes_received or 0,
        total_views=stats.total_views or 0,
    )


def get_snapshot(session: Session, user_id: int) -> MetricSnapshot | None:
    """The user's counters, or ``None`` if no stats row exists."""
    stats = session.get(UserStats, user_id)
    if stats is None:
        return None
    return _to_snapshot(stats)


def load_snapshot(engine: Engine, user_id: int) -> MetricSnapshot:
    """Like :func:`get_snapshot` but raises when the user has no counters.

    Raises
    ------
    SnapshotUnavailable
    """
    with Session(engine) as session:
        snapshot = get_snapshot(session, user_id)
    if snapshot is None:
        raise SnapshotUnavailable(
            f"No activity stats recorded for user {user_id}",
            details={"user_id": user_id},
        )
    return snapshot


def record_activity(
    engine: Engine,
    user_id: int,
    metric: str,
    amount: int = 1,
) -> MetricSnapshot:
    """Atomically bump one counter and return the updated snapshot.

    Raises
    ------
    ValueError
        Unknown *metric* or negative *amount* (counters are monotonic).
    """
    field_name = METRIC_FIELDS.get(metric)
    if field_name is None:
        raise ValueError(f"Unknown metric {metric!r}")
    if amount < 0:
        raise ValueError(f"Activity amount must be >= 0, got {amount}")

    with Session(engine) as session:
        if session.get(UserStats, user_id) is None:
            session.add(UserStats(user_id=user_id))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                if session.get(UserStats, user_id) is None:
                    raise

        column = getattr(UserStats, field_name)
        session.execute(
            update(UserStats)
            .where(UserStats.user_id == user_id)
            .values({column: column + amount})
            .execution_options(synchronize_session=False)
        )
        session.commit()

        session.expire_all()
        snapshot = get_snapshot(session, user_id)

    logger.debug("User %d %s +%d", user_id, metric, amount)
    return snapshot
