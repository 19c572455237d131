"""
devkit.services.award_service — Award Engine
=============================================

Orchestrates one evaluation pass for a user:

1. Load the user's metric snapshot (none → nothing to award)
2. Load the active catalog (id order) and the badges already earned
3. Evaluate every not-yet-earned badge
4. Insert an award record for each newly met badge
5. For each award this caller actually created: apply the XP bonus exactly
   once and dispatch a notification (best effort)

Also hosts the admin "award directly" path, per-badge progress reporting,
retry of rewards left pending by a failed progression update, and the
all-users sweep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from devkit.database.models import AdminActionType, Badge, User, UserBadge, UserStats
from devkit.engine.criteria import Criterion, Evaluation, evaluate
from devkit.engine.progression import ProgressionState
from devkit.errors import (
    AlreadyAwarded,
    BadgeNotFound,
    CriteriaNotMet,
    ProgressionUpdateFailed,
    SnapshotUnavailable,
    UserNotFound,
)
from devkit.services.catalog_service import _row_to_dict, list_active_badges, log_admin_action
from devkit.services.ledger import (
    DEFAULT_MAX_RETRIES,
    create_award,
    get_earned_badge_ids,
    increment_experience,
    list_awards,
    list_pending_rewards,
    list_users_with_pending_rewards,
)
from devkit.services.notification_service import DatabaseNotifier, NotificationDispatcher
from devkit.services.stats_service import get_snapshot, load_snapshot

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass
class AwardOutcome:
    """A badge newly awarded by this call."""

    badge: Badge
    award: UserBadge
    progression: ProgressionState | None = None


@dataclass
class BadgeProgress:
    badge_id: int
    name: str
    rarity: str
    category: str
    earned: bool
    earned_at: datetime | None
    current_value: float
    target_value: float
    progress_percentage: int


def _default_dispatcher(engine: Engine) -> NotificationDispatcher:
    return NotificationDispatcher(engine, DatabaseNotifier(engine))


# ---------------------------------------------------------------------------
# Shared award path
# ---------------------------------------------------------------------------
def _grant(
    engine: Engine,
    user_id: int,
    badge: Badge,
    evaluation: Evaluation,
    *,
    dispatcher: NotificationDispatcher,
    granted_by: int | None = None,
    reason: str | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    now: datetime | None = None,
) -> AwardOutcome | None:
    """Create the award, pay its bonus and notify.  ``None`` if the race was lost."""
    award = create_award(
        engine,
        user_id=user_id,
        badge=badge,
        evaluation=evaluation,
        granted_by=granted_by,
        reason=reason,
        now=now,
    )
    if award is None:
        return None

    progression = None
    if badge.xp_bonus > 0:
        try:
            progression = increment_experience(
                engine,
                user_id,
                badge.xp_bonus,
                award_key=award.key,
                max_retries=max_retries,
                now=now,
            )
        except ProgressionUpdateFailed as exc:
            exc.details.setdefault("badge_id", badge.id)
            exc.details.setdefault("user_id", user_id)
            logger.error(
                "Badge %d awarded to user %d but its XP bonus is pending: %s",
                badge.id, user_id, exc.message,
            )
            raise
        award.reward_applied = True

    dispatcher.dispatch(award, badge)
    return AwardOutcome(badge=badge, award=award, progression=progression)


# ---------------------------------------------------------------------------
# Evaluate & award
# ---------------------------------------------------------------------------
def evaluate_and_award(
    engine: Engine,
    user_id: int,
    *,
    dispatcher: NotificationDispatcher | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    now: datetime | None = None,
) -> list[AwardOutcome]:
    """Award every active badge the user newly qualifies for.

    Safe to call concurrently for the same user: each badge is awarded, and
    its XP applied, at most once across all callers.  Only the badges this
    call actually awarded are returned.

    Raises
    ------
    ProgressionUpdateFailed
        After the whole pass, if any award's XP bonus could not be applied.
        Every other met badge is still awarded and notified.  The failed
        awards keep ``reward_applied`` false for :func:`reapply_pending_rewards`;
        ``details`` lists ``failed_badge_ids`` and ``awarded_badge_ids``.
    """
    dispatcher = dispatcher or _default_dispatcher(engine)
    now = now or datetime.now(UTC)

    try:
        snapshot = load_snapshot(engine, user_id)
    except SnapshotUnavailable:
        logger.debug("No stats for user %d; nothing to evaluate", user_id)
        return []

    with Session(engine) as session:
        badges = list_active_badges(session)
        earned = get_earned_badge_ids(session, user_id)
        session.expunge_all()

    outcomes: list[AwardOutcome] = []
    failed: list[int] = []
    for badge in badges:
        if badge.id in earned:
            continue
        evaluation = evaluate(Criterion.from_dict(badge.criteria), snapshot)
        if not evaluation.met:
            logger.debug(
                "User %d: badge %d not met (%d%%)",
                user_id, badge.id, evaluation.progress_percentage,
            )
            continue
        try:
            outcome = _grant(
                engine, user_id, badge, evaluation,
                dispatcher=dispatcher, max_retries=max_retries, now=now,
            )
        except ProgressionUpdateFailed:
            failed.append(badge.id)
            continue
        if outcome is not None:
            outcomes.append(outcome)

    if failed:
        raise ProgressionUpdateFailed(
            f"XP bonus pending for {len(failed)} badge(s) awarded to user {user_id}",
            details={
                "user_id": user_id,
                "failed_badge_ids": failed,
                "awarded_badge_ids": [o.badge.id for o in outcomes],
            },
        )
    return outcomes


def award_directly(
    engine: Engine,
    user_id: int,
    badge_id: int,
    *,
    override_criteria: bool = False,
    reason: str | None = None,
    admin_id: int | None = None,
    dispatcher: NotificationDispatcher | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    now: datetime | None = None,
) -> AwardOutcome:
    """Award one specific badge, optionally bypassing its criterion.

    Raises
    ------
    BadgeNotFound
        Badge doesn't exist or is inactive.
    UserNotFound
    AlreadyAwarded
        The user already holds the badge (including losing a concurrent race).
    CriteriaNotMet
        Criterion not met (or no snapshot) and *override_criteria* is false.
        Nothing is written.
    ProgressionUpdateFailed
    """
    dispatcher = dispatcher or _default_dispatcher(engine)
    now = now or datetime.now(UTC)

    with Session(engine) as session:
        badge = session.get(Badge, badge_id)
        if badge is None or not badge.active:
            raise BadgeNotFound(
                f"Badge {badge_id} not found", details={"badge_id": badge_id}
            )
        if session.get(User, user_id) is None:
            raise UserNotFound(
                f"User {user_id} not found", details={"user_id": user_id}
            )
        if session.get(UserBadge, (user_id, badge_id)) is not None:
            raise AlreadyAwarded(
                "User already has this badge",
                details={"user_id": user_id, "badge_id": badge_id},
            )
        snapshot = get_snapshot(session, user_id)
        session.expunge(badge)

    criterion = Criterion.from_dict(badge.criteria)
    if snapshot is None:
        evaluation = Evaluation(
            met=False, current_value=0, target_value=0, progress_percentage=0
        )
    else:
        evaluation = evaluate(criterion, snapshot)

    if not evaluation.met and not override_criteria:
        raise CriteriaNotMet(
            "User does not meet the criteria for this badge",
            details={
                "user_id": user_id,
                "badge_id": badge_id,
                "current_value": evaluation.current_value,
                "target_value": evaluation.target_value,
                "progress_percentage": evaluation.progress_percentage,
            },
        )

    outcome = _grant(
        engine, user_id, badge, evaluation,
        dispatcher=dispatcher,
        granted_by=admin_id,
        reason=reason,
        max_retries=max_retries,
        now=now,
    )
    if outcome is None:
        raise AlreadyAwarded(
            "User already has this badge",
            details={"user_id": user_id, "badge_id": badge_id},
        )

    if admin_id is not None:
        with Session(engine) as session:
            log_admin_action(
                session,
                actor_id=admin_id,
                action_type=AdminActionType.MANUAL_AWARD,
                target_table="user_badges",
                target_id=f"{user_id}:{badge_id}",
                before=None,
                after=_row_to_dict(outcome.award),
                reason=reason,
            )
            session.commit()

    return outcome


# ---------------------------------------------------------------------------
# Progress & repair
# ---------------------------------------------------------------------------
def get_badge_progress(
    engine: Engine,
    user_id: int,
    *,
    badge_id: int | None = None,
) -> list[BadgeProgress]:
    """Per-badge progress for the active catalog (or one badge).

    Earned badges report the values frozen on their award record.  A user
    with no stats row gets an empty list.
    """
    with Session(engine) as session:
        snapshot = get_snapshot(session, user_id)
        if snapshot is None:
            return []
        badges = list_active_badges(session)
        awards = {a.badge_id: a for a in list_awards(session, user_id)}

        result: list[BadgeProgress] = []
        for badge in badges:
            if badge_id is not None and badge.id != badge_id:
                continue
            award = awards.get(badge.id)
            if award is not None:
                current, target, pct = (
                    award.current_value, award.target_value, award.progress_percentage
                )
            else:
                ev = evaluate(Criterion.from_dict(badge.criteria), snapshot)
                current, target, pct = ev.current_value, ev.target_value, ev.progress_percentage
            result.append(BadgeProgress(
                badge_id=badge.id,
                name=badge.name,
                rarity=badge.rarity,
                category=badge.category,
                earned=award is not None,
                earned_at=award.earned_at if award is not None else None,
                current_value=current,
                target_value=target,
                progress_percentage=pct,
            ))
        return result


def reapply_pending_rewards(
    engine: Engine,
    user_id: int,
    *,
    dispatcher: NotificationDispatcher | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> int:
    """Apply XP bonuses still pending after a failed progression update.

    Each award's ``reward_applied`` flag is claimed atomically with its XP,
    so running this concurrently with itself (or with the award path)
    never double-applies.  Awards whose notification was held back by the
    failure are dispatched once their bonus lands.  Returns how many
    bonuses this call applied.
    """
    dispatcher = dispatcher or _default_dispatcher(engine)
    with Session(engine) as session:
        pending = list_pending_rewards(session, user_id)
        session.expunge_all()

    applied = 0
    for award, badge in pending:
        if increment_experience(
            engine, user_id, badge.xp_bonus, award_key=award.key, max_retries=max_retries,
        ) is None:
            continue
        applied += 1
        award.reward_applied = True
        if not award.notification_sent:
            dispatcher.dispatch(award, badge)

    if applied:
        logger.info("Re-applied %d pending reward(s) for user %d", applied, user_id)
    return applied


def reapply_all_pending_rewards(
    engine: Engine,
    *,
    dispatcher: NotificationDispatcher | None = None,
    user_ids: list[int] | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> dict[int, int]:
    """Run :func:`reapply_pending_rewards` for the given users, or for every
    user holding an award with an unapplied bonus.

    Returns ``{user_id: bonuses_applied}``; a failing user is logged and
    skipped.
    """
    dispatcher = dispatcher or _default_dispatcher(engine)
    if user_ids is None:
        with Session(engine) as session:
            user_ids = list_users_with_pending_rewards(session)

    results: dict[int, int] = {}
    for user_id in user_ids:
        try:
            results[user_id] = reapply_pending_rewards(
                engine, user_id, dispatcher=dispatcher, max_retries=max_retries,
            )
        except ProgressionUpdateFailed as exc:
            logger.error("Reward repair for user %d failed: %s", user_id, exc.message)
    return results


def sweep(
    engine: Engine,
    *,
    dispatcher: NotificationDispatcher | None = None,
    user_ids: list[int] | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> dict[int, int]:
    """Run :func:`evaluate_and_award` for every user with recorded activity.

    A failure for one user is logged and does not stop the sweep.  Returns
    ``{user_id: awards_granted}`` for the users that were processed.
    """
    dispatcher = dispatcher or _default_dispatcher(engine)
    if user_ids is None:
        with Session(engine) as session:
            user_ids = list(session.scalars(
                select(UserStats.user_id).order_by(UserStats.user_id)
            ).all())

    results: dict[int, int] = {}
    for user_id in user_ids:
        try:
            outcomes = evaluate_and_award(
                engine, user_id, dispatcher=dispatcher, max_retries=max_retries,
            )
        except ProgressionUpdateFailed as exc:
            logger.error("Sweep for user %d left rewards pending: %s", user_id, exc.message)
            results[user_id] = len(exc.details.get("awarded_badge_ids", []))
            continue
        except Exception:
            logger.exception("Sweep failed for user %d", user_id)
            continue
        results[user_id] = len(outcomes)

    logger.info(
        "Sweep complete: %d user(s), %d award(s)",
        len(results), sum(results.values()),
    )
    return results
