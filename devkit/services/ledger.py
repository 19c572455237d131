"""
devkit.services.ledger — Award Ledger & Progression Store
==========================================================

Persistence for the two pieces of per-user state the engine mutates:

- **Awards** (``user_badges``): the composite primary key on
  (user_id, badge_id) is the only at-most-once guarantee.  A concurrent
  duplicate insert loses with an IntegrityError and is reported as
  "lost the race" (``None``), never as a failure.
- **Progression** (``user_progress``): experience/level are written with a
  compare-and-swap on ``version`` so two concurrent XP grants can never
  overwrite each other.  When an XP grant pays out an award's bonus, the
  same transaction flips that award's ``reward_applied`` flag, so a bonus is
  applied at most once even across retries and crashes.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from devkit.database.models import Badge, ProgressionLog, Rarity, UserBadge, UserProgress
from devkit.engine.progression import ProgressionState, apply_experience
from devkit.errors import ProgressionUpdateFailed

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from devkit.engine.criteria import Evaluation

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5


# ---------------------------------------------------------------------------
# Award reads
# ---------------------------------------------------------------------------
def get_earned_badge_ids(session: Session, user_id: int) -> set[int]:
    """Set of badge IDs the user already holds."""
    rows = session.scalars(
        select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    ).all()
    return set(rows)


def list_awards(session: Session, user_id: int) -> list[UserBadge]:
    """Every award the user holds, newest first."""
    return list(session.scalars(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc(), UserBadge.badge_id)
    ).all())


def list_pending_rewards(session: Session, user_id: int) -> list[tuple[UserBadge, Badge]]:
    """Awards whose XP bonus has not been applied yet, oldest first."""
    rows = session.execute(
        select(UserBadge, Badge)
        .join(Badge, Badge.id == UserBadge.badge_id)
        .where(UserBadge.user_id == user_id, UserBadge.reward_applied.is_(False))
        .order_by(UserBadge.earned_at, UserBadge.badge_id)
    ).all()
    return [(row[0], row[1]) for row in rows]


def list_users_with_pending_rewards(session: Session) -> list[int]:
    return list(session.scalars(
        select(UserBadge.user_id)
        .where(UserBadge.reward_applied.is_(False))
        .distinct()
        .order_by(UserBadge.user_id)
    ).all())


# ---------------------------------------------------------------------------
# Award writes
# ---------------------------------------------------------------------------
def create_award(
    engine: Engine,
    *,
    user_id: int,
    badge: Badge,
    evaluation: Evaluation,
    granted_by: int | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> UserBadge | None:
    """Insert the award record for (*user_id*, *badge*).

    Returns the detached :class:`UserBadge`, or ``None`` when another writer
    inserted the same key first.  Any other storage error propagates.
    """
    award = UserBadge(
        user_id=user_id,
        badge_id=badge.id,
        earned_at=now or datetime.now(UTC),
        current_value=evaluation.current_value,
        target_value=evaluation.target_value,
        progress_percentage=100,
        notification_sent=False,
        featured=badge.rarity == Rarity.LEGENDARY,
        reward_applied=badge.xp_bonus <= 0,
        granted_by=granted_by,
        reason=reason,
    )
    with Session(engine, expire_on_commit=False) as session:
        session.add(award)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            if session.get(UserBadge, (user_id, badge.id)) is None:
                raise
            logger.info(
                "Badge %d for user %d was awarded concurrently; skipping",
                badge.id, user_id,
            )
            return None
        session.expunge(award)

    logger.info("Awarded badge %d (%s) to user %d", badge.id, badge.name, user_id)
    return award


def mark_notification_sent(engine: Engine, key: tuple[int, int]) -> None:
    user_id, badge_id = key
    with Session(engine) as session:
        session.execute(
            update(UserBadge)
            .where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
            .values(notification_sent=True)
            .execution_options(synchronize_session=False)
        )
        session.commit()


# ---------------------------------------------------------------------------
# Progression
# ---------------------------------------------------------------------------
def get_progress(session: Session, user_id: int) -> ProgressionState:
    """Stored progression, or the level-1 default for a user with none."""
    row = session.get(UserProgress, user_id)
    if row is None:
        return ProgressionState()
    return ProgressionState(experience=row.experience, level=row.level)


def list_progression_log(
    session: Session, user_id: int, *, limit: int = 50,
) -> list[ProgressionLog]:
    return list(session.scalars(
        select(ProgressionLog)
        .where(ProgressionLog.user_id == user_id)
        .order_by(ProgressionLog.earned_at.desc(), ProgressionLog.id.desc())
        .limit(limit)
    ).all())


def _ensure_progress_row(engine: Engine, user_id: int) -> None:
    """Lazily create the level-1 row; a concurrent creator winning is fine."""
    with Session(engine) as session:
        if session.get(UserProgress, user_id) is not None:
            return
        session.add(UserProgress(user_id=user_id, experience=0, level=1, version=0))
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            if session.get(UserProgress, user_id) is None:
                raise


def increment_experience(
    engine: Engine,
    user_id: int,
    delta: int,
    *,
    award_key: tuple[int, int] | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    now: datetime | None = None,
) -> ProgressionState | None:
    """Atomically add *delta* XP to the user's progression.

    Parameters
    ----------
    engine : SQLAlchemy engine.
    user_id : Recipient.
    delta : XP to add (>= 0).
    award_key : When given, the (user_id, badge_id) award whose bonus this
        grant pays out.  Its ``reward_applied`` flag is claimed in the same
        transaction; if it was already claimed nothing is written.
    max_retries : Compare-and-swap attempts before giving up.
    now : Timestamp for level-up journal entries.

    Returns
    -------
    The resulting :class:`ProgressionState` (``new_entries`` holds this
    update's level-ups), or ``None`` if *award_key*'s bonus was already
    applied.

    Raises
    ------
    ValueError
        If *delta* is negative.
    ProgressionUpdateFailed
        On a storage error, or when every attempt lost the version race.
    """
    if delta < 0:
        raise ValueError(f"Experience delta must be >= 0, got {delta}")
    now = now or datetime.now(UTC)

    try:
        _ensure_progress_row(engine, user_id)

        for attempt in range(1, max_retries + 1):
            with Session(engine) as session:
                row = session.get(UserProgress, user_id)
                seen_version = row.version
                new_state = apply_experience(
                    ProgressionState(experience=row.experience, level=row.level),
                    delta,
                    now=now,
                )

                if award_key is not None:
                    claimed = session.execute(
                        update(UserBadge)
                        .where(
                            UserBadge.user_id == award_key[0],
                            UserBadge.badge_id == award_key[1],
                            UserBadge.reward_applied.is_(False),
                        )
                        .values(reward_applied=True)
                        .execution_options(synchronize_session=False)
                    )
                    if claimed.rowcount != 1:
                        session.rollback()
                        logger.info(
                            "Reward for award %s already applied; skipping", award_key
                        )
                        return None

                swapped = session.execute(
                    update(UserProgress)
                    .where(
                        UserProgress.user_id == user_id,
                        UserProgress.version == seen_version,
                    )
                    .values(
                        experience=new_state.experience,
                        level=new_state.level,
                        version=UserProgress.version + 1,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if swapped.rowcount != 1:
                    session.rollback()
                    logger.debug(
                        "Progression version conflict for user %d (attempt %d/%d)",
                        user_id, attempt, max_retries,
                    )
                    continue

                for entry in new_state.new_entries:
                    session.add(ProgressionLog(
                        user_id=user_id,
                        type=entry.type,
                        earned_at=entry.earned_at,
                        data=entry.data,
                    ))
                session.commit()

            if new_state.leveled_up:
                logger.info(
                    "User %d leveled up to %d (+%d XP)", user_id, new_state.level, delta
                )
            return new_state
    except SQLAlchemyError as exc:
        raise ProgressionUpdateFailed(
            f"Could not update progression for user {user_id}",
            details={"user_id": user_id, "delta": delta},
        ) from exc

    raise ProgressionUpdateFailed(
        f"Progression for user {user_id} kept changing underneath; "
        f"gave up after {max_retries} attempts",
        details={"user_id": user_id, "delta": delta, "attempts": max_retries},
    )
