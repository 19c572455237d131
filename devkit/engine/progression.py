"""
devkit.engine.progression — Experience & Level Rollover
========================================================

Pure leveling math.  Storage (lazy row creation, compare-and-swap writes,
journal rows) lives in :mod:`devkit.services.ledger`.

Rollover rule::

    while experience >= level * 100:
        experience -= level * 100
        level += 1          # one ``levelUp`` log entry per level gained

A single large grant can therefore cross several levels at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from devkit.constants import xp_for_level

LEVEL_UP = "levelUp"


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One ``achievementsLog`` entry produced by an update."""

    type: str
    earned_at: datetime
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProgressionState:
    """Per-user experience/level.

    ``new_entries`` holds only the log entries produced by the update that
    returned this state; the full journal is persisted separately.
    """

    experience: int = 0
    level: int = 1
    new_entries: tuple[LogEntry, ...] = ()

    @property
    def xp_for_next_level(self) -> int:
        return xp_for_level(self.level)

    @property
    def leveled_up(self) -> bool:
        return any(e.type == LEVEL_UP for e in self.new_entries)


def apply_experience(
    state: ProgressionState | None,
    delta: int,
    *,
    now: datetime | None = None,
) -> ProgressionState:
    """Add *delta* XP to *state* and roll over into as many levels as it covers.

    Parameters
    ----------
    state : Current state, or ``None`` for a user with no progression yet.
    delta : XP to add.  Must be >= 0.
    now : Timestamp for level-up entries (defaults to ``datetime.now(UTC)``).

    Raises
    ------
    ValueError
        If *delta* is negative (experience never decreases) or the stored
        level is below 1.
    """
    if delta < 0:
        raise ValueError(f"Experience delta must be >= 0, got {delta}")
    if state is None:
        state = ProgressionState()
    if state.level < 1:
        raise ValueError(f"Level must be >= 1, got {state.level}")
    now = now or datetime.now(UTC)

    experience = state.experience + delta
    level = state.level
    entries: list[LogEntry] = []

    while experience >= xp_for_level(level):
        experience -= xp_for_level(level)
        level += 1
        entries.append(LogEntry(type=LEVEL_UP, earned_at=now, data={"newLevel": level}))

    return replace(state, experience=experience, level=level, new_entries=tuple(entries))
