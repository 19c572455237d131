"""
devkit.constants — Shared Constants & Helpers
==============================================

Single source of truth for rarity bands, presentation constants and the
leveling formula.  Import from here instead of duplicating in engine,
services, and API.
"""

from __future__ import annotations

from devkit.database.models import Rarity

# ---------------------------------------------------------------------------
# Rarity ↔ points consistency (inclusive bands, checked at catalog time)
# ---------------------------------------------------------------------------
RARITY_POINT_BANDS: dict[str, tuple[int, int]] = {
    Rarity.COMMON: (0, 200),
    Rarity.RARE: (100, 800),
    Rarity.EPIC: (500, 2000),
    Rarity.LEGENDARY: (1000, 10000),
}

MAX_POINTS_REQUIRED = 10000
MAX_XP_BONUS = 5000

# ---------------------------------------------------------------------------
# Rarity presentation (used in notification titles)
# ---------------------------------------------------------------------------
RARITY_EMOJI: dict[str, str] = {
    Rarity.COMMON: "\U0001f949",     # 🥉
    Rarity.RARE: "\U0001f948",       # 🥈
    Rarity.EPIC: "\U0001f947",       # 🥇
    Rarity.LEGENDARY: "\U0001f451",  # 👑
}
DEFAULT_BADGE_EMOJI = "\U0001f3c5"   # 🏅

RARITY_ORDER: dict[str, int] = {
    Rarity.COMMON: 0,
    Rarity.RARE: 1,
    Rarity.EPIC: 2,
    Rarity.LEGENDARY: 3,
}


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
XP_PER_LEVEL = 100


def xp_for_level(level: int) -> int:
    """Experience needed to advance past *level* (``level * 100``)."""
    return level * XP_PER_LEVEL
