"""
devkit.engine.catalog — Badge Catalog Validation
=================================================

Creation-time (and edit-time) rules for catalog entries.  Nothing here runs
during award evaluation: a badge that reached the catalog is trusted, and a
malformed one simply never matches (see :mod:`devkit.engine.criteria`).

Pure — callers supply the names already in the catalog.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from devkit.constants import MAX_POINTS_REQUIRED, MAX_XP_BONUS, RARITY_POINT_BANDS
from devkit.database.models import BadgeCategory, Rarity, Timeframe
from devkit.engine.criteria import Criterion
from devkit.errors import CatalogValidationError, DuplicateBadgeName, RarityPointsMismatch

BADGE_DEFAULTS: dict[str, Any] = {
    "description": None,
    "badge_image": None,
    "category": BadgeCategory.GENERAL.value,
    "timeframe": Timeframe.ALL_TIME.value,
    "points_required": 0,
    "rarity": Rarity.COMMON.value,
    "xp_bonus": 0,
    "grants_profile_badge": True,
    "special_privileges": [],
    "active": True,
}

BADGE_FIELDS: frozenset[str] = frozenset({"name", "criteria", *BADGE_DEFAULTS})

MAX_NAME_LENGTH = 100


def _name_key(name: str) -> str:
    return name.strip().casefold()


def _require_int(field_name: str, value: Any, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CatalogValidationError(f"{field_name} must be an integer")
    if not low <= value <= high:
        raise CatalogValidationError(
            f"{field_name} must be between {low} and {high}",
            details={"field": field_name, "min": low, "max": high},
        )
    return value


def _require_choice(field_name: str, value: Any, choices: type) -> str:
    allowed = {c.value for c in choices}
    if value not in allowed:
        raise CatalogValidationError(
            f"Invalid {field_name} {value!r}",
            details={"field": field_name, "allowed": sorted(allowed)},
        )
    return str(value)


def check_rarity_points(rarity: str, points_required: int) -> None:
    """Enforce the rarity ↔ points band.

    Raises
    ------
    RarityPointsMismatch
        If *points_required* lies outside the band for *rarity*.
    """
    low, high = RARITY_POINT_BANDS[rarity]
    if not low <= points_required <= high:
        raise RarityPointsMismatch(
            f"Points required for {rarity} badge should be between {low} and {high}",
            details={
                "rarity": rarity,
                "min": low,
                "max": high,
                "points_required": points_required,
            },
        )


def _clean_privileges(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise CatalogValidationError("special_privileges must be a list of strings")
    cleaned: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise CatalogValidationError("special_privileges entries must be non-empty strings")
        if item.strip() not in cleaned:
            cleaned.append(item.strip())
    return cleaned


def validate_new_badge(
    definition: Mapping[str, Any],
    *,
    existing_names: Iterable[str],
) -> dict[str, Any]:
    """Validate a catalog entry and return normalized column values.

    Parameters
    ----------
    definition : Badge fields (unknown keys are ignored, ``None`` means default).
    existing_names : Names already in the catalog (compared case-insensitively).

    Raises
    ------
    DuplicateBadgeName, RarityPointsMismatch, InvalidCriterionShape,
    CatalogValidationError
    """
    values: dict[str, Any] = dict(BADGE_DEFAULTS)
    values.update(
        {k: v for k, v in definition.items() if k in BADGE_FIELDS and v is not None}
    )

    name = values.get("name")
    if not isinstance(name, str) or not name.strip():
        raise CatalogValidationError("Badge name is required")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise CatalogValidationError(
            f"Badge name must be less than {MAX_NAME_LENGTH} characters"
        )
    if _name_key(name) in {_name_key(n) for n in existing_names}:
        raise DuplicateBadgeName(
            "Badge with this name already exists", details={"name": name}
        )
    values["name"] = name

    values["category"] = _require_choice("category", values["category"], BadgeCategory)
    values["timeframe"] = _require_choice("timeframe", values["timeframe"], Timeframe)
    values["rarity"] = _require_choice("rarity", values["rarity"], Rarity)
    values["points_required"] = _require_int(
        "points_required", values["points_required"], 0, MAX_POINTS_REQUIRED
    )
    check_rarity_points(values["rarity"], values["points_required"])

    values["criteria"] = Criterion.parse(values.get("criteria")).to_dict()
    values["xp_bonus"] = _require_int("xp_bonus", values["xp_bonus"], 0, MAX_XP_BONUS)
    values["special_privileges"] = _clean_privileges(values["special_privileges"])
    values["grants_profile_badge"] = bool(values["grants_profile_badge"])
    values["active"] = bool(values["active"])
    return values


def validate_badge_update(
    current: Mapping[str, Any],
    changes: Mapping[str, Any],
    *,
    other_names: Iterable[str],
) -> dict[str, Any]:
    """Re-validate an edited catalog entry as a whole.

    *current* holds the stored column values, *changes* the requested edits
    and *other_names* the names of every other badge.  Returns the full set
    of normalized values.
    """
    merged = {k: v for k, v in current.items() if k in BADGE_FIELDS}
    merged.update({k: v for k, v in changes.items() if k in BADGE_FIELDS})
    return validate_new_badge(merged, existing_names=other_names)
