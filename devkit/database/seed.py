"""
devkit.database.seed — Default Badge Catalog Seeder
====================================================

Starter badges read from ``seeds/badges.yaml`` so a fresh install has
something to award.

Idempotent — only inserts badges whose name isn't in the catalog yet.
Badges edited or deleted by admins are never overwritten.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from devkit.database.models import Badge
from devkit.engine.catalog import validate_new_badge

logger = logging.getLogger(__name__)

# Resolve the seeds directory relative to the project root
_SEEDS_DIR = Path(__file__).resolve().parent.parent.parent / "seeds"


def _load_yaml(path: Path) -> Any:
    if not path.exists():
        logger.warning("Seed file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def seed_default_badges(engine: Engine, path: Path | None = None) -> int:
    """Insert seed badges that don't exist yet.  Returns how many were added.

    Raises
    ------
    CatalogValidationError
        If a seed entry breaks a catalog rule.
    """
    data = _load_yaml(path or _SEEDS_DIR / "badges.yaml")
    entries = data.get("badges", []) if isinstance(data, dict) else []

    inserted = 0
    with Session(engine) as session:
        names = set(session.scalars(select(Badge.name)).all())
        for entry in entries:
            if entry.get("name") in names:
                continue
            values = validate_new_badge(entry, existing_names=names)
            session.add(Badge(**values))
            names.add(values["name"])
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default badges.", inserted)
    return inserted
