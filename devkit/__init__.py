"""
DevKit Achievements — Badge Evaluation & Progression Engine
============================================================
Decides which badges a DevKit user has newly earned from their activity
counters (templates created, copies and likes received, commands generated,
views), awards each badge at most once, pays out its XP bonus into the
user's experience/level progression, and notifies the user.

Package layout::

    devkit/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Rarity bands, emoji, leveling formula
    ├── errors.py          # Domain exception hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models
    │   └── seed.py        # Starter badge catalog
    ├── engine/
    │   ├── criteria.py    # Criterion parsing + operator evaluation (pure)
    │   ├── progression.py # XP / level rollover (pure)
    │   └── catalog.py     # Catalog validation rules (pure)
    ├── services/
    │   ├── stats_service.py        # Metric snapshots
    │   ├── catalog_service.py      # Catalog reads + audited admin writes
    │   ├── ledger.py               # Award records + CAS progression store
    │   ├── award_service.py        # Evaluate-and-award, manual awards, sweep
    │   └── notification_service.py # Best-effort award notifications
    ├── sweep/
    │   └── __main__.py    # python -m devkit.sweep
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine/config/auth dependencies
        └── routes/        # Badges, admin, notifications
"""

__version__ = "0.1.0"
