"""
devkit.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for deployment settings (identity, API port,
notification delivery, progression retry limit).  Secrets and connection
strings (``DATABASE_URL``, ``JWT_SECRET``) come from the environment, never
from this file.

Usage::

    from devkit.config import load_config

    cfg = load_config()               # reads ./config.yaml by default
    print(cfg.site_name)              # "DevKit"
    print(cfg.notification_workers)   # 2
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True, slots=True)
class DevKitConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    site_name: str

    # API
    dashboard_port: int

    # Notifications
    notification_workers: int  # 0 = deliver inline
    notification_timeout_seconds: float

    # Progression
    progression_max_retries: int

    # Optional
    notification_webhook_url: str | None = None


def load_config(path: str | Path = "config.yaml") -> DevKitConfig:
    """Read *path* and return a :class:`DevKitConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If a numeric setting is out of range.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    cfg = DevKitConfig(
        site_name=raw["site_name"],
        dashboard_port=int(raw["dashboard_port"]),
        notification_workers=int(raw["notification_workers"]),
        notification_timeout_seconds=float(raw["notification_timeout_seconds"]),
        progression_max_retries=int(raw["progression_max_retries"]),
        notification_webhook_url=raw.get("notification_webhook_url") or None,
    )
    if cfg.notification_workers < 0:
        raise ValueError("notification_workers must be >= 0")
    if cfg.progression_max_retries < 1:
        raise ValueError("progression_max_retries must be >= 1")
    return cfg
