"""
devkit.sweep.__main__ — Entry point for ``python -m devkit.sweep``
===================================================================

Scheduled award sweep (cron / systemd timer):
1. Load .env (secrets) and config.yaml.
2. Create the SQLAlchemy engine and ensure tables exist.
3. Optionally retry XP bonuses left pending by earlier failures.
4. Run the award engine over every user with recorded activity.
5. Drain the notification pool and exit.

Run with::

    python -m devkit.sweep                      # every user
    python -m devkit.sweep --reapply-pending    # repair pending XP, then sweep
    python -m devkit.sweep --user-id 7 --reapply-pending
"""

from __future__ import annotations

import argparse
import logging
import os

from dotenv import load_dotenv

from devkit.config import load_config
from devkit.database.engine import create_db_engine, init_db
from devkit.services.award_service import reapply_all_pending_rewards, sweep
from devkit.services.notification_service import build_dispatcher

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("devkit")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="python -m devkit.sweep")
    parser.add_argument(
        "--user-id", type=int, action="append", dest="user_ids",
        help="Only sweep this user (repeatable).",
    )
    parser.add_argument(
        "--reapply-pending", action="store_true",
        help="Retry pending XP bonuses first (the --user-id users, or everyone with one).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Bootstrap and run one sweep."""
    args = _parse_args(argv)

    # 1. Environment + configuration.
    load_dotenv()
    cfg = load_config(os.getenv("DEVKIT_CONFIG", "config.yaml"))
    logger.info("Config loaded — Site: %s", cfg.site_name)

    # 2. Database.
    engine = create_db_engine()
    init_db(engine)

    dispatcher = build_dispatcher(engine, cfg)
    try:
        # 3. Pending rewards.
        if args.reapply_pending:
            repaired = reapply_all_pending_rewards(
                engine,
                dispatcher=dispatcher,
                user_ids=args.user_ids,
                max_retries=cfg.progression_max_retries,
            )
            logger.info(
                "Re-applied %d pending reward(s) for %d user(s)",
                sum(repaired.values()), len(repaired),
            )

        # 4. Sweep.
        results = sweep(
            engine,
            dispatcher=dispatcher,
            user_ids=args.user_ids,
            max_retries=cfg.progression_max_retries,
        )
        logger.info("Awarded %d badge(s) across %d user(s)", sum(results.values()), len(results))
    finally:
        # 5. Let queued notifications finish.
        dispatcher.shutdown(wait=True)


if __name__ == "__main__":
    main()
