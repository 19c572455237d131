"""
tests/test_sweep_cli.py — ``python -m devkit.sweep`` entry point
=================================================================
"""

from __future__ import annotations

from unittest.mock import patch

from sqlalchemy.orm import Session

from devkit.config import DevKitConfig
from devkit.database.models import UserBadge, UserProgress
from devkit.sweep import __main__ as sweep_main

from conftest import add_badge, add_user

CFG = DevKitConfig(
    site_name="DevKit",
    dashboard_port=8000,
    notification_workers=0,
    notification_timeout_seconds=2.0,
    progression_max_retries=5,
)


def _run(engine, argv):
    with patch.object(sweep_main, "load_config", return_value=CFG), \
         patch.object(sweep_main, "create_db_engine", return_value=engine), \
         patch.object(sweep_main, "init_db"):
        sweep_main.main(argv)


class TestSweepCommand:
    def test_reapply_pending_without_user_ids_repairs_everyone(self, db_engine):
        add_user(db_engine, 1, templates_created=5)
        add_user(db_engine, 2, templates_created=5)
        badge_id = add_badge(db_engine, "Creator", target=5, xp_bonus=40)
        with Session(db_engine) as session:
            for user_id in (1, 2):
                session.add(UserBadge(user_id=user_id, badge_id=badge_id, reward_applied=False))
            session.commit()

        _run(db_engine, ["--reapply-pending"])

        with Session(db_engine) as session:
            for user_id in (1, 2):
                assert session.get(UserProgress, user_id).experience == 40
                award = session.get(UserBadge, (user_id, badge_id))
                assert award.reward_applied is True
                assert award.notification_sent is True

    def test_sweep_awards_new_badges(self, db_engine):
        add_user(db_engine, 1, templates_created=5)
        badge_id = add_badge(db_engine, "Creator", target=5)

        _run(db_engine, ["--user-id", "1"])

        with Session(db_engine) as session:
            assert session.get(UserBadge, (1, badge_id)) is not None
