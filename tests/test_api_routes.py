"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Auth guards, domain-error mapping and the main badge flows through the
HTTP surface, using the FastAPI TestClient against in-memory SQLite.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from devkit.api.deps import get_dispatcher, get_engine
from devkit.api.main import app
from devkit.services.notification_service import NotificationDispatcher

from conftest import add_badge, add_user, make_token


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def client(db_engine, notifier):
    """TestClient wired to the test database and a mock notifier."""
    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(db_engine, notifier)
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _user(user_id: int = 1) -> dict:
    return _auth(make_token(str(user_id), f"user{user_id}"))


def _admin(user_id: int = 99) -> dict:
    return _auth(make_token(str(user_id), "admin", is_admin=True))


BADGE_BODY = {
    "name": "Template Author",
    "description": "Publish three templates",
    "category": "creator",
    "rarity": "common",
    "points_required": 100,
    "xp_bonus": 150,
    "criteria": {"metric": "templatesCreated", "operator": "gte", "target": 3},
}


# ===========================================================================
# Health & auth guards
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAuthGuards:
    @pytest.mark.parametrize("method,path", [
        ("get", "/api/admin/badges"),
        ("get", "/api/admin/badges/stats"),
        ("post", "/api/admin/progress/1/reapply"),
    ])
    def test_admin_routes_require_admin(self, client, method, path):
        assert getattr(client, method)(path).status_code == 401
        assert getattr(client, method)(path, headers=_user()).status_code == 403
        bad = {"Authorization": "Bearer not-a-jwt"}
        assert getattr(client, method)(path, headers=bad).status_code == 401

    def test_progress_requires_login(self, client):
        assert client.get("/api/badges/progress").status_code == 401

    def test_cannot_evaluate_other_user(self, client):
        resp = client.patch("/api/badges/evaluate", json={"user_id": 2}, headers=_user(1))
        assert resp.status_code == 403


# ===========================================================================
# Catalog admin
# ===========================================================================
class TestAdminCatalog:
    def test_create_and_list(self, client):
        resp = client.post("/api/admin/badges", json=BADGE_BODY, headers=_admin())
        assert resp.status_code == 201
        created = resp.json()
        assert created["name"] == "Template Author"
        assert created["criteria"]["operator"] == "gte"

        listing = client.get("/api/badges").json()
        assert [b["id"] for b in listing["badges"]] == [created["id"]]
        assert listing["pagination"]["total"] == 1

    def test_rarity_points_mismatch_is_400(self, client):
        body = {**BADGE_BODY, "points_required": 500}
        resp = client.post("/api/admin/badges", json=body, headers=_admin())
        assert resp.status_code == 400
        payload = resp.json()
        assert payload["code"] == "RarityPointsMismatch"
        assert payload["details"]["max"] == 200

    def test_bad_between_is_400(self, client):
        body = {
            **BADGE_BODY,
            "criteria": {"metric": "totalViews", "operator": "between", "target": [9, 1]},
        }
        resp = client.post("/api/admin/badges", json=body, headers=_admin())
        assert resp.status_code == 400
        assert resp.json()["code"] == "InvalidCriterionShape"

    def test_duplicate_is_400(self, client):
        client.post("/api/admin/badges", json=BADGE_BODY, headers=_admin())
        resp = client.post(
            "/api/admin/badges", json={**BADGE_BODY, "name": "template author"},
            headers=_admin(),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "DuplicateBadgeName"

    def test_update_and_delete(self, client):
        badge_id = client.post("/api/admin/badges", json=BADGE_BODY, headers=_admin()).json()["id"]

        resp = client.patch(
            f"/api/admin/badges/{badge_id}", json={"xp_bonus": 300}, headers=_admin(),
        )
        assert resp.status_code == 200
        assert resp.json()["xp_bonus"] == 300

        assert client.patch(
            f"/api/admin/badges/{badge_id}", json={}, headers=_admin(),
        ).status_code == 400
        assert client.delete(f"/api/admin/badges/{badge_id}", headers=_admin()).status_code == 204
        resp = client.delete(f"/api/admin/badges/{badge_id}", headers=_admin())
        assert resp.status_code == 404
        assert resp.json()["code"] == "BadgeNotFound"

    def test_stats(self, client):
        client.post("/api/admin/badges", json=BADGE_BODY, headers=_admin())
        stats = client.get("/api/admin/badges/stats", headers=_admin()).json()
        assert stats["total"] == 1
        assert stats["by_category"] == {"creator": 1}


# ===========================================================================
# Evaluation, progress, manual awards
# ===========================================================================
class TestAwardFlows:
    def test_evaluate_awards_and_reports_progress(self, client, db_engine, notifier):
        add_user(db_engine, 1, templates_created=3)
        earned = add_badge(db_engine, "Author", target=3, xp_bonus=120)
        open_id = add_badge(db_engine, "Prolific", target=10)

        resp = client.patch("/api/badges/evaluate", headers=_user(1))
        assert resp.status_code == 200
        body = resp.json()
        assert [a["badge"]["id"] for a in body["awarded"]] == [earned]
        assert body["awarded"][0]["progression"] == {
            "experience": 20, "level": 2, "leveled_up": True,
        }
        notifier.notify.assert_called_once()

        again = client.patch("/api/badges/evaluate", headers=_user(1)).json()
        assert again["awarded"] == []

        progress = client.get("/api/badges/progress", headers=_user(1)).json()["progress"]
        by_id = {p["badge_id"]: p for p in progress}
        assert by_id[earned]["earned"] is True
        assert by_id[open_id]["progress_percentage"] == 30

    def test_level_reports_journal(self, client, db_engine):
        add_user(db_engine, 1, templates_created=3)
        add_badge(db_engine, "Author", target=3, xp_bonus=120)

        fresh = client.get("/api/badges/level", headers=_user(1)).json()
        assert fresh == {"experience": 0, "level": 1, "xp_for_next_level": 100, "log": []}

        client.patch("/api/badges/evaluate", headers=_user(1))
        level = client.get("/api/badges/level", headers=_user(1)).json()
        assert (level["experience"], level["level"], level["xp_for_next_level"]) == (20, 2, 200)
        assert [(e["type"], e["data"]) for e in level["log"]] == [("levelUp", {"newLevel": 2})]

    def test_badge_detail(self, client, db_engine):
        badge_id = add_badge(db_engine, "Author", target=3)
        hidden = add_badge(db_engine, "Retired", active=False)
        assert client.get(f"/api/badges/{badge_id}").json()["name"] == "Author"
        resp = client.get(f"/api/badges/{hidden}")
        assert resp.status_code == 404
        assert resp.json()["code"] == "BadgeNotFound"

    def test_admin_can_evaluate_other_user(self, client, db_engine):
        add_user(db_engine, 5, templates_created=3)
        add_badge(db_engine, "Author", target=3)
        resp = client.patch("/api/badges/evaluate", json={"user_id": 5}, headers=_admin())
        assert resp.status_code == 200
        assert resp.json()["user_id"] == 5
        assert len(resp.json()["awarded"]) == 1

    def test_catalog_with_progress(self, client, db_engine):
        add_user(db_engine, 1, templates_created=1)
        badge_id = add_badge(db_engine, "Author", target=4)
        resp = client.get("/api/badges", params={"user_id": 1, "include_progress": True})
        item = resp.json()["badges"][0]
        assert item["id"] == badge_id
        assert item["progress"]["progress_percentage"] == 25

    def test_manual_award_criteria_not_met(self, client, db_engine):
        add_user(db_engine, 1, templates_created=0)
        badge_id = add_badge(db_engine, "Author", target=3)
        resp = client.post(
            "/api/admin/badges/award",
            json={"user_id": 1, "badge_id": badge_id},
            headers=_admin(),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "CriteriaNotMet"

    def test_manual_award_override_then_conflict(self, client, db_engine):
        add_user(db_engine, 1)
        badge_id = add_badge(db_engine, "Author", target=3)
        body = {"user_id": 1, "badge_id": badge_id, "override_criteria": True, "reason": "Hackathon"}

        resp = client.post("/api/admin/badges/award", json=body, headers=_admin())
        assert resp.status_code == 201
        assert resp.json()["badge"]["id"] == badge_id

        resp = client.post("/api/admin/badges/award", json=body, headers=_admin())
        assert resp.status_code == 409
        assert resp.json()["code"] == "AlreadyAwarded"

    def test_manual_award_unknown_user_and_badge(self, client, db_engine):
        badge_id = add_badge(db_engine, "Author", target=3)
        resp = client.post(
            "/api/admin/badges/award",
            json={"user_id": 404, "badge_id": badge_id, "override_criteria": True},
            headers=_admin(),
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "UserNotFound"

        add_user(db_engine, 1)
        resp = client.post(
            "/api/admin/badges/award", json={"user_id": 1, "badge_id": 999}, headers=_admin(),
        )
        assert resp.status_code == 404

    def test_reapply_with_nothing_pending(self, client, db_engine):
        add_user(db_engine, 1)
        resp = client.post("/api/admin/progress/1/reapply", headers=_admin())
        assert resp.json() == {"user_id": 1, "applied": 0}


# ===========================================================================
# Notifications inbox
# ===========================================================================
class TestNotificationRoutes:
    def test_list_and_mark_read(self, client, db_engine):
        from devkit.services.notification_service import DatabaseNotifier

        add_user(db_engine, 1, templates_created=3)
        add_badge(db_engine, "Author", target=3)
        app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(
            db_engine, DatabaseNotifier(db_engine),
        )
        client.patch("/api/badges/evaluate", headers=_user(1))

        notes = client.get("/api/notifications", headers=_user(1)).json()["notifications"]
        assert len(notes) == 1
        assert notes[0]["action_url"].startswith("/profile?tab=badges&highlight=")

        resp = client.put(
            "/api/notifications/read",
            json={"notification_ids": [notes[0]["id"]]},
            headers=_user(2),
        )
        assert resp.json() == {"updated": 0}

        resp = client.put(
            "/api/notifications/read",
            json={"notification_ids": [notes[0]["id"]]},
            headers=_user(1),
        )
        assert resp.json() == {"updated": 1}
        unread = client.get(
            "/api/notifications", params={"unread_only": True}, headers=_user(1),
        ).json()["notifications"]
        assert unread == []
