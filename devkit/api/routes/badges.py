"""
devkit.api.routes.badges — Catalog browsing, progress & evaluation
===================================================================
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from devkit.api.deps import get_current_user, get_dispatcher, get_engine, get_session
from devkit.database.engine import run_db
from devkit.database.models import Badge
from devkit.errors import BadgeNotFound
from devkit.services import award_service, catalog_service, ledger
from devkit.services.award_service import AwardOutcome, BadgeProgress
from devkit.services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/badges", tags=["badges"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------
def badge_to_dict(b: Badge) -> dict[str, Any]:
    return {
        "id": b.id,
        "name": b.name,
        "description": b.description,
        "badge_image": b.badge_image,
        "category": b.category,
        "criteria": b.criteria,
        "timeframe": b.timeframe,
        "points_required": b.points_required,
        "rarity": b.rarity,
        "xp_bonus": b.xp_bonus,
        "grants_profile_badge": b.grants_profile_badge,
        "special_privileges": b.special_privileges or [],
        "active": b.active,
        "created_at": b.created_at.isoformat() if b.created_at else None,
    }


def progress_to_dict(p: BadgeProgress) -> dict[str, Any]:
    return {
        "badge_id": p.badge_id,
        "name": p.name,
        "rarity": p.rarity,
        "category": p.category,
        "earned": p.earned,
        "earned_at": p.earned_at.isoformat() if p.earned_at else None,
        "current_value": p.current_value,
        "target_value": p.target_value,
        "progress_percentage": p.progress_percentage,
    }


def outcome_to_dict(o: AwardOutcome) -> dict[str, Any]:
    result = {
        "badge": badge_to_dict(o.badge),
        "earned_at": o.award.earned_at.isoformat(),
        "featured": o.award.featured,
        "reward_applied": o.award.reward_applied,
    }
    if o.progression is not None:
        result["progression"] = {
            "experience": o.progression.experience,
            "level": o.progression.level,
            "leveled_up": o.progression.leveled_up,
        }
    return result


class EvaluateRequest(BaseModel):
    user_id: int | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("")
def list_badges(
    category: str | None = None,
    rarity: str | None = None,
    sort: str = "created_at",
    order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(20, ge=1, le=100),
    page: int = Query(1, ge=1),
    user_id: int | None = None,
    include_progress: bool = False,
    session: Session = Depends(get_session),
    engine=Depends(get_engine),
):
    badges, total = catalog_service.list_badges(
        session,
        category=category,
        rarity=rarity,
        limit=limit,
        offset=(page - 1) * limit,
        sort=sort,
        order=order,
    )
    items = [badge_to_dict(b) for b in badges]

    if include_progress and user_id is not None:
        progress = {
            p.badge_id: progress_to_dict(p)
            for p in award_service.get_badge_progress(engine, user_id)
        }
        for item in items:
            item["progress"] = progress.get(item["id"])

    return {
        "badges": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.get("/progress")
def my_progress(
    badge_id: int | None = None,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    rows = award_service.get_badge_progress(engine, int(user["sub"]), badge_id=badge_id)
    return {"progress": [progress_to_dict(p) for p in rows]}


@router.patch("/evaluate")
async def evaluate(
    body: EvaluateRequest | None = None,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Run the award engine for the caller (or, for admins, any user)."""
    caller_id = int(user["sub"])
    target_id = body.user_id if body and body.user_id is not None else caller_id
    if target_id != caller_id and not user.get("is_admin"):
        raise HTTPException(403, "Not allowed to evaluate other users")

    outcomes = await run_db(
        award_service.evaluate_and_award, engine, target_id, dispatcher=dispatcher,
    )
    return {
        "user_id": target_id,
        "awarded": [outcome_to_dict(o) for o in outcomes],
    }


@router.get("/level")
def my_level(
    limit: int = Query(20, ge=1, le=100),
    user: dict = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Caller's experience, level and most recent progression log entries."""
    user_id = int(user["sub"])
    state = ledger.get_progress(session, user_id)
    log = ledger.list_progression_log(session, user_id, limit=limit)
    return {
        "experience": state.experience,
        "level": state.level,
        "xp_for_next_level": state.xp_for_next_level,
        "log": [
            {
                "type": entry.type,
                "earned_at": entry.earned_at.isoformat() if entry.earned_at else None,
                "data": entry.data,
            }
            for entry in log
        ],
    }


@router.get("/{badge_id}")
def get_badge(badge_id: int, session: Session = Depends(get_session)):
    badge = catalog_service.get_badge(session, badge_id)
    if badge is None or not badge.active:
        raise BadgeNotFound(f"Badge {badge_id} not found", details={"badge_id": badge_id})
    return badge_to_dict(badge)
