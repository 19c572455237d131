"""
devkit.api.routes.admin — Badge catalog admin, manual awards & reward repair
=============================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from devkit.api.deps import get_current_admin, get_dispatcher, get_engine, get_session
from devkit.api.routes.badges import badge_to_dict, outcome_to_dict
from devkit.errors import BadgeNotFound
from devkit.services import award_service, catalog_service
from devkit.services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class CriterionBody(BaseModel):
    metric: str
    operator: str
    target: float | list[float]


class BadgeCreate(BaseModel):
    name: str
    description: str | None = None
    badge_image: str | None = None
    category: str = "general"
    criteria: CriterionBody
    timeframe: str = "allTime"
    points_required: int = 0
    rarity: str = "common"
    xp_bonus: int = 0
    grants_profile_badge: bool = True
    special_privileges: list[str] = Field(default_factory=list)
    active: bool = True


class BadgeUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    badge_image: str | None = None
    category: str | None = None
    criteria: CriterionBody | None = None
    timeframe: str | None = None
    points_required: int | None = None
    rarity: str | None = None
    xp_bonus: int | None = None
    grants_profile_badge: bool | None = None
    special_privileges: list[str] | None = None
    active: bool | None = None


class AwardRequest(BaseModel):
    user_id: int
    badge_id: int
    reason: str | None = Field(default=None, max_length=200)
    override_criteria: bool = False


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_all_badges(
    category: str | None = None,
    rarity: str | None = None,
    include_inactive: bool = True,
    admin: dict = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    badges, total = catalog_service.list_badges(
        session,
        category=category,
        rarity=rarity,
        include_inactive=include_inactive,
        limit=1000,
        sort="created_at",
        order="desc",
    )
    return {"badges": [badge_to_dict(b) for b in badges], "total": total}


@router.get("/badges/stats")
def badge_stats(
    admin: dict = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    return catalog_service.catalog_stats(session)


@router.post("/badges", status_code=201)
def create_badge(
    body: BadgeCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    badge = catalog_service.create_badge(
        engine, body.model_dump(), actor_id=int(admin["sub"]),
    )
    return badge_to_dict(badge)


@router.patch("/badges/{badge_id}")
def update_badge(
    badge_id: int,
    body: BadgeUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    badge = catalog_service.update_badge(
        engine, badge_id, changes, actor_id=int(admin["sub"]),
    )
    if badge is None:
        raise BadgeNotFound(f"Badge {badge_id} not found", details={"badge_id": badge_id})
    return badge_to_dict(badge)


@router.delete("/badges/{badge_id}", status_code=204)
def delete_badge(
    badge_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    if not catalog_service.delete_badge(engine, badge_id, actor_id=int(admin["sub"])):
        raise BadgeNotFound(f"Badge {badge_id} not found", details={"badge_id": badge_id})
    return None


# ---------------------------------------------------------------------------
# Awards & progression repair
# ---------------------------------------------------------------------------
@router.post("/badges/award", status_code=201)
def award_badge(
    body: AwardRequest,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    outcome = award_service.award_directly(
        engine,
        body.user_id,
        body.badge_id,
        override_criteria=body.override_criteria,
        reason=body.reason,
        admin_id=int(admin["sub"]),
        dispatcher=dispatcher,
    )
    return {"user_id": body.user_id, **outcome_to_dict(outcome)}


@router.post("/progress/{user_id}/reapply")
def reapply_rewards(
    user_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    applied = award_service.reapply_pending_rewards(engine, user_id, dispatcher=dispatcher)
    return {"user_id": user_id, "applied": applied}
