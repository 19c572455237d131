"""
devkit.api.routes.notifications — In-app notification inbox
============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from devkit.api.deps import get_current_user, get_engine
from devkit.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


class MarkReadRequest(BaseModel):
    notification_ids: list[int]


@router.get("")
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    rows = notification_service.list_notifications(
        engine, int(user["sub"]), unread_only=unread_only, limit=limit,
    )
    return {
        "notifications": [
            {
                "id": n.id,
                "type": n.type,
                "title": n.title,
                "message": n.message,
                "data": n.data,
                "action_url": n.action_url,
                "is_read": n.is_read,
                "created_at": n.created_at.isoformat() if n.created_at else None,
            }
            for n in rows
        ]
    }


@router.put("/read")
def mark_read(
    body: MarkReadRequest,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    updated = notification_service.mark_read(engine, int(user["sub"]), body.notification_ids)
    return {"updated": updated}
