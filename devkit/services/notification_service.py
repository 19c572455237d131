"""
devkit.services.notification_service — Award Notifications
============================================================

Best-effort delivery of "badge earned" notifications.  An award is already
committed by the time anything here runs, so a delivery failure is logged
and swallowed, never propagated.

Notifiers:
- :class:`DatabaseNotifier` — in-app ``notifications`` rows
- :class:`WebhookNotifier`  — JSON POST to an external endpoint (httpx)
- :class:`CompositeNotifier` — fan-out to several of the above

:class:`NotificationDispatcher` runs a notifier inline or on a thread pool
and records ``notification_sent`` on success.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

import httpx
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from devkit.constants import DEFAULT_BADGE_EMOJI, RARITY_EMOJI
from devkit.database.models import Badge, Notification, UserBadge
from devkit.errors import NotificationDispatchFailed
from devkit.services.ledger import mark_notification_sent

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from devkit.config import DevKitConfig

logger = logging.getLogger(__name__)

BADGE_EARNED = "badge_earned"


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------
def build_badge_notification(
    badge: Badge, *, earned_at: datetime | None = None,
) -> dict[str, Any]:
    """Title/message/data for a newly earned *badge*."""
    earned_at = earned_at or datetime.now(UTC)
    emoji = RARITY_EMOJI.get(badge.rarity, DEFAULT_BADGE_EMOJI)
    message = f'Congratulations! You\'ve earned the "{badge.name}" badge.'
    if badge.description:
        message = f"{message} {badge.description}"
    return {
        "type": BADGE_EARNED,
        "title": f"{emoji} New Badge Earned!",
        "message": message,
        "data": {
            "badgeId": badge.id,
            "badgeName": badge.name,
            "badgeImage": badge.badge_image,
            "rarityLevel": badge.rarity,
            "category": badge.category,
            "xpBonus": badge.xp_bonus,
            "earnedAt": earned_at.isoformat(),
        },
        "action_url": f"/profile?tab=badges&highlight={badge.id}",
    }


# ---------------------------------------------------------------------------
# Notifiers
# ---------------------------------------------------------------------------
class Notifier(Protocol):
    def notify(self, user_id: int, badge: Badge) -> None: ...


class DatabaseNotifier:
    """Writes an in-app notification row."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def notify(self, user_id: int, badge: Badge) -> None:
        payload = build_badge_notification(badge)
        with Session(self.engine) as session:
            session.add(Notification(
                user_id=user_id,
                type=payload["type"],
                title=payload["title"],
                message=payload["message"],
                data=payload["data"],
                action_url=payload["action_url"],
            ))
            session.commit()


class WebhookNotifier:
    """POSTs the notification payload as JSON to *url*.

    Non-2xx responses raise :class:`httpx.HTTPStatusError`.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.transport = transport or httpx.HTTPTransport(retries=1)

    def notify(self, user_id: int, badge: Badge) -> None:
        body = {"user_id": user_id, **build_badge_notification(badge)}
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            resp = client.post(self.url, json=body)
            resp.raise_for_status()


class CompositeNotifier:
    """Calls each notifier in turn; the first failure propagates."""

    def __init__(self, notifiers: Sequence[Notifier]) -> None:
        self.notifiers = list(notifiers)

    def notify(self, user_id: int, badge: Badge) -> None:
        for notifier in self.notifiers:
            notifier.notify(user_id, badge)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------
class NotificationDispatcher:
    """Delivers award notifications without ever failing the caller.

    With no *executor*, delivery happens inline before :meth:`dispatch`
    returns.  With one, :meth:`dispatch` returns the pending future.
    """

    def __init__(
        self,
        engine: Engine,
        notifier: Notifier,
        *,
        executor: Executor | None = None,
    ) -> None:
        self.engine = engine
        self.notifier = notifier
        self.executor = executor

    def dispatch(self, award: UserBadge, badge: Badge) -> Future | None:
        if self.executor is None:
            self._deliver(award.key, badge)
            return None
        try:
            return self.executor.submit(self._deliver, award.key, badge)
        except RuntimeError as exc:
            # Executor already shut down; the award stays notification_sent=False.
            logger.warning(
                "Notification for badge %d to user %d not queued: %s",
                badge.id, award.user_id, exc,
            )
            return None

    def _deliver(self, key: tuple[int, int], badge: Badge) -> bool:
        user_id = key[0]
        try:
            self.notifier.notify(user_id, badge)
            mark_notification_sent(self.engine, key)
        except Exception as exc:
            failure = NotificationDispatchFailed(
                f"Notification for badge {badge.id} to user {user_id} failed: {exc}",
                details={"user_id": user_id, "badge_id": badge.id},
            )
            logger.warning("%s", failure.message)
            return False
        return True

    def shutdown(self, wait: bool = True) -> None:
        if self.executor is not None:
            self.executor.shutdown(wait=wait)


def build_notifier(engine: Engine, cfg: DevKitConfig) -> Notifier:
    """In-app notifications, plus the webhook when one is configured."""
    notifiers: list[Notifier] = [DatabaseNotifier(engine)]
    if cfg.notification_webhook_url:
        notifiers.append(WebhookNotifier(
            cfg.notification_webhook_url,
            timeout=cfg.notification_timeout_seconds,
        ))
    if len(notifiers) == 1:
        return notifiers[0]
    return CompositeNotifier(notifiers)


def build_dispatcher(engine: Engine, cfg: DevKitConfig) -> NotificationDispatcher:
    executor = None
    if cfg.notification_workers > 0:
        executor = ThreadPoolExecutor(
            max_workers=cfg.notification_workers,
            thread_name_prefix="devkit-notify",
        )
    return NotificationDispatcher(engine, build_notifier(engine, cfg), executor=executor)


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------
def list_notifications(
    engine: Engine,
    user_id: int,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    with Session(engine) as session:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        rows = session.scalars(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        ).all()
        session.expunge_all()
        return list(rows)


def mark_read(engine: Engine, user_id: int, notification_ids: Iterable[int]) -> int:
    """Mark the given notifications read.  Only the owner's unread rows change.

    Returns the number of rows updated.
    """
    ids = list(notification_ids)
    if not ids:
        return 0
    with Session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(
                Notification.id.in_(ids),
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return result.rowcount
