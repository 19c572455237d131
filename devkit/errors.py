"""
devkit.errors — Domain Exceptions
==================================

Business-level failures raised by the engine and services.  The API layer
renders any :class:`DevKitError` as ``{"error", "code", "details"}`` with
the class's ``status_code``.
"""

from __future__ import annotations

from typing import Any


class DevKitError(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


# ---------------------------------------------------------------------------
# Evaluation / award path
# ---------------------------------------------------------------------------
class SnapshotUnavailable(DevKitError):
    """No metric snapshot exists for the user.  Recovered as "nothing to award"."""

    status_code = 404


class BadgeNotFound(DevKitError):
    status_code = 404


class UserNotFound(DevKitError):
    status_code = 404


class CriteriaNotMet(DevKitError):
    """Manual award requested without override for a user who doesn't qualify."""

    status_code = 400


class AlreadyAwarded(DevKitError):
    status_code = 409


class NotificationDispatchFailed(DevKitError):
    """Logged by the dispatcher; never propagated to callers."""


class ProgressionUpdateFailed(DevKitError):
    """XP could not be applied.  The award (if any) stands with its reward pending."""


# ---------------------------------------------------------------------------
# Catalog validation
# ---------------------------------------------------------------------------
class CatalogValidationError(DevKitError):
    status_code = 400


class RarityPointsMismatch(CatalogValidationError):
    pass


class InvalidCriterionShape(CatalogValidationError):
    pass


class DuplicateBadgeName(CatalogValidationError):
    pass
