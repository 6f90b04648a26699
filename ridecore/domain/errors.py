"""
Error taxonomy shared by the domain, service and API layers.

Every error carries the HTTP status the API layer should answer with.
Transition errors also carry the ride's authoritative ``current_status``
and the attempted ``action`` so clients can resynchronise.
"""

from __future__ import annotations

from typing import Any, Optional


class RideCoreError(Exception):
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        current_status: Optional[str] = None,
        action: Optional[str] = None,
        extra: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.current_status = current_status
        self.action = action
        self.extra = extra or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message}
        if self.current_status is not None:
            body["currentStatus"] = self.current_status
        if self.action is not None:
            body["action"] = self.action
        body.update(self.extra)
        return body


class ValidationError(RideCoreError):
    """Missing or malformed input."""

    status_code = 400


class NotFoundError(RideCoreError):
    """Ride, driver, rider or promotion absent."""

    status_code = 404


class PermissionDeniedError(RideCoreError):
    """Caller is not a party to the ride."""

    status_code = 403


class ConflictError(RideCoreError):
    """Illegal state transition, double assignment, already-applied promo."""

    status_code = 409


class ActiveRideExistsError(ConflictError):
    status_code = 400


class LimitExceededError(RideCoreError):
    """Promotion usage caps reached."""

    status_code = 400


class InternalError(RideCoreError):
    """Unexpected persistence failure."""

    status_code = 500
