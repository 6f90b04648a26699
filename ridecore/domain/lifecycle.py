"""
Ride state machine.

Every status change in the system goes through :func:`next_status`;
nothing else is allowed to compute a new ride status.

::

    requested --accept--> accepted        rejected --accept--> accepted
    requested --reject--> rejected        accepted --mark_reached--> accepted
    requested/accepted --cancel--> cancelled
    accepted  --start--> ongoing          ongoing --complete--> completed
    requested/accepted/rejected --reassign--> accepted
"""

from __future__ import annotations

from .enums import RideAction, RideStatus
from .errors import ConflictError

# action -> (legal source statuses, resulting status)
RIDE_TRANSITIONS: dict[RideAction, tuple[frozenset[RideStatus], RideStatus]] = {
    RideAction.ACCEPT: (
        frozenset({RideStatus.REQUESTED, RideStatus.REJECTED}),
        RideStatus.ACCEPTED,
    ),
    RideAction.REJECT: (frozenset({RideStatus.REQUESTED}), RideStatus.REJECTED),
    RideAction.CANCEL: (
        frozenset({RideStatus.REQUESTED, RideStatus.ACCEPTED}),
        RideStatus.CANCELLED,
    ),
    RideAction.MARK_REACHED: (frozenset({RideStatus.ACCEPTED}), RideStatus.ACCEPTED),
    RideAction.START: (frozenset({RideStatus.ACCEPTED}), RideStatus.ONGOING),
    RideAction.COMPLETE: (frozenset({RideStatus.ONGOING}), RideStatus.COMPLETED),
    RideAction.REASSIGN: (
        frozenset({RideStatus.REQUESTED, RideStatus.ACCEPTED, RideStatus.REJECTED}),
        RideStatus.ACCEPTED,
    ),
}


def allowed_sources(action: RideAction) -> frozenset[RideStatus]:
    return RIDE_TRANSITIONS[action][0]


def can_apply(current: RideStatus, action: RideAction) -> bool:
    return RideStatus(current) in RIDE_TRANSITIONS[action][0]


def next_status(current: RideStatus, action: RideAction) -> RideStatus:
    """Return the status *action* leads to from *current*, else raise."""
    current = RideStatus(current)
    sources, target = RIDE_TRANSITIONS[action]
    if current not in sources:
        raise ConflictError(
            f"Cannot {action.value.replace('_', ' ')} a ride that is {current.value}",
            current_status=current.value,
            action=action.value,
        )
    return target
