"""
Lifecycle rules for a single appointment.

PENDING ──confirm──► CONFIRMED ──complete──► COMPLETED
   │                     │
   └──────cancel─────────┴──────────────────► CANCELLED

Rescheduling is not a transition of its own: it cancels the old
appointment and books a new one through the normal insert path.
"""

from typing import Dict, FrozenSet, Optional, Tuple

from .exceptions import InvalidTransitionError
from .models import Actor, ActorRole, AppointmentStatus, Service

_ANYONE = frozenset({ActorRole.CUSTOMER, ActorRole.BUSINESS, ActorRole.SYSTEM})

# (from, to) -> roles allowed to trigger the move
TRANSITIONS: Dict[Tuple[AppointmentStatus, AppointmentStatus], FrozenSet[ActorRole]] = {
    (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED): frozenset(
        {ActorRole.BUSINESS}
    ),
    (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED): _ANYONE,
    (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED): _ANYONE,
    (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED): frozenset(
        {ActorRole.BUSINESS, ActorRole.SYSTEM}
    ),
}

TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})


class BookingStateMachine:
    """Validates status changes against the transition table."""

    def initial_status(self, service: Service) -> AppointmentStatus:
        """Instant-book services skip business approval."""
        if service.instant_book:
            return AppointmentStatus.CONFIRMED
        return AppointmentStatus.PENDING

    def is_terminal(self, status: AppointmentStatus) -> bool:
        return status in TERMINAL_STATUSES

    def allowed_targets(self, status: AppointmentStatus) -> FrozenSet[AppointmentStatus]:
        return frozenset(target for (source, target) in TRANSITIONS if source == status)

    def can_transition(
        self,
        current: AppointmentStatus,
        target: AppointmentStatus,
        actor: Optional[Actor] = None,
    ) -> bool:
        roles = TRANSITIONS.get((current, target))
        if roles is None:
            return False
        return actor is None or actor.role in roles

    def validate(
        self,
        current: AppointmentStatus,
        target: AppointmentStatus,
        actor: Optional[Actor] = None,
    ) -> None:
        """
        Raise InvalidTransitionError unless ``current -> target`` is allowed.

        When an actor is given, its role must be one of the roles permitted
        to trigger the move.
        """
        if self.is_terminal(current):
            raise InvalidTransitionError(
                f"Appointment is {current.value}; no further changes are allowed"
            )
        roles = TRANSITIONS.get((current, target))
        if roles is None:
            raise InvalidTransitionError(
                f"Cannot move appointment from {current.value} to {target.value}"
            )
        if actor is not None and actor.role not in roles:
            raise InvalidTransitionError(
                f"A {actor.role.value} cannot move an appointment from "
                f"{current.value} to {target.value}"
            )
