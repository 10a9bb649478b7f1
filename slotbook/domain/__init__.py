"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import AvailabilityResolver
from .exceptions import (
    BookingError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .models import (
    Actor,
    ActorRole,
    Appointment,
    AppointmentStatus,
    DayOfWeek,
    Service,
    Slot,
    TimeRange,
    WorkingHours,
)
from .state_machine import BookingStateMachine
from .working_hours import WorkingHoursCalendar

__all__ = [
    "Actor",
    "ActorRole",
    "Appointment",
    "AppointmentStatus",
    "AvailabilityResolver",
    "BookingError",
    "BookingStateMachine",
    "ConflictError",
    "DayOfWeek",
    "InvalidTransitionError",
    "NotFoundError",
    "Service",
    "Slot",
    "TimeRange",
    "ValidationError",
    "WorkingHours",
    "WorkingHoursCalendar",
]
