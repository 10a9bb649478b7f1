"""Shared constants and factories for the test suite."""

from datetime import date
from itertools import count
from typing import Optional

import pendulum

from slotbook.domain.models import (
    Appointment,
    AppointmentStatus,
    DayOfWeek,
    Service,
    WorkingHours,
    parse_clock,
)
from slotbook.domain.working_hours import WorkingHoursCalendar

TZ = "Europe/Berlin"
BUSINESS = "glow-salon"
MONDAY = pendulum.date(2024, 11, 25)
TUESDAY = pendulum.date(2024, 11, 26)
SUNDAY = pendulum.date(2024, 11, 24)


class FixedClock:
    """Callable clock the tests can move around."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def make_service(
    service_id: str = "haircut",
    duration: int = 30,
    active: bool = True,
    instant_book: bool = True,
    business_id: str = BUSINESS,
) -> Service:
    """Helper to create a Service."""
    return Service(
        id=service_id,
        business_id=business_id,
        name=service_id.capitalize(),
        duration_minutes=duration,
        active=active,
        instant_book=instant_book,
    )


_ids = count(1)


def make_appointment(
    start: str = "10:00",
    duration: int = 30,
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    day: date = MONDAY,
    staff_id: Optional[str] = None,
    appointment_id: Optional[str] = None,
    customer_id: str = "alice",
    business_id: str = BUSINESS,
) -> Appointment:
    """Helper to create an Appointment."""
    return Appointment(
        id=appointment_id or f"apt-{next(_ids)}",
        business_id=business_id,
        service_id="haircut",
        customer_id=customer_id,
        staff_id=staff_id,
        date=day,
        start_minute=parse_clock(start),
        duration_minutes=duration,
        status=status,
    )


def weekday_calendar() -> WorkingHoursCalendar:
    """Mon-Fri 09:00-17:00, Saturday 09:00-13:00, Sunday closed."""
    week = [
        WorkingHours.open_between(day, "09:00", "17:00")
        for day in (
            DayOfWeek.MONDAY,
            DayOfWeek.TUESDAY,
            DayOfWeek.WEDNESDAY,
            DayOfWeek.THURSDAY,
            DayOfWeek.FRIDAY,
        )
    ]
    week.append(WorkingHours.open_between(DayOfWeek.SATURDAY, "09:00", "13:00"))
    week.append(WorkingHours.closed(DayOfWeek.SUNDAY))
    return WorkingHoursCalendar({BUSINESS: week})
