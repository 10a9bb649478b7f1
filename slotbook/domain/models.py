"""
Domain models for working hours, services, appointments and slots.

All clock times are integer minutes since midnight in the business's local
timezone. Dates are plain calendar dates.
"""

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Union

import pendulum
from pendulum import DateTime

from .exceptions import ValidationError

MINUTES_PER_DAY = 24 * 60

ClockValue = Union[str, int, time]

# (business_id, staff_id or None)
Timeline = Tuple[str, Optional[str]]


def parse_clock(value: ClockValue) -> int:
    """
    Normalise a wall-clock value to minutes since midnight.

    Accepts ``"HH:MM"`` strings, ``datetime.time`` objects and plain minute
    integers. ``"24:00"`` is accepted as the end of the day.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid clock value: {value!r}")

    if isinstance(value, int):
        minutes = value
    elif isinstance(value, time):
        minutes = value.hour * 60 + value.minute
    elif isinstance(value, str):
        hours, sep, mins = value.strip().partition(":")
        if not sep or not hours.isdigit() or not mins.isdigit() or len(mins) != 2:
            raise ValidationError(f"Invalid clock value {value!r}, expected HH:MM")
        if int(mins) > 59:
            raise ValidationError(f"Invalid clock value {value!r}, minutes must be < 60")
        minutes = int(hours) * 60 + int(mins)
    else:
        raise ValidationError(f"Invalid clock value: {value!r}")

    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValidationError(f"Clock value {value!r} is outside a single day")
    return minutes


def format_clock(minutes: int) -> str:
    """Format minutes since midnight as ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


class DayOfWeek(str, Enum):
    """Days of the week, ordered Monday first."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def parse(cls, value: Union[str, "DayOfWeek"]) -> "DayOfWeek":
        """Parse a day name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown day of week: {value!r}") from None

    @classmethod
    def from_date(cls, day: date) -> "DayOfWeek":
        """Return the weekday of a calendar date."""
        return list(cls)[day.weekday()]

    @property
    def index(self) -> int:
        """0=Monday, 6=Sunday."""
        return list(DayOfWeek).index(self)


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Union[str, "AppointmentStatus"]) -> "AppointmentStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown appointment status: {value!r}") from None


# Statuses that occupy their interval on a timeline
LIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


class ActorRole(str, Enum):
    """Who is asking for a change."""

    CUSTOMER = "customer"
    BUSINESS = "business"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Externally supplied identity of the caller."""

    role: ActorRole
    id: str

    @classmethod
    def customer(cls, customer_id: str) -> "Actor":
        return cls(role=ActorRole.CUSTOMER, id=customer_id)

    @classmethod
    def business(cls, business_id: str) -> "Actor":
        return cls(role=ActorRole.BUSINESS, id=business_id)

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=ActorRole.SYSTEM, id="system")


@dataclass(frozen=True)
class TimeRange:
    """
    Half-open interval ``[start, end)`` in minutes since midnight.

    Invariant: start must be before end.
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError(
                f"Start {format_clock(self.start)} must be before end {format_clock(self.end)}"
            )

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end - self.start

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeRange") -> bool:
        """Check if another range lies fully inside this one."""
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{format_clock(self.start)} - {format_clock(self.end)}"


@dataclass(frozen=True)
class WorkingHours:
    """
    Opening hours of one business on one day of the week.

    When ``is_open`` is False the clock values are ignored.
    """
    day: DayOfWeek
    is_open: bool = True
    open_minute: int = 9 * 60
    close_minute: int = 17 * 60

    @classmethod
    def closed(cls, day: Union[str, DayOfWeek]) -> "WorkingHours":
        return cls(day=DayOfWeek.parse(day), is_open=False, open_minute=0, close_minute=0)

    @classmethod
    def open_between(
        cls,
        day: Union[str, DayOfWeek],
        open_at: ClockValue,
        close_at: ClockValue,
    ) -> "WorkingHours":
        return cls(
            day=DayOfWeek.parse(day),
            is_open=True,
            open_minute=parse_clock(open_at),
            close_minute=parse_clock(close_at),
        )

    def window(self) -> Optional[TimeRange]:
        """
        Return the open window, or None when closed.

        A window with open == close is degenerate and counts as closed.
        """
        if not self.is_open or self.open_minute >= self.close_minute:
            return None
        return TimeRange(start=self.open_minute, end=self.close_minute)

    def __str__(self) -> str:
        if not self.is_open:
            return f"{self.day.value.capitalize()}: closed"
        return (
            f"{self.day.value.capitalize()}: "
            f"{format_clock(self.open_minute)} - {format_clock(self.close_minute)}"
        )


@dataclass(frozen=True)
class Service:
    """A bookable offering of a business."""
    id: str
    business_id: str
    name: str
    duration_minutes: int
    active: bool = True
    instant_book: bool = False
    price: Optional[Decimal] = None

    def __post_init__(self):
        if isinstance(self.duration_minutes, bool) or self.duration_minutes <= 0:
            raise ValidationError(
                f"Service {self.id!r} duration must be a positive number of minutes, "
                f"got {self.duration_minutes!r}"
            )


@dataclass(frozen=True)
class Appointment:
    """
    A booking stored in the ledger.

    Instances are immutable; status changes produce a new record via
    ``dataclasses.replace``.
    """
    id: str
    business_id: str
    service_id: str
    customer_id: str
    date: date
    start_minute: int
    duration_minutes: int
    status: AppointmentStatus
    staff_id: Optional[str] = None
    notes: Optional[str] = None
    price: Optional[Decimal] = None
    created_at: Optional[DateTime] = None
    updated_at: Optional[DateTime] = None
    cancelled_at: Optional[DateTime] = None
    cancellation_reason: Optional[str] = None
    rescheduled_from: Optional[str] = None
    idempotency_key: Optional[str] = None

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValidationError("Appointment duration must be positive")
        if not 0 <= self.start_minute < MINUTES_PER_DAY:
            raise ValidationError(f"Invalid appointment start: {self.start_minute!r}")

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_minute, end=self.end_minute)

    @property
    def timeline(self) -> Timeline:
        return (self.business_id, self.staff_id)

    @property
    def is_live(self) -> bool:
        """True while the appointment occupies its interval."""
        return self.status in LIVE_STATUSES

    def ends_at(self, tz: str) -> DateTime:
        """Wall-clock end in ``tz``; an end of 24:00 is midnight of the next day."""
        days, minutes = divmod(self.end_minute, MINUTES_PER_DAY)
        end_day = pendulum.date(self.date.year, self.date.month, self.date.day).add(days=days)
        return pendulum.datetime(
            end_day.year, end_day.month, end_day.day,
            minutes // 60, minutes % 60, tz=tz,
        )


@dataclass(frozen=True)
class Slot:
    """
    A computed bookable start time. Never persisted.
    """
    date: date
    start_minute: int
    duration_minutes: int
    staff_id: Optional[str] = field(default=None, compare=False)

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @property
    def start_time(self) -> time:
        return time(hour=self.start_minute // 60, minute=self.start_minute % 60)

    @property
    def label(self) -> str:
        """Start time as ``HH:MM``."""
        return format_clock(self.start_minute)

    def starts_at(self, tz: str) -> DateTime:
        return pendulum.datetime(
            self.date.year, self.date.month, self.date.day,
            self.start_minute // 60, self.start_minute % 60, tz=tz,
        )

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:MM – HH:MM (N min)
        """
        weekday = DayOfWeek.from_date(self.date).value.capitalize()
        date_str = self.date.strftime("%d.%m.%Y")
        time_str = f"{format_clock(self.start_minute)} – {format_clock(self.end_minute)}"
        return f"{weekday}, {date_str} | {time_str} ({self.duration_minutes} min)"
