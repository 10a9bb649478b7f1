"""
Core business logic for calculating bookable start times.

Pure domain logic: the resolver reads working hours and the live intervals
of a timeline, and never writes anything.
"""

import logging
from datetime import date
from typing import Iterable, Iterator, List, Optional, Protocol

from pendulum import DateTime

from .exceptions import ValidationError
from .models import MINUTES_PER_DAY, DayOfWeek, Service, Slot, TimeRange, format_clock
from .working_hours import WorkingHoursCalendar

logger = logging.getLogger(__name__)

DEFAULT_GRANULARITY_MINUTES = 15


class IntervalSource(Protocol):
    """Anything that can list the occupied intervals of a timeline."""

    def intervals_on(
        self,
        business_id: str,
        staff_id: Optional[str],
        day: date,
    ) -> Iterable[TimeRange]:
        """Return occupied [start, end) ranges ordered by start."""


class AvailabilityResolver:
    """
    Calculates bookable start times for a service on a given date.

    Algorithm:
    1. Look up the working hours for the date's weekday (closed -> nothing)
    2. Generate candidate starts from opening time in granularity steps
    3. Keep candidates whose whole interval fits before closing
    4. Drop candidates overlapping an occupied interval
    5. Drop candidates at or before ``now`` plus the lead time
    6. Return the rest in ascending order
    """

    def __init__(
        self,
        working_hours: WorkingHoursCalendar,
        intervals: IntervalSource,
        granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
        min_lead_time_minutes: int = 0,
    ):
        if granularity_minutes <= 0:
            raise ValidationError("Slot granularity must be a positive number of minutes")
        if min_lead_time_minutes < 0:
            raise ValidationError("Minimum lead time cannot be negative")

        self.working_hours = working_hours
        self.intervals = intervals
        self.granularity_minutes = granularity_minutes
        self.min_lead_time_minutes = min_lead_time_minutes

    def available_slots(
        self,
        business_id: str,
        service: Service,
        staff_id: Optional[str],
        day: date,
        now: DateTime,
    ) -> List[Slot]:
        """
        Find all bookable start times.

        Args:
            business_id: Business whose hours apply
            service: Service being booked (its duration sizes the slot)
            staff_id: Staff timeline to check, or None for the business-wide one
            day: Calendar date in the business's timezone
            now: Current time in the business's timezone

        Returns:
            Slots in ascending start order; empty when nothing fits
        """
        if not service.active:
            logger.debug("Service %s is inactive, no slots", service.id)
            return []

        window = self._open_window(business_id, day)
        if window is None:
            return []

        duration = service.duration_minutes
        busy = list(self.intervals.intervals_on(business_id, staff_id, day))
        threshold = self._past_threshold(day, now)

        slots: List[Slot] = []
        for start in self._candidate_starts(window, duration):
            candidate = TimeRange(start=start, end=start + duration)

            if not window.contains(candidate):
                continue
            if self._minutes_from_now_origin(day, now, start) <= threshold:
                continue
            if any(candidate.overlaps(taken) for taken in busy):
                continue

            slots.append(
                Slot(date=day, start_minute=start, duration_minutes=duration, staff_id=staff_id)
            )

        logger.debug(
            "%d slot(s) for service %s on %s (staff=%s)",
            len(slots), service.id, day, staff_id,
        )
        return slots

    def check_candidate(
        self,
        business_id: str,
        service: Service,
        day: date,
        start_minute: int,
        now: DateTime,
    ) -> TimeRange:
        """
        Apply the working-hours, fit and lead-time rules to one start time.

        Overlap with existing bookings is not checked here; the ledger does
        that at write time.

        Raises:
            ValidationError: If the start time can never be booked
        """
        if not service.active:
            raise ValidationError(f"Service {service.id!r} is not bookable")

        window = self._open_window(business_id, day)
        if window is None:
            raise ValidationError(f"Business {business_id!r} is closed on {day.isoformat()}")

        end_minute = start_minute + service.duration_minutes
        if end_minute > MINUTES_PER_DAY or not window.contains(
            TimeRange(start=start_minute, end=end_minute)
        ):
            raise ValidationError(
                f"{format_clock(start_minute)} + {service.duration_minutes} min does not fit "
                f"within opening hours {window}"
            )

        if self._minutes_from_now_origin(day, now, start_minute) <= self._past_threshold(day, now):
            raise ValidationError(
                f"{day.isoformat()} {format_clock(start_minute)} is too soon or in the past"
            )

        return TimeRange(start=start_minute, end=end_minute)

    def _open_window(self, business_id: str, day: date) -> Optional[TimeRange]:
        hours = self.working_hours.hours_for(business_id, DayOfWeek.from_date(day))
        if hours is None:
            return None
        return hours.window()

    def _candidate_starts(self, window: TimeRange, duration: int) -> Iterator[int]:
        """Starts from opening time up to ``close - duration`` inclusive."""
        start = window.start
        last = window.end - duration
        while start <= last:
            yield start
            start += self.granularity_minutes

    def _past_threshold(self, day: date, now: DateTime) -> int:
        """Minutes (relative to midnight of now's date) at or before which nothing is bookable."""
        return now.hour * 60 + now.minute + self.min_lead_time_minutes

    @staticmethod
    def _minutes_from_now_origin(day: date, now: DateTime, start_minute: int) -> int:
        """Express ``day`` + ``start_minute`` as minutes since midnight of now's date."""
        days_ahead = day.toordinal() - now.date().toordinal()
        return days_ahead * MINUTES_PER_DAY + start_minute
