"""
Per-business weekly opening hours.
"""

import logging
from typing import Dict, Iterable, List, Optional, Union

from .exceptions import ValidationError
from .models import DayOfWeek, WorkingHours, format_clock

logger = logging.getLogger(__name__)


class WorkingHoursCalendar:
    """
    Weekly open/closed schedule for each business.

    Exactly one entry is kept per (business, day); writing a day again
    replaces the previous entry. A day without an entry is closed.
    """

    def __init__(self, entries: Optional[Dict[str, Iterable[WorkingHours]]] = None):
        self._hours: Dict[str, Dict[DayOfWeek, WorkingHours]] = {}
        for business_id, week in (entries or {}).items():
            self._hours.setdefault(business_id, {})
            for hours in week:
                self.upsert(business_id, hours)

    def hours_for(
        self,
        business_id: str,
        day: Union[str, DayOfWeek],
    ) -> Optional[WorkingHours]:
        """
        Return the working hours for a day, or None when the business is closed.
        """
        hours = self._hours.get(business_id, {}).get(DayOfWeek.parse(day))
        if hours is None or not hours.is_open:
            return None
        return hours

    def upsert(self, business_id: str, hours: WorkingHours) -> WorkingHours:
        """
        Create or replace the entry for ``hours.day``.

        Raises:
            ValidationError: If the day is open and does not start before it ends
        """
        if hours.is_open and hours.open_minute >= hours.close_minute:
            raise ValidationError(
                f"Opening time {format_clock(hours.open_minute)} must be before "
                f"closing time {format_clock(hours.close_minute)} on {hours.day.value}"
            )

        self._hours.setdefault(business_id, {})[hours.day] = hours
        logger.debug("Working hours for %s set: %s", business_id, hours)
        return hours

    def set_open(
        self,
        business_id: str,
        day: Union[str, DayOfWeek],
        is_open: bool,
    ) -> WorkingHours:
        """Toggle a day open or closed, keeping its configured times."""
        day = DayOfWeek.parse(day)
        current = self._hours.get(business_id, {}).get(day)
        if current is None:
            if is_open:
                raise ValidationError(
                    f"No opening times configured for {day.value}; set hours before opening it"
                )
            current = WorkingHours.closed(day)

        return self.upsert(
            business_id,
            WorkingHours(
                day=day,
                is_open=is_open,
                open_minute=current.open_minute,
                close_minute=current.close_minute,
            ),
        )

    def week(self, business_id: str) -> List[WorkingHours]:
        """All seven days in order; missing days are reported as closed."""
        configured = self._hours.get(business_id, {})
        return [configured.get(day) or WorkingHours.closed(day) for day in DayOfWeek]

    def knows(self, business_id: str) -> bool:
        """True once the business has been registered, even with every day closed."""
        return business_id in self._hours
