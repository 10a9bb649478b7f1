"""
The appointment ledger: single writer for every timeline.

The ledger owns the non-overlap invariant. Each timeline (a whole business,
or one staff member within it) has its own lock; every write re-reads the
timeline from the store and checks for overlap while holding that lock and
the store's own transaction (which also shuts out other processes sharing a
file-backed store), so at most one of several racing writers can claim an
interval.
"""

from __future__ import annotations

import logging
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import replace
from datetime import date
from typing import (
    Callable,
    ContextManager,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Protocol,
    Tuple,
)

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ConflictError, NotFoundError, ValidationError
from ..domain.models import (
    Actor,
    Appointment,
    AppointmentStatus,
    TimeRange,
    Timeline,
    format_clock,
)
from ..domain.state_machine import BookingStateMachine

logger = logging.getLogger(__name__)


class AppointmentStore(Protocol):
    """Persistence operations the ledger relies on."""

    def get(self, appointment_id: str) -> Optional[Appointment]:
        """Return the stored appointment or None."""

    def commit(self, *appointments: Appointment) -> None:
        """Insert or overwrite the given records as one write."""

    def on_timeline(
        self,
        business_id: str,
        staff_id: Optional[str],
        day: date,
    ) -> List[Appointment]:
        """Return every appointment (any status) on a timeline and date."""

    def all(self) -> Iterable[Appointment]:
        """Return every stored appointment."""

    def find_by_idempotency_key(self, key: str) -> Optional[Appointment]:
        """Return the appointment created with ``key``, if any."""

    def transaction(self) -> ContextManager[None]:
        """Exclusive write access; reads inside it see every committed record."""


def _utc_now() -> DateTime:
    return pendulum.now("UTC")


def _timeline_sort_key(timeline: Timeline) -> Tuple[str, str]:
    business_id, staff_id = timeline
    return (business_id, staff_id or "")


class AppointmentLedger:
    """
    Authoritative set of appointments and their intervals.
    """

    def __init__(
        self,
        store: AppointmentStore,
        state_machine: Optional[BookingStateMachine] = None,
        clock: Callable[[], DateTime] = _utc_now,
    ) -> None:
        self._store = store
        self._state_machine = state_machine or BookingStateMachine()
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._timeline_locks: Dict[Timeline, threading.Lock] = {}

    @property
    def state_machine(self) -> BookingStateMachine:
        return self._state_machine

    def intervals_on(
        self,
        business_id: str,
        staff_id: Optional[str],
        day: date,
    ) -> List[TimeRange]:
        """
        Occupied intervals of a timeline on one date, ordered by start.

        Only PENDING and CONFIRMED appointments count.
        """
        live = [
            appointment
            for appointment in self._store.on_timeline(business_id, staff_id, day)
            if appointment.is_live
        ]
        live.sort(key=lambda appointment: appointment.start_minute)
        return [appointment.time_range for appointment in live]

    def get(self, appointment_id: str) -> Appointment:
        """
        Raises:
            NotFoundError: If the id is unknown
        """
        appointment = self._store.get(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id!r} not found")
        return appointment

    def find(
        self,
        *,
        business_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        staff_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Appointment]:
        """Filtered projection of the ledger, ordered by date then start time."""
        matches = [
            appointment
            for appointment in self._store.all()
            if (business_id is None or appointment.business_id == business_id)
            and (customer_id is None or appointment.customer_id == customer_id)
            and (staff_id is None or appointment.staff_id == staff_id)
            and (status is None or appointment.status == status)
            and (date_from is None or appointment.date >= date_from)
            and (date_to is None or appointment.date <= date_to)
        ]
        matches.sort(key=lambda appointment: (appointment.date, appointment.start_minute))
        return matches

    def find_by_idempotency_key(self, key: str) -> Optional[Appointment]:
        return self._store.find_by_idempotency_key(key)

    def insert(self, appointment: Appointment) -> Appointment:
        """
        Store a new appointment unless its interval is already taken.

        When the appointment carries an idempotency key that is already
        known, the previously stored appointment is returned instead.

        Raises:
            ValidationError: If the appointment does not start in a live status
            ConflictError: If the interval overlaps a live appointment on the timeline
        """
        if not appointment.is_live:
            raise ValidationError(
                f"New appointments must be pending or confirmed, got {appointment.status.value}"
            )

        with self._locked(appointment.timeline), self._store.transaction():
            if appointment.idempotency_key:
                existing = self._store.find_by_idempotency_key(appointment.idempotency_key)
                if existing is not None:
                    logger.info(
                        "Idempotent replay for key %s -> %s",
                        appointment.idempotency_key, existing.id,
                    )
                    return existing

            if self._store.get(appointment.id) is not None:
                raise ValidationError(f"Appointment {appointment.id!r} already exists")

            self._ensure_free(appointment)

            now = self._clock()
            stored = replace(appointment, created_at=now, updated_at=now)
            self._store.commit(stored)

        logger.info(
            "Appointment %s booked for %s on %s at %s (staff=%s, status=%s)",
            stored.id, stored.business_id, stored.date, format_clock(stored.start_minute),
            stored.staff_id, stored.status.value,
        )
        return stored

    def transition(
        self,
        appointment_id: str,
        new_status: AppointmentStatus,
        actor: Optional[Actor] = None,
        reason: Optional[str] = None,
    ) -> Appointment:
        """
        Move an appointment to ``new_status``.

        Cancelling releases the interval immediately.

        Raises:
            NotFoundError: If the id is unknown
            InvalidTransitionError: If the state machine rejects the move
        """
        timeline = self.get(appointment_id).timeline

        with self._locked(timeline), self._store.transaction():
            current = self.get(appointment_id)
            updated = self._apply(current, new_status, actor, reason)
            self._store.commit(updated)

        logger.info(
            "Appointment %s: %s -> %s",
            appointment_id, current.status.value, updated.status.value,
        )
        return updated

    def replace(
        self,
        old_id: str,
        new_appointment: Appointment,
        actor: Optional[Actor] = None,
        reason: Optional[str] = None,
    ) -> Tuple[Appointment, Appointment]:
        """
        Cancel ``old_id`` and insert ``new_appointment`` as one step.

        The old appointment's own interval does not block the new one. If the
        new interval is taken nothing is written. A replacement whose
        idempotency key is already stored replays the earlier result.

        Returns:
            (cancelled old appointment, stored new appointment)

        Raises:
            NotFoundError: If ``old_id`` is unknown
            InvalidTransitionError: If the old appointment cannot be cancelled
            ConflictError: If the new interval overlaps another live appointment
        """
        old_timeline = self.get(old_id).timeline

        with self._locked(old_timeline, new_appointment.timeline), self._store.transaction():
            old = self.get(old_id)
            if new_appointment.idempotency_key:
                existing = self._store.find_by_idempotency_key(new_appointment.idempotency_key)
                if existing is not None:
                    logger.info(
                        "Idempotent replay for key %s -> %s",
                        new_appointment.idempotency_key, existing.id,
                    )
                    return old, existing

            cancelled = self._apply(old, AppointmentStatus.CANCELLED, actor, reason)
            self._ensure_free(new_appointment, ignore_id=old.id)

            now = self._clock()
            stored = replace(new_appointment, created_at=now, updated_at=now)
            self._store.commit(cancelled, stored)

        logger.info(
            "Appointment %s rescheduled as %s on %s at %s",
            old_id, stored.id, stored.date, format_clock(stored.start_minute),
        )
        return cancelled, stored

    def _apply(
        self,
        current: Appointment,
        new_status: AppointmentStatus,
        actor: Optional[Actor],
        reason: Optional[str],
    ) -> Appointment:
        self._state_machine.validate(current.status, new_status, actor)

        now = self._clock()
        if new_status == AppointmentStatus.CANCELLED:
            return replace(
                current,
                status=new_status,
                updated_at=now,
                cancelled_at=now,
                cancellation_reason=reason,
            )
        return replace(current, status=new_status, updated_at=now)

    def _ensure_free(self, candidate: Appointment, ignore_id: Optional[str] = None) -> None:
        """Overlap test against the live appointments of the candidate's timeline."""
        requested = candidate.time_range
        for existing in self._store.on_timeline(
            candidate.business_id, candidate.staff_id, candidate.date
        ):
            if existing.id == ignore_id or not existing.is_live:
                continue
            if requested.overlaps(existing.time_range):
                logger.warning(
                    "Conflict on %s/%s %s: %s overlaps appointment %s (%s)",
                    candidate.business_id, candidate.staff_id, candidate.date,
                    requested, existing.id, existing.time_range,
                )
                raise ConflictError(
                    f"{candidate.date.isoformat()} {requested} is no longer available"
                )

    def _lock_for(self, timeline: Timeline) -> threading.Lock:
        with self._registry_lock:
            lock = self._timeline_locks.get(timeline)
            if lock is None:
                lock = threading.Lock()
                self._timeline_locks[timeline] = lock
            return lock

    @contextmanager
    def _locked(self, *timelines: Timeline) -> Iterator[None]:
        """Hold the locks of all given timelines, acquired in a fixed order."""
        with ExitStack() as stack:
            for timeline in sorted(set(timelines), key=_timeline_sort_key):
                stack.enter_context(self._lock_for(timeline))
            yield
