"""
Application service for availability queries and booking changes.

The coordinator looks up the catalog, asks the domain-level
``AvailabilityResolver`` for slots and validity, and funnels every write
through the ``AppointmentLedger``. It keeps no per-user state: the acting
customer or business is passed into each call.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import replace
from datetime import date
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Protocol

import pendulum
from pendulum import DateTime

from ..domain.availability import AvailabilityResolver
from ..domain.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from ..domain.models import (
    Actor,
    ActorRole,
    Appointment,
    AppointmentStatus,
    ClockValue,
    Service,
    Slot,
    parse_clock,
)
from .ledger import AppointmentLedger

if TYPE_CHECKING:
    from ..adapters.catalog import StaffMember

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Berlin"


class CatalogProtocol(Protocol):
    """Lookups the coordinator needs from the surrounding application."""

    def has_business(self, business_id: str) -> bool:
        """Return True if the business exists."""

    def get_service(self, service_id: str) -> Optional[Service]:
        """Return the service or None."""

    def get_staff(self, staff_id: str) -> Optional[StaffMember]:
        """Return the staff member or None."""


def new_appointment_id() -> str:
    return f"apt_{uuid.uuid4().hex[:12]}"


def scope_idempotency_key(business_id: str, owner: str, key: str) -> str:
    """Namespace a client-supplied key by business and caller so keys never collide."""
    return hashlib.sha256(f"{business_id}:{owner}:{key}".encode()).hexdigest()


class BookingCoordinator:
    """
    Serves "get availability" and "create/modify/cancel appointment".

    Slot lists handed out by ``get_availability`` are advisory; ``book`` and
    ``reschedule`` re-validate against the ledger at write time.
    """

    def __init__(
        self,
        catalog: CatalogProtocol,
        ledger: AppointmentLedger,
        resolver: AvailabilityResolver,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Optional[Callable[[], DateTime]] = None,
        id_factory: Callable[[], str] = new_appointment_id,
    ) -> None:
        self._catalog = catalog
        self._ledger = ledger
        self._resolver = resolver
        self.timezone = timezone
        self._clock = clock or (lambda: pendulum.now(self.timezone))
        self._id_factory = id_factory

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get_availability(
        self,
        business_id: str,
        service_id: str,
        staff_id: Optional[str],
        day: date,
    ) -> List[Slot]:
        """Bookable start times for a service on one date."""
        service = self._lookup(business_id, service_id, staff_id)
        return self._resolver.available_slots(
            business_id, service, staff_id, day, self._now()
        )

    def availability_range(
        self,
        business_id: str,
        service_id: str,
        staff_id: Optional[str],
        start_date: date,
        days: int = 7,
    ) -> Dict[date, List[Slot]]:
        """Slots per date for ``days`` consecutive dates (calendar view)."""
        if days <= 0:
            raise ValidationError("days must be positive")

        service = self._lookup(business_id, service_id, staff_id)
        now = self._now()
        first = pendulum.date(start_date.year, start_date.month, start_date.day)

        return {
            day: self._resolver.available_slots(business_id, service, staff_id, day, now)
            for day in (first.add(days=offset) for offset in range(days))
        }

    def next_available(
        self,
        business_id: str,
        service_id: str,
        staff_id: Optional[str],
        from_date: Optional[date] = None,
        search_days: int = 14,
    ) -> Optional[Slot]:
        """Earliest bookable slot within ``search_days`` dates, or None."""
        start = from_date or self._now().date()
        for slots in self.availability_range(
            business_id, service_id, staff_id, start, search_days
        ).values():
            if slots:
                return slots[0]
        return None

    def get_appointment(self, appointment_id: str, actor: Optional[Actor] = None) -> Appointment:
        appointment = self._ledger.get(appointment_id)
        if actor is not None:
            self._authorize(appointment, actor)
        return appointment

    def appointments_for_customer(
        self,
        customer_id: str,
        status: Optional[AppointmentStatus] = None,
        upcoming: Optional[bool] = None,
    ) -> List[Appointment]:
        """
        A customer's appointments.

        ``upcoming=True`` keeps today and later, ``False`` keeps earlier dates
        (newest first), None keeps everything.
        """
        today = self._now().date()
        if upcoming is None:
            return self._ledger.find(customer_id=customer_id, status=status)
        if upcoming:
            return self._ledger.find(customer_id=customer_id, status=status, date_from=today)

        past = [
            appointment
            for appointment in self._ledger.find(customer_id=customer_id, status=status)
            if appointment.date < today
        ]
        past.reverse()
        return past

    def appointments_for_business(
        self,
        business_id: str,
        status: Optional[AppointmentStatus] = None,
        day: Optional[date] = None,
        staff_id: Optional[str] = None,
    ) -> List[Appointment]:
        if not self._catalog.has_business(business_id):
            raise NotFoundError(f"Business {business_id!r} not found")
        return self._ledger.find(
            business_id=business_id,
            staff_id=staff_id,
            status=status,
            date_from=day,
            date_to=day,
        )

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def book(
        self,
        business_id: str,
        service_id: str,
        staff_id: Optional[str],
        day: date,
        start: ClockValue,
        customer_id: str,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Appointment:
        """
        Book ``start`` on ``day`` for a customer.

        Raises:
            NotFoundError: Unknown business, service or staff member
            ValidationError: The start time is outside hours, in the past or malformed
            ConflictError: The interval was taken by someone else; re-query availability
        """
        if not customer_id:
            raise ValidationError("customer_id is required")

        scoped_key = None
        if idempotency_key:
            scoped_key = scope_idempotency_key(business_id, f"customer:{customer_id}", idempotency_key)
            existing = self._ledger.find_by_idempotency_key(scoped_key)
            if existing is not None:
                return existing

        service = self._lookup(business_id, service_id, staff_id)
        start_minute = parse_clock(start)
        self._resolver.check_candidate(business_id, service, day, start_minute, self._now())

        appointment = Appointment(
            id=self._id_factory(),
            business_id=business_id,
            service_id=service.id,
            customer_id=customer_id,
            staff_id=staff_id,
            date=day,
            start_minute=start_minute,
            duration_minutes=service.duration_minutes,
            status=self._ledger.state_machine.initial_status(service),
            notes=notes,
            price=service.price,
            idempotency_key=scoped_key,
        )
        return self._ledger.insert(appointment)

    def confirm(self, appointment_id: str, actor: Actor) -> Appointment:
        """Business approves a pending request."""
        self._authorize(self._ledger.get(appointment_id), actor)
        return self._ledger.transition(appointment_id, AppointmentStatus.CONFIRMED, actor)

    def cancel(
        self,
        appointment_id: str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Appointment:
        """Cancel a pending or confirmed appointment, releasing its interval."""
        self._authorize(self._ledger.get(appointment_id), actor)
        return self._ledger.transition(
            appointment_id, AppointmentStatus.CANCELLED, actor, reason=reason
        )

    def complete(self, appointment_id: str, actor: Actor) -> Appointment:
        """Business marks a confirmed appointment as done."""
        self._authorize(self._ledger.get(appointment_id), actor)
        return self._ledger.transition(appointment_id, AppointmentStatus.COMPLETED, actor)

    def complete_elapsed(self) -> List[Appointment]:
        """
        Mark every confirmed appointment whose end has passed as completed.

        An appointment cancelled or completed by someone else while the sweep
        runs is skipped; the rest are still processed.
        """
        now = self._now()
        completed = []
        for appointment in self._ledger.find(
            status=AppointmentStatus.CONFIRMED, date_to=now.date()
        ):
            if appointment.ends_at(self.timezone) > now:
                continue
            try:
                completed.append(
                    self._ledger.transition(
                        appointment.id, AppointmentStatus.COMPLETED, Actor.system()
                    )
                )
            except InvalidTransitionError as e:
                logger.warning("Skipping appointment %s: %s", appointment.id, e)
        if completed:
            logger.info("Completed %d elapsed appointment(s)", len(completed))
        return completed

    def reschedule(
        self,
        appointment_id: str,
        new_date: date,
        new_start: ClockValue,
        actor: Actor,
        idempotency_key: Optional[str] = None,
    ) -> Appointment:
        """
        Move an appointment by cancelling it and booking a replacement.

        The replacement keeps the original duration, service, staff member and
        customer. If the new interval is taken the original is left untouched.

        Raises:
            NotFoundError: Unknown appointment, or not the actor's appointment
            InvalidTransitionError: The appointment is already completed or cancelled
            ValidationError: The new time is outside hours or in the past
            ConflictError: The new interval is taken; re-query availability
        """
        old = self._ledger.get(appointment_id)
        self._authorize(old, actor)

        scoped_key = None
        if idempotency_key:
            scoped_key = scope_idempotency_key(
                old.business_id, f"{actor.role.value}:{actor.id}", idempotency_key
            )
            existing = self._ledger.find_by_idempotency_key(scoped_key)
            if existing is not None:
                return self._replayed(existing, old.id)

        self._ledger.state_machine.validate(old.status, AppointmentStatus.CANCELLED, actor)

        service = self._catalog.get_service(old.service_id)
        if service is None:
            raise NotFoundError(f"Service {old.service_id!r} not found")
        # the booked duration sticks even if the service was edited since
        service = replace(service, duration_minutes=old.duration_minutes)

        start_minute = parse_clock(new_start)
        self._resolver.check_candidate(
            old.business_id, service, new_date, start_minute, self._now()
        )

        if actor.role == ActorRole.BUSINESS:
            status = AppointmentStatus.CONFIRMED
        else:
            status = self._ledger.state_machine.initial_status(service)

        replacement = replace(
            old,
            id=self._id_factory(),
            date=new_date,
            start_minute=start_minute,
            status=status,
            created_at=None,
            updated_at=None,
            cancelled_at=None,
            cancellation_reason=None,
            rescheduled_from=old.id,
            idempotency_key=scoped_key,
        )
        _, stored = self._ledger.replace(
            old.id, replacement, actor, reason=f"Rescheduled to {replacement.id}"
        )
        if stored.id != replacement.id:
            return self._replayed(stored, old.id)
        return stored

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> DateTime:
        return self._clock().in_timezone(self.timezone)

    def _lookup(self, business_id: str, service_id: str, staff_id: Optional[str]) -> Service:
        if not self._catalog.has_business(business_id):
            raise NotFoundError(f"Business {business_id!r} not found")

        service = self._catalog.get_service(service_id)
        if service is None or service.business_id != business_id:
            raise NotFoundError(f"Service {service_id!r} not found for business {business_id!r}")

        if staff_id is not None:
            member = self._catalog.get_staff(staff_id)
            if member is None or member.business_id != business_id or not member.active:
                raise NotFoundError(f"Staff member {staff_id!r} not found for business {business_id!r}")
            if not member.performs(service.id):
                raise ValidationError(f"Staff member {staff_id!r} does not offer {service.id!r}")

        return service

    @staticmethod
    def _replayed(existing: Appointment, appointment_id: str) -> Appointment:
        """Earlier result for a repeated reschedule key, if it moved the same appointment."""
        if existing.rescheduled_from != appointment_id:
            raise ValidationError("Idempotency key was already used for a different request")
        return existing

    @staticmethod
    def _authorize(appointment: Appointment, actor: Actor) -> None:
        """Customers act on their own appointments, businesses on their own bookings."""
        if actor.role == ActorRole.SYSTEM:
            return
        if actor.role == ActorRole.CUSTOMER and actor.id == appointment.customer_id:
            return
        if actor.role == ActorRole.BUSINESS and actor.id == appointment.business_id:
            return
        raise NotFoundError(f"Appointment {appointment.id!r} not found")
