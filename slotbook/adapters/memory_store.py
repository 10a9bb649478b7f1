"""
In-memory appointment store.
"""

import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterator, List, Optional

from ..domain.models import Appointment


class InMemoryAppointmentStore:
    """
    Dictionary-backed store used by tests and embedded callers.

    Records are immutable, so handing them out without copying is safe.
    """

    def __init__(self) -> None:
        self._appointments: Dict[str, Appointment] = {}
        self._lock = threading.Lock()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        # single process; the ledger's timeline locks are enough
        yield

    def get(self, appointment_id: str) -> Optional[Appointment]:
        return self._appointments.get(appointment_id)

    def commit(self, *appointments: Appointment) -> None:
        with self._lock:
            for appointment in appointments:
                self._appointments[appointment.id] = appointment

    def on_timeline(
        self,
        business_id: str,
        staff_id: Optional[str],
        day: date,
    ) -> List[Appointment]:
        return [
            appointment
            for appointment in self.all()
            if appointment.business_id == business_id
            and appointment.staff_id == staff_id
            and appointment.date == day
        ]

    def all(self) -> List[Appointment]:
        with self._lock:
            return list(self._appointments.values())

    def find_by_idempotency_key(self, key: str) -> Optional[Appointment]:
        for appointment in self.all():
            if appointment.idempotency_key == key:
                return appointment
        return None
