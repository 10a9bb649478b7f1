"""
JSON file backed appointment store used by the CLI.
"""

import fcntl
import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pendulum

from ..domain.models import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)


def appointment_to_dict(appointment: Appointment) -> Dict[str, Any]:
    """Serialize an appointment to JSON-compatible primitives."""
    def stamp(value):
        return value.to_iso8601_string() if value is not None else None

    return {
        "id": appointment.id,
        "businessId": appointment.business_id,
        "serviceId": appointment.service_id,
        "customerId": appointment.customer_id,
        "staffId": appointment.staff_id,
        "date": appointment.date.isoformat(),
        "startMinute": appointment.start_minute,
        "durationMinutes": appointment.duration_minutes,
        "status": appointment.status.value,
        "notes": appointment.notes,
        "price": str(appointment.price) if appointment.price is not None else None,
        "createdAt": stamp(appointment.created_at),
        "updatedAt": stamp(appointment.updated_at),
        "cancelledAt": stamp(appointment.cancelled_at),
        "cancellationReason": appointment.cancellation_reason,
        "rescheduledFrom": appointment.rescheduled_from,
        "idempotencyKey": appointment.idempotency_key,
    }


def appointment_from_dict(data: Dict[str, Any]) -> Appointment:
    """
    Rebuild an appointment from its serialized form.

    Raises:
        KeyError: If a required field is missing
        ValueError: If a field cannot be parsed
    """
    def stamp(key):
        value = data.get(key)
        return pendulum.parse(value) if value else None

    price = data.get("price")
    return Appointment(
        id=data["id"],
        business_id=data["businessId"],
        service_id=data["serviceId"],
        customer_id=data["customerId"],
        staff_id=data.get("staffId"),
        date=pendulum.parse(data["date"]).date(),
        start_minute=int(data["startMinute"]),
        duration_minutes=int(data["durationMinutes"]),
        status=AppointmentStatus(data["status"]),
        notes=data.get("notes"),
        price=Decimal(price) if price is not None else None,
        created_at=stamp("createdAt"),
        updated_at=stamp("updatedAt"),
        cancelled_at=stamp("cancelledAt"),
        cancellation_reason=data.get("cancellationReason"),
        rescheduled_from=data.get("rescheduledFrom"),
        idempotency_key=data.get("idempotencyKey"),
    )


class JsonAppointmentStore:
    """
    Keeps appointments in memory and mirrors every commit to a JSON file.

    Several processes may share one file. Writes happen inside
    ``transaction()``, which holds an exclusive ``flock`` on a sidecar
    ``.lock`` file and reloads the ledger from disk first, so overlap checks
    never run against a stale copy. The file is rewritten through a
    temporary file and ``os.replace``, so readers never see a truncated
    ledger.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        self._lock = threading.Lock()
        self._transaction_lock = threading.Lock()
        self._appointments: Dict[str, Appointment] = {}
        self._seen: Optional[Tuple[int, int]] = None
        self._load()

    def _file_signature(self) -> Optional[Tuple[int, int]]:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def _load(self) -> None:
        """Load appointments from the JSON file, if it exists."""
        signature = self._file_signature()
        appointments: Dict[str, Appointment] = {}

        if signature is not None:
            with open(self.path, "r", encoding="utf-8") as f:
                try:
                    raw = json.load(f)
                except json.JSONDecodeError as exc:
                    raise ValueError(f"Invalid JSON in {self.path}: {exc}") from exc

            if not isinstance(raw, list):
                raise ValueError(f"{self.path} must contain a list of appointments")

            for entry in raw:
                appointment = appointment_from_dict(entry)
                appointments[appointment.id] = appointment

        with self._lock:
            self._appointments = appointments
            self._seen = signature

        logger.debug("Loaded %d appointment(s) from %s", len(appointments), self.path)

    def _refresh(self) -> None:
        """Reload when another process has rewritten the file."""
        if self._file_signature() != self._seen:
            self._load()

    def _flush(self) -> None:
        payload = [appointment_to_dict(a) for a in self._appointments.values()]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, self.path)
        self._seen = self._file_signature()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Exclusive access to the file across threads and processes."""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self._transaction_lock, open(self.lock_path, "a") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                self._load()
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def get(self, appointment_id: str) -> Optional[Appointment]:
        self._refresh()
        return self._appointments.get(appointment_id)

    def commit(self, *appointments: Appointment) -> None:
        with self._lock:
            previous = dict(self._appointments)
            for appointment in appointments:
                self._appointments[appointment.id] = appointment
            try:
                self._flush()
            except OSError:
                self._appointments = previous
                raise

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
        self._refresh()
        with self._lock:
            return list(self._appointments.values())

    def find_by_idempotency_key(self, key: str) -> Optional[Appointment]:
        for appointment in self.all():
            if appointment.idempotency_key == key:
                return appointment
        return None
