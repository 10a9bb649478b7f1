"""
Tests for the JSON file backed appointment store.
"""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from decimal import Decimal

import pendulum
import pytest

from slotbook.adapters.json_store import (
    JsonAppointmentStore,
    appointment_from_dict,
    appointment_to_dict,
)
from slotbook.domain.exceptions import ConflictError
from slotbook.domain.models import AppointmentStatus
from slotbook.services.ledger import AppointmentLedger
from tests.helpers import BUSINESS, MONDAY, TZ, make_appointment


@pytest.fixture
def path(tmp_path):
    return tmp_path / "data" / "appointments.json"


class TestSerialization:
    """Tests for the JSON record format."""

    def test_dict_uses_camel_case_keys(self):
        """Test that serialized appointments use camelCase keys."""
        data = appointment_to_dict(make_appointment(start="09:30", staff_id="anna"))

        assert data["businessId"] == BUSINESS
        assert data["staffId"] == "anna"
        assert data["date"] == "2024-11-25"
        assert data["startMinute"] == 570
        assert data["status"] == "confirmed"
        assert data["cancelledAt"] is None

    def test_restores_optional_fields(self):
        """Test that optional fields survive serialization."""
        stamp = pendulum.datetime(2024, 11, 20, 8, 15, tz=TZ)
        appointment = replace(
            make_appointment(),
            notes="Window seat",
            price=Decimal("35.00"),
            created_at=stamp,
            cancelled_at=stamp,
            status=AppointmentStatus.CANCELLED,
            cancellation_reason="Ill",
            rescheduled_from="apt-0",
        )

        restored = appointment_from_dict(appointment_to_dict(appointment))

        assert restored.price == Decimal("35.00")
        assert restored.created_at == stamp
        assert restored.cancellation_reason == "Ill"
        assert restored.rescheduled_from == "apt-0"
        assert restored.date == MONDAY

    def test_missing_field(self):
        """Test that a record without required fields raises KeyError."""
        with pytest.raises(KeyError):
            appointment_from_dict({"id": "apt-1"})


class TestJsonAppointmentStore:
    """Tests for the file-backed store."""

    def test_missing_file_starts_empty(self, path):
        """Test that a missing file gives an empty store."""
        store = JsonAppointmentStore(path)

        assert store.all() == []
        assert not path.exists()

    def test_commit_writes_file(self, path):
        """Test that commits are written to disk."""
        store = JsonAppointmentStore(path)
        store.commit(make_appointment(appointment_id="apt-a"))

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert [entry["id"] for entry in raw] == ["apt-a"]
        assert not path.with_suffix(".json.tmp").exists()

    def test_survives_reload(self, path):
        """Test that a new store instance sees earlier bookings."""
        ledger = AppointmentLedger(JsonAppointmentStore(path))
        booked = ledger.insert(make_appointment(start="10:00", appointment_id="apt-a"))

        reopened = AppointmentLedger(JsonAppointmentStore(path))

        assert reopened.get("apt-a").start_minute == booked.start_minute
        with pytest.raises(ConflictError):
            reopened.insert(make_appointment(start="10:15", appointment_id="apt-b"))

    def test_on_timeline_separates_staff(self, path):
        """Test that timeline queries separate staff members."""
        store = JsonAppointmentStore(path)
        store.commit(
            make_appointment(appointment_id="apt-a"),
            make_appointment(appointment_id="apt-b", staff_id="anna"),
        )

        assert [a.id for a in store.on_timeline(BUSINESS, None, MONDAY)] == ["apt-a"]
        assert [a.id for a in store.on_timeline(BUSINESS, "anna", MONDAY)] == ["apt-b"]

    def test_idempotency_key_lookup(self, path):
        """Test looking up appointments by idempotency key."""
        store = JsonAppointmentStore(path)
        store.commit(replace(make_appointment(appointment_id="apt-a"), idempotency_key="req-1"))

        assert JsonAppointmentStore(path).find_by_idempotency_key("req-1").id == "apt-a"
        assert store.find_by_idempotency_key("req-2") is None

    def test_invalid_json(self, path):
        """Test that a corrupt file raises ValueError."""
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid JSON"):
            JsonAppointmentStore(path)

    def test_root_must_be_list(self, path):
        """Test that the file must contain a list."""
        path.parent.mkdir(parents=True)
        path.write_text('{"id": "apt-a"}', encoding="utf-8")

        with pytest.raises(ValueError, match="list"):
            JsonAppointmentStore(path)


class TestSharedFile:
    """Tests for several stores (one per CLI process) sharing one file."""

    def test_second_writer_sees_first_booking(self, path):
        """Test that a store opened earlier still detects a booking made by another."""
        alice_side = AppointmentLedger(JsonAppointmentStore(path))
        bob_side = AppointmentLedger(JsonAppointmentStore(path))

        alice_side.insert(make_appointment(start="10:00", appointment_id="a-1", customer_id="alice"))

        with pytest.raises(ConflictError):
            bob_side.insert(make_appointment(start="10:00", appointment_id="b-1", customer_id="bob"))

        assert [entry["id"] for entry in json.loads(path.read_text(encoding="utf-8"))] == ["a-1"]

    def test_writers_never_drop_each_others_records(self, path):
        """Test that interleaved writes from two stores keep every appointment."""
        alice_side = AppointmentLedger(JsonAppointmentStore(path))
        bob_side = AppointmentLedger(JsonAppointmentStore(path))

        alice_side.insert(make_appointment(start="10:00", appointment_id="a-1"))
        bob_side.insert(make_appointment(start="11:00", appointment_id="b-1"))
        alice_side.transition("a-1", AppointmentStatus.CANCELLED)

        stored = {entry["id"]: entry["status"] for entry in json.loads(path.read_text(encoding="utf-8"))}
        assert stored == {"a-1": "cancelled", "b-1": "confirmed"}
        assert bob_side.get("a-1").status == AppointmentStatus.CANCELLED

    def test_racing_stores_have_one_winner(self, path):
        """Test that separate stores racing for one interval produce one booking."""
        ledgers = [AppointmentLedger(JsonAppointmentStore(path)) for _ in range(6)]
        barrier = threading.Barrier(len(ledgers))

        def attempt(index):
            barrier.wait()
            try:
                ledgers[index].insert(make_appointment(start="10:00", appointment_id=f"race-{index}"))
                return "booked"
            except ConflictError:
                return "conflict"

        with ThreadPoolExecutor(max_workers=len(ledgers)) as pool:
            results = list(pool.map(attempt, range(len(ledgers))))

        assert results.count("booked") == 1
        assert len(json.loads(path.read_text(encoding="utf-8"))) == 1
