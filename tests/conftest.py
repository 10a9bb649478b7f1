"""Shared test fixtures."""

import pendulum
import pytest

from slotbook.adapters.catalog import InMemoryCatalog, StaffMember
from slotbook.adapters.memory_store import InMemoryAppointmentStore
from slotbook.domain.availability import AvailabilityResolver
from slotbook.domain.state_machine import BookingStateMachine
from slotbook.services.booking_coordinator import BookingCoordinator
from slotbook.services.ledger import AppointmentLedger
from tests.helpers import BUSINESS, TZ, FixedClock, make_service, weekday_calendar


@pytest.fixture
def state_machine():
    return BookingStateMachine()


@pytest.fixture
def calendar():
    return weekday_calendar()


@pytest.fixture
def store():
    return InMemoryAppointmentStore()


@pytest.fixture
def ledger(store):
    return AppointmentLedger(store)


@pytest.fixture
def clock():
    # the Sunday before the test Monday, so same-day filtering stays out of the way
    return FixedClock(pendulum.datetime(2024, 11, 24, 12, 0, tz=TZ))


@pytest.fixture
def catalog():
    return InMemoryCatalog(
        business_ids=[BUSINESS, "other-business"],
        services=[
            make_service("haircut", duration=30, instant_book=True),
            make_service("colouring", duration=90, instant_book=False),
            make_service("retired", duration=30, active=False),
            make_service("yoga", duration=60, business_id="other-business"),
        ],
        staff=[
            StaffMember(id="anna", business_id=BUSINESS, name="Anna",
                        service_ids=frozenset({"haircut", "colouring"})),
            StaffMember(id="ben", business_id=BUSINESS, name="Ben",
                        service_ids=frozenset({"haircut"})),
        ],
    )


@pytest.fixture
def coordinator(catalog, calendar, ledger, clock):
    resolver = AvailabilityResolver(
        working_hours=calendar,
        intervals=ledger,
        granularity_minutes=30,
    )
    return BookingCoordinator(
        catalog=catalog,
        ledger=ledger,
        resolver=resolver,
        timezone=TZ,
        clock=clock,
    )
