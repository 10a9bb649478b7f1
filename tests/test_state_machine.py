"""Tests for the booking state machine."""

import pytest

from slotbook.domain.exceptions import InvalidTransitionError
from slotbook.domain.models import Actor, AppointmentStatus
from slotbook.domain.state_machine import TERMINAL_STATUSES
from tests.helpers import make_service

PENDING = AppointmentStatus.PENDING
CONFIRMED = AppointmentStatus.CONFIRMED
COMPLETED = AppointmentStatus.COMPLETED
CANCELLED = AppointmentStatus.CANCELLED


class TestInitialStatus:
    """Tests for the status a new booking starts in."""

    def test_instant_book_starts_confirmed(self, state_machine):
        """Test that instant-book services start confirmed."""
        assert state_machine.initial_status(make_service(instant_book=True)) == CONFIRMED

    def test_approval_required_starts_pending(self, state_machine):
        """Test that services needing approval start pending."""
        assert state_machine.initial_status(make_service(instant_book=False)) == PENDING


class TestAllowedTransitions:
    """Tests for the transition table."""

    @pytest.mark.parametrize(
        "current, target",
        [
            (PENDING, CONFIRMED),
            (PENDING, CANCELLED),
            (CONFIRMED, CANCELLED),
            (CONFIRMED, COMPLETED),
        ],
    )
    def test_table_entries_allowed(self, state_machine, current, target):
        """Test that every listed transition is accepted."""
        state_machine.validate(current, target)
        assert state_machine.can_transition(current, target)

    def test_pending_cannot_complete(self, state_machine):
        """Test that a pending appointment cannot be completed."""
        with pytest.raises(InvalidTransitionError):
            state_machine.validate(PENDING, COMPLETED)

    def test_confirmed_cannot_go_back_to_pending(self, state_machine):
        """Test that confirmation cannot be undone."""
        with pytest.raises(InvalidTransitionError):
            state_machine.validate(CONFIRMED, PENDING)

    def test_self_transition_rejected(self, state_machine):
        """Test that moving to the same status is rejected."""
        with pytest.raises(InvalidTransitionError):
            state_machine.validate(CONFIRMED, CONFIRMED)

    def test_allowed_targets(self, state_machine):
        """Test the targets reachable from a status."""
        assert state_machine.allowed_targets(PENDING) == {CONFIRMED, CANCELLED}
        assert state_machine.allowed_targets(CANCELLED) == frozenset()


class TestTerminalStates:
    """Tests for completed and cancelled appointments."""

    @pytest.mark.parametrize("current", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    @pytest.mark.parametrize("target", list(AppointmentStatus))
    def test_no_way_out_of_terminal_states(self, state_machine, current, target):
        """Test that terminal statuses accept no transition."""
        assert state_machine.is_terminal(current)
        assert not state_machine.can_transition(current, target)
        with pytest.raises(InvalidTransitionError):
            state_machine.validate(current, target)


class TestActorRoles:
    """Tests for who may trigger a transition."""

    def test_customer_cannot_confirm(self, state_machine):
        """Test that only the business confirms requests."""
        with pytest.raises(InvalidTransitionError, match="customer"):
            state_machine.validate(PENDING, CONFIRMED, Actor.customer("alice"))

    def test_business_can_confirm(self, state_machine):
        """Test that the business confirms a pending request."""
        state_machine.validate(PENDING, CONFIRMED, Actor.business("glow-salon"))

    def test_customer_can_cancel(self, state_machine):
        """Test that a customer may cancel."""
        state_machine.validate(CONFIRMED, CANCELLED, Actor.customer("alice"))

    def test_customer_cannot_complete(self, state_machine):
        """Test that a customer cannot complete an appointment."""
        assert not state_machine.can_transition(CONFIRMED, COMPLETED, Actor.customer("alice"))

    def test_system_can_complete(self, state_machine):
        """Test that the system actor completes elapsed appointments."""
        state_machine.validate(CONFIRMED, COMPLETED, Actor.system())
