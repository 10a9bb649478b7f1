"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_coordinator import BookingCoordinator, CatalogProtocol
from .ledger import AppointmentLedger, AppointmentStore

__all__ = ["AppointmentLedger", "AppointmentStore", "BookingCoordinator", "CatalogProtocol"]
