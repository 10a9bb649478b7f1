"""
Adapters layer - Storage and catalog implementations.
"""

from .catalog import InMemoryCatalog, StaffMember
from .json_store import JsonAppointmentStore
from .memory_store import InMemoryAppointmentStore

__all__ = ["InMemoryAppointmentStore", "InMemoryCatalog", "JsonAppointmentStore", "StaffMember"]
