"""
Read-only catalog of businesses, services and staff.

Businesses, services and staff are owned by the surrounding application; the
booking engine only needs to look them up.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from ..domain.models import Service


@dataclass(frozen=True)
class StaffMember:
    """A staff member and the services they perform (empty = all)."""
    id: str
    business_id: str
    name: str = ""
    service_ids: FrozenSet[str] = field(default_factory=frozenset)
    active: bool = True

    def performs(self, service_id: str) -> bool:
        return not self.service_ids or service_id in self.service_ids


class InMemoryCatalog:
    """Dictionary-backed catalog, usually built from the YAML configuration."""

    def __init__(
        self,
        business_ids: Iterable[str] = (),
        services: Iterable[Service] = (),
        staff: Iterable[StaffMember] = (),
    ):
        self._businesses = set(business_ids)
        self._services: Dict[str, Service] = {}
        self._staff: Dict[str, StaffMember] = {}

        for service in services:
            self._businesses.add(service.business_id)
            self._services[service.id] = service
        for member in staff:
            self._businesses.add(member.business_id)
            self._staff[member.id] = member

    def has_business(self, business_id: str) -> bool:
        return business_id in self._businesses

    def get_service(self, service_id: str) -> Optional[Service]:
        return self._services.get(service_id)

    def get_staff(self, staff_id: str) -> Optional[StaffMember]:
        return self._staff.get(staff_id)

    def services_for(self, business_id: str) -> List[Service]:
        return [s for s in self._services.values() if s.business_id == business_id]

    def staff_for(self, business_id: str) -> List[StaffMember]:
        return [m for m in self._staff.values() if m.business_id == business_id]
