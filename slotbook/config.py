"""
Configuration management using Pydantic models loaded from YAML.
"""

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .adapters.catalog import InMemoryCatalog, StaffMember
from .domain.availability import DEFAULT_GRANULARITY_MINUTES
from .domain.models import DayOfWeek, Service, WorkingHours, parse_clock
from .domain.working_hours import WorkingHoursCalendar


class BookingConfig(BaseModel):
    """Slot generation settings."""
    slot_granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES
    min_lead_time_minutes: int = 0

    @field_validator("slot_granularity_minutes")
    @classmethod
    def validate_granularity(cls, value: int) -> int:
        """Ensure slot spacing is positive."""
        if value <= 0:
            raise ValueError("slot_granularity_minutes must be greater than zero")
        return value

    @field_validator("min_lead_time_minutes")
    @classmethod
    def validate_lead_time(cls, value: int) -> int:
        if value < 0:
            raise ValueError("min_lead_time_minutes cannot be negative")
        return value


class StorageConfig(BaseModel):
    """Where the CLI keeps appointments."""
    appointments_file: Path = Path("appointments.json")


class DayHoursConfig(BaseModel):
    """Opening hours for one weekday. ``closed: true`` ignores the times."""
    open: Optional[str] = None
    close: Optional[str] = None
    closed: bool = False

    @model_validator(mode="after")
    def validate_window(self) -> "DayHoursConfig":
        """Ensure an open day opens before it closes."""
        if self.closed:
            return self
        if self.open is None or self.close is None:
            raise ValueError("open and close are required unless the day is closed")
        if parse_clock(self.open) >= parse_clock(self.close):
            raise ValueError(f"open ({self.open}) must be earlier than close ({self.close})")
        return self

    def to_working_hours(self, day: DayOfWeek) -> WorkingHours:
        if self.closed:
            return WorkingHours.closed(day)
        return WorkingHours.open_between(day, self.open, self.close)


class ServiceConfig(BaseModel):
    """Service offered by a business."""
    id: str
    name: str = ""
    duration_minutes: int
    active: bool = True
    instant_book: bool = False
    price: Optional[Decimal] = None

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure service duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value


class StaffConfig(BaseModel):
    """Staff member; an empty service list means they perform every service."""
    id: str
    name: str = ""
    services: List[str] = Field(default_factory=list)
    active: bool = True


class BusinessConfig(BaseModel):
    """A business with its weekly hours, services and staff."""
    id: str
    name: str = ""
    hours: Dict[DayOfWeek, DayHoursConfig] = Field(default_factory=dict)
    services: List[ServiceConfig] = Field(default_factory=list)
    staff: List[StaffConfig] = Field(default_factory=list)

    @field_validator("hours", mode="before")
    @classmethod
    def normalize_hours(cls, value: Any) -> Any:
        """Accept lower/upper case day names and the shorthand ``closed``."""
        if not isinstance(value, dict):
            return value
        normalized = {}
        for day, entry in value.items():
            key = DayOfWeek.parse(day)
            if isinstance(entry, str) and entry.strip().lower() == "closed":
                entry = {"closed": True}
            normalized[key] = entry
        return normalized

    @model_validator(mode="after")
    def validate_staff_services(self) -> "BusinessConfig":
        """Staff may only reference services of the same business."""
        known = {service.id for service in self.services}
        for member in self.staff:
            unknown = [s for s in member.services if s not in known]
            if unknown:
                raise ValueError(
                    f"Staff member {member.id} references unknown service(s): {', '.join(unknown)}"
                )
        return self

    def week(self) -> List[WorkingHours]:
        """Configured days only; days left out are closed."""
        return [entry.to_working_hours(day) for day, entry in self.hours.items()]


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Berlin"
    booking: BookingConfig = Field(default_factory=BookingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    businesses: List[BusinessConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "AppConfig":
        """Business, service and staff ids must be unique across the file."""
        for label, ids in (
            ("business", [b.id for b in self.businesses]),
            ("service", [s.id for b in self.businesses for s in b.services]),
            ("staff", [m.id for b in self.businesses for m in b.staff]),
        ):
            seen: set[str] = set()
            for identifier in ids:
                if identifier in seen:
                    raise ValueError(f"Duplicate {label} id detected: {identifier}")
                seen.add(identifier)
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    def find_business(self, business_id: str) -> Optional[BusinessConfig]:
        for business in self.businesses:
            if business.id == business_id:
                return business
        return None

    def build_calendar(self) -> WorkingHoursCalendar:
        return WorkingHoursCalendar({b.id: b.week() for b in self.businesses})

    def build_catalog(self) -> InMemoryCatalog:
        return InMemoryCatalog(
            business_ids=[b.id for b in self.businesses],
            services=[
                Service(
                    id=s.id,
                    business_id=b.id,
                    name=s.name or s.id,
                    duration_minutes=s.duration_minutes,
                    active=s.active,
                    instant_book=s.instant_book,
                    price=s.price,
                )
                for b in self.businesses
                for s in b.services
            ],
            staff=[
                StaffMember(
                    id=m.id,
                    business_id=b.id,
                    name=m.name or m.id,
                    service_ids=frozenset(m.services),
                    active=m.active,
                )
                for b in self.businesses
                for m in b.staff
            ],
        )


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
