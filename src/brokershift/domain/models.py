"""Core domain models for the broker shift allocation system.

This module contains the fundamental data structures used throughout
the scheduling engine:
- Brokers with global weekday/shift availability
- Locations (internal offices and external sites) with their periods
- Per-weekday and per-date shift configuration
- Demands (transient coverage slots) and Assignments (the output)
"""

from dataclasses import dataclass, field
from datetime import date, time, timedelta
from enum import Enum
from typing import Optional

from brokershift.errors import ConfigurationError

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

BUSINESS_DAYS = WEEKDAYS[:5]


def weekday_name(day: date) -> str:
    """Return the lowercase English weekday name for a date."""
    return WEEKDAYS[day.weekday()]


def week_start_for(day: date) -> date:
    """Return the Monday that starts the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def week_dates(week_start: date) -> list[date]:
    """Return the seven dates (Monday to Sunday) of a week."""
    return [week_start + timedelta(days=i) for i in range(7)]


class Shift(Enum):
    """Shift of a working day."""

    MORNING = "morning"
    AFTERNOON = "afternoon"

    @property
    def order(self) -> int:
        """Sort key: morning before afternoon."""
        return 0 if self is Shift.MORNING else 1


class LocationType(Enum):
    """Kind of location."""

    INTERNAL = "internal"  # Company office, fixed roster
    EXTERNAL = "external"  # Client/builder site, rotating brokers


class ShiftConfigMode(Enum):
    """How a location's shifts are configured."""

    WEEKDAY_TEMPLATE = "weekday"  # Per-weekday template, specific dates override
    SPECIFIC_DATE = "specific_date"  # Only explicitly configured dates exist


DEFAULT_SHIFT_TIMES = {
    Shift.MORNING: (time(8, 0), time(12, 0)),
    Shift.AFTERNOON: (time(13, 0), time(18, 0)),
}


@dataclass
class DayConfig:
    """Shift configuration for one weekday (template) or one specific date.

    Attributes:
        has_morning: Whether a morning shift exists.
        has_afternoon: Whether an afternoon shift exists.
        morning_start: Morning start time.
        morning_end: Morning end time.
        afternoon_start: Afternoon start time.
        afternoon_end: Afternoon end time.
        max_brokers: Maximum brokers for the day (used for internal Saturdays).
    """

    has_morning: bool = True
    has_afternoon: bool = True
    morning_start: time = time(8, 0)
    morning_end: time = time(12, 0)
    afternoon_start: time = time(13, 0)
    afternoon_end: time = time(18, 0)
    max_brokers: int = 1

    def has_shift(self, shift: Shift) -> bool:
        if shift is Shift.MORNING:
            return self.has_morning
        return self.has_afternoon

    def times_for(self, shift: Shift) -> tuple[time, time]:
        """Get (start, end) times for a shift."""
        if shift is Shift.MORNING:
            return self.morning_start, self.morning_end
        return self.afternoon_start, self.afternoon_end

    @property
    def shifts(self) -> list[Shift]:
        """Configured shifts in day order."""
        return [s for s in Shift if self.has_shift(s)]


@dataclass
class ExcludedDate:
    """A date (or some shifts of it) removed from a period.

    Attributes:
        day: The excluded date.
        shifts: Excluded shifts. None means the whole day.
    """

    day: date
    shifts: Optional[set[Shift]] = None

    @property
    def whole_day(self) -> bool:
        return self.shifts is None or set(Shift) <= self.shifts

    def excludes(self, shift: Shift) -> bool:
        return self.whole_day or shift in self.shifts


@dataclass
class Period:
    """Active date range of a location with its shift configuration.

    Attributes:
        id: Unique identifier.
        start: First active date (inclusive).
        end: Last active date (inclusive).
        weekday_configs: Weekday name -> DayConfig template.
        specific_configs: Date -> DayConfig override.
        excluded_dates: Dates or shifts removed from the period.
    """

    id: str
    start: date
    end: date
    weekday_configs: dict[str, DayConfig] = field(default_factory=dict)
    specific_configs: dict[date, DayConfig] = field(default_factory=dict)
    excluded_dates: list[ExcludedDate] = field(default_factory=list)

    def __post_init__(self):
        if self.end < self.start:
            raise ConfigurationError(
                f"Period {self.id} ends ({self.end}) before it starts ({self.start})"
            )
        for weekday in self.weekday_configs:
            if weekday not in WEEKDAYS:
                raise ConfigurationError(f"Period {self.id}: unknown weekday {weekday!r}")

    def covers(self, day: date) -> bool:
        return self.start <= day <= self.end

    def exclusion_for(self, day: date) -> Optional[ExcludedDate]:
        """Get the exclusion entry for a date, if any."""
        for excluded in self.excluded_dates:
            if excluded.day == day:
                return excluded
        return None

    def is_day_excluded(self, day: date) -> bool:
        excluded = self.exclusion_for(day)
        return excluded is not None and excluded.whole_day

    def is_shift_excluded(self, day: date, shift: Shift) -> bool:
        excluded = self.exclusion_for(day)
        return excluded is not None and excluded.excludes(shift)


@dataclass
class Broker:
    """A real-estate broker that can be assigned to shifts.

    Attributes:
        id: Unique identifier.
        name: Display name.
        available_weekdays: Weekdays the broker works at all.
        weekday_shifts: Optional global weekday -> shifts override. It is
            absolute: no location link can re-admit a shift it excludes.
        internal_location_id: Home internal location, if any.
        active: Inactive brokers are never scheduled.
    """

    id: str
    name: str
    available_weekdays: set[str] = field(default_factory=lambda: set(WEEKDAYS))
    weekday_shifts: Optional[dict[str, set[Shift]]] = None
    internal_location_id: Optional[str] = None
    active: bool = True

    def works_on(self, weekday: str) -> bool:
        return weekday in self.available_weekdays

    def allows_shift(self, weekday: str, shift: Shift) -> bool:
        """Check weekday availability plus the global shift override."""
        if not self.works_on(weekday):
            return False
        if self.weekday_shifts is not None and weekday in self.weekday_shifts:
            return shift in self.weekday_shifts[weekday]
        return True


@dataclass
class LocationBrokerLink:
    """Association between a broker and a location.

    The local override can only narrow what the broker's global
    availability allows.

    Attributes:
        broker_id: Linked broker.
        weekday_shifts: Optional weekday -> shifts override for this location.
        available_morning: Legacy flag used when no override exists.
        available_afternoon: Legacy flag used when no override exists.
    """

    broker_id: str
    weekday_shifts: Optional[dict[str, set[Shift]]] = None
    available_morning: bool = True
    available_afternoon: bool = True

    def allows_shift(self, weekday: str, shift: Shift) -> bool:
        if self.weekday_shifts is not None and weekday in self.weekday_shifts:
            return shift in self.weekday_shifts[weekday]
        if shift is Shift.MORNING:
            return self.available_morning
        return self.available_afternoon


@dataclass
class Location:
    """A place where brokers work shifts.

    Attributes:
        id: Unique identifier.
        name: Display name.
        location_type: Internal office or external site.
        builder: Builder/construction company tag (external sites).
        shift_config_mode: Weekday template or specific-date only.
        periods: Active periods.
        links: Configured brokers.
        flagship: Flagship external site (strict rotation between weeks).
        saturday_min_staff: Staffing floor for internal Saturdays.
        max_team_on_external_per_day: Small-team capacity protection for
            internal offices; caps team members on externals per weekday.

    Example:
        >>> loc = Location(id="L1", name="Harbor View", location_type=LocationType.EXTERNAL)
        >>> loc.is_external
        True
    """

    id: str
    name: str
    location_type: LocationType
    builder: Optional[str] = None
    shift_config_mode: ShiftConfigMode = ShiftConfigMode.WEEKDAY_TEMPLATE
    periods: list[Period] = field(default_factory=list)
    links: list[LocationBrokerLink] = field(default_factory=list)
    flagship: bool = False
    saturday_min_staff: int = 1
    max_team_on_external_per_day: Optional[int] = None

    @property
    def is_external(self) -> bool:
        return self.location_type is LocationType.EXTERNAL

    @property
    def is_internal(self) -> bool:
        return self.location_type is LocationType.INTERNAL

    @property
    def broker_ids(self) -> list[str]:
        """Configured broker IDs in link order."""
        return [link.broker_id for link in self.links]

    def link_for(self, broker_id: str) -> Optional[LocationBrokerLink]:
        for link in self.links:
            if link.broker_id == broker_id:
                return link
        return None

    def active_period(self, day: date) -> Optional[Period]:
        """Get the period covering a date, if any."""
        for period in self.periods:
            if period.covers(day):
                return period
        return None

    def day_config(self, day: date) -> Optional[DayConfig]:
        """Resolve the day configuration for a date.

        Specific-date config wins over the weekday template; the template
        is ignored for locations in specific-date mode. Whole-day
        exclusions are not applied here.
        """
        period = self.active_period(day)
        if period is None:
            return None
        specific = period.specific_configs.get(day)
        if specific is not None:
            return specific
        if self.shift_config_mode is ShiftConfigMode.SPECIFIC_DATE:
            return None
        return period.weekday_configs.get(weekday_name(day))

    def open_shifts(self, day: date) -> list[Shift]:
        """Shifts that actually run on a date after all exclusions."""
        period = self.active_period(day)
        if period is None or period.is_day_excluded(day):
            return []
        config = self.day_config(day)
        if config is None:
            return []
        return [s for s in config.shifts if not period.is_shift_excluded(day, s)]


def demand_key(location_id: str, day: date, shift: Shift) -> str:
    """Build the canonical key of a (location, date, shift) slot."""
    return f"{location_id}|{day.isoformat()}|{shift.value}"


@dataclass
class Demand:
    """A (location, date, shift) slot that needs one broker.

    Attributes:
        location_id: Location to cover.
        location_name: Location display name.
        day: Calendar date.
        shift: Morning or afternoon.
        start_time: Shift start.
        end_time: Shift end.
        eligible_broker_ids: Brokers allowed to fill it, in link order.
        builder: Builder tag of the location.
        flagship: Whether the location is a flagship site.
    """

    location_id: str
    location_name: str
    day: date
    shift: Shift
    start_time: time
    end_time: time
    eligible_broker_ids: list[str] = field(default_factory=list)
    builder: Optional[str] = None
    flagship: bool = False

    @property
    def key(self) -> str:
        return demand_key(self.location_id, self.day, self.shift)

    @property
    def weekday(self) -> str:
        return weekday_name(self.day)

    @property
    def is_saturday(self) -> bool:
        return self.day.weekday() == 5

    @property
    def is_sunday(self) -> bool:
        return self.day.weekday() == 6

    def is_eligible(self, broker_id: str) -> bool:
        return broker_id in self.eligible_broker_ids

    def __str__(self) -> str:
        return f"{self.location_name} {self.day.isoformat()} {self.shift.value}"


@dataclass(frozen=True)
class Assignment:
    """A broker placed on a (location, date, shift).

    Attributes:
        broker_id: Assigned broker.
        location_id: Location worked.
        day: Calendar date.
        shift: Morning or afternoon.
        start_time: Shift start.
        end_time: Shift end.
    """

    broker_id: str
    location_id: str
    day: date
    shift: Shift
    start_time: time
    end_time: time

    @property
    def slot_key(self) -> tuple[str, date, Shift]:
        """(broker, date, shift) key; unique within a valid schedule."""
        return (self.broker_id, self.day, self.shift)

    @classmethod
    def for_demand(cls, demand: Demand, broker_id: str) -> "Assignment":
        return cls(
            broker_id=broker_id,
            location_id=demand.location_id,
            day=demand.day,
            shift=demand.shift,
            start_time=demand.start_time,
            end_time=demand.end_time,
        )
