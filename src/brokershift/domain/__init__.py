"""Domain models and policies for broker shift allocation."""

from brokershift.domain.accumulator import WeeklyAccumulator, WeeklyStats
from brokershift.domain.models import (
    BUSINESS_DAYS,
    WEEKDAYS,
    Assignment,
    Broker,
    DayConfig,
    Demand,
    ExcludedDate,
    Location,
    LocationBrokerLink,
    LocationType,
    Period,
    Shift,
    ShiftConfigMode,
    demand_key,
    week_dates,
    week_start_for,
    weekday_name,
)
from brokershift.domain.policies import (
    AllocationLimits,
    DefaultExternalTargetPolicy,
    ExternalTargetPolicy,
    PassPolicy,
    RetryPolicy,
)
from brokershift.domain.queues import QueueEntry, RotationQueue

__all__ = [
    # Models
    "Assignment",
    "Broker",
    "DayConfig",
    "Demand",
    "ExcludedDate",
    "Location",
    "LocationBrokerLink",
    "LocationType",
    "Period",
    "Shift",
    "ShiftConfigMode",
    # Calendar helpers
    "BUSINESS_DAYS",
    "WEEKDAYS",
    "demand_key",
    "week_dates",
    "week_start_for",
    "weekday_name",
    # Rotation
    "QueueEntry",
    "RotationQueue",
    # Cross-week state
    "WeeklyAccumulator",
    "WeeklyStats",
    # Policies
    "AllocationLimits",
    "DefaultExternalTargetPolicy",
    "ExternalTargetPolicy",
    "PassPolicy",
    "RetryPolicy",
]
