"""Conversion between domain objects and JSON-compatible dicts."""

from datetime import date, time
from typing import Any, Optional

from brokershift.domain.accumulator import WeeklyStats
from brokershift.domain.models import (
    WEEKDAYS,
    Assignment,
    Broker,
    DayConfig,
    ExcludedDate,
    Location,
    LocationBrokerLink,
    LocationType,
    Period,
    Shift,
    ShiftConfigMode,
)
from brokershift.domain.queues import QueueEntry, RotationQueue
from brokershift.errors import ConfigurationError


def _time(value: str) -> time:
    return time.fromisoformat(value)


def _date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _shift_map_to_dict(shifts: Optional[dict[str, set[Shift]]]) -> Optional[dict[str, list[str]]]:
    if shifts is None:
        return None
    return {day: sorted(s.value for s in values) for day, values in shifts.items()}


def _shift_map_from_dict(data: Optional[dict[str, list[str]]]) -> Optional[dict[str, set[Shift]]]:
    if data is None:
        return None
    return {day: {Shift(s) for s in values} for day, values in data.items()}


# -- brokers ---------------------------------------------------------------


def broker_to_dict(broker: Broker) -> dict[str, Any]:
    return {
        "id": broker.id,
        "name": broker.name,
        "available_weekdays": [d for d in WEEKDAYS if d in broker.available_weekdays],
        "weekday_shifts": _shift_map_to_dict(broker.weekday_shifts),
        "internal_location_id": broker.internal_location_id,
        "active": broker.active,
    }


def broker_from_dict(data: dict[str, Any]) -> Broker:
    return Broker(
        id=data["id"],
        name=data.get("name", data["id"]),
        available_weekdays=set(data.get("available_weekdays", WEEKDAYS)),
        weekday_shifts=_shift_map_from_dict(data.get("weekday_shifts")),
        internal_location_id=data.get("internal_location_id"),
        active=data.get("active", True),
    )


# -- locations -------------------------------------------------------------


def day_config_to_dict(config: DayConfig) -> dict[str, Any]:
    return {
        "has_morning": config.has_morning,
        "has_afternoon": config.has_afternoon,
        "morning_start": config.morning_start.isoformat("minutes"),
        "morning_end": config.morning_end.isoformat("minutes"),
        "afternoon_start": config.afternoon_start.isoformat("minutes"),
        "afternoon_end": config.afternoon_end.isoformat("minutes"),
        "max_brokers": config.max_brokers,
    }


def day_config_from_dict(data: dict[str, Any]) -> DayConfig:
    config = DayConfig(
        has_morning=data.get("has_morning", True),
        has_afternoon=data.get("has_afternoon", True),
        max_brokers=data.get("max_brokers", 1),
    )
    for attr in ("morning_start", "morning_end", "afternoon_start", "afternoon_end"):
        if data.get(attr):
            setattr(config, attr, _time(data[attr]))
    return config


def period_to_dict(period: Period) -> dict[str, Any]:
    return {
        "id": period.id,
        "start": period.start.isoformat(),
        "end": period.end.isoformat(),
        "weekday_configs": {
            day: day_config_to_dict(config) for day, config in period.weekday_configs.items()
        },
        "specific_configs": {
            day.isoformat(): day_config_to_dict(config)
            for day, config in sorted(period.specific_configs.items())
        },
        "excluded_dates": [
            {
                "date": excluded.day.isoformat(),
                "shifts": None if excluded.shifts is None else sorted(s.value for s in excluded.shifts),
            }
            for excluded in period.excluded_dates
        ],
    }


def period_from_dict(data: dict[str, Any]) -> Period:
    return Period(
        id=data["id"],
        start=date.fromisoformat(data["start"]),
        end=date.fromisoformat(data["end"]),
        weekday_configs={
            day: day_config_from_dict(config)
            for day, config in data.get("weekday_configs", {}).items()
        },
        specific_configs={
            date.fromisoformat(day): day_config_from_dict(config)
            for day, config in data.get("specific_configs", {}).items()
        },
        excluded_dates=[
            ExcludedDate(
                day=date.fromisoformat(item["date"]),
                shifts=None if item.get("shifts") is None else {Shift(s) for s in item["shifts"]},
            )
            for item in data.get("excluded_dates", [])
        ],
    )


def link_to_dict(link: LocationBrokerLink) -> dict[str, Any]:
    return {
        "broker_id": link.broker_id,
        "weekday_shifts": _shift_map_to_dict(link.weekday_shifts),
        "available_morning": link.available_morning,
        "available_afternoon": link.available_afternoon,
    }


def link_from_dict(data: dict[str, Any]) -> LocationBrokerLink:
    return LocationBrokerLink(
        broker_id=data["broker_id"],
        weekday_shifts=_shift_map_from_dict(data.get("weekday_shifts")),
        available_morning=data.get("available_morning", True),
        available_afternoon=data.get("available_afternoon", True),
    )


def location_to_dict(location: Location) -> dict[str, Any]:
    return {
        "id": location.id,
        "name": location.name,
        "type": location.location_type.value,
        "builder": location.builder,
        "shift_config_mode": location.shift_config_mode.value,
        "flagship": location.flagship,
        "saturday_min_staff": location.saturday_min_staff,
        "max_team_on_external_per_day": location.max_team_on_external_per_day,
        "periods": [period_to_dict(p) for p in location.periods],
        "links": [link_to_dict(link) for link in location.links],
    }


def location_from_dict(data: dict[str, Any]) -> Location:
    try:
        location_type = LocationType(data["type"])
    except ValueError:
        raise ConfigurationError(f"Unknown location type {data['type']!r} for {data['id']}")
    return Location(
        id=data["id"],
        name=data.get("name", data["id"]),
        location_type=location_type,
        builder=data.get("builder"),
        shift_config_mode=ShiftConfigMode(data.get("shift_config_mode", "weekday")),
        periods=[period_from_dict(p) for p in data.get("periods", [])],
        links=[link_from_dict(link) for link in data.get("links", [])],
        flagship=data.get("flagship", False),
        saturday_min_staff=data.get("saturday_min_staff", 1),
        max_team_on_external_per_day=data.get("max_team_on_external_per_day"),
    )


# -- schedule state --------------------------------------------------------


def assignment_to_dict(assignment: Assignment) -> dict[str, Any]:
    return {
        "broker_id": assignment.broker_id,
        "location_id": assignment.location_id,
        "date": assignment.day.isoformat(),
        "shift": assignment.shift.value,
        "start": assignment.start_time.isoformat("minutes"),
        "end": assignment.end_time.isoformat("minutes"),
    }


def assignment_from_dict(data: dict[str, Any]) -> Assignment:
    return Assignment(
        broker_id=data["broker_id"],
        location_id=data["location_id"],
        day=date.fromisoformat(data["date"]),
        shift=Shift(data["shift"]),
        start_time=_time(data["start"]),
        end_time=_time(data["end"]),
    )


def queue_to_dict(queue: RotationQueue) -> list[dict[str, Any]]:
    return [
        {
            "broker_id": entry.broker_id,
            "position": entry.position,
            "times_assigned": entry.times_assigned,
            "last_assigned": entry.last_assigned.isoformat() if entry.last_assigned else None,
        }
        for entry in queue
    ]


def queue_from_dict(location_id: str, data: list[dict[str, Any]]) -> RotationQueue:
    entries = [
        QueueEntry(
            broker_id=item["broker_id"],
            position=item["position"],
            times_assigned=item.get("times_assigned", 0),
            last_assigned=_date(item.get("last_assigned")),
        )
        for item in data
    ]
    return RotationQueue(location_id, entries=entries)


def stats_to_dict(stats: WeeklyStats) -> dict[str, Any]:
    return {
        "broker_id": stats.broker_id,
        "week_start": stats.week_start.isoformat(),
        "external_count": stats.external_count,
        "internal_count": stats.internal_count,
        "saturday_count": stats.saturday_count,
    }


def stats_from_dict(data: dict[str, Any]) -> WeeklyStats:
    return WeeklyStats(
        broker_id=data["broker_id"],
        week_start=date.fromisoformat(data["week_start"]),
        external_count=data.get("external_count", 0),
        internal_count=data.get("internal_count", 0),
        saturday_count=data.get("saturday_count", 0),
    )
