"""Repository interface for schedule data."""

from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Any, Optional

from brokershift.domain.accumulator import WeeklyStats
from brokershift.domain.models import Assignment, Broker, Location
from brokershift.domain.queues import RotationQueue


class ScheduleRepository(ABC):
    """Abstract store for brokers, locations and generated weeks.

    Generation reads the configuration and prior state through this
    interface and persists each accepted week as soon as it is accepted.
    """

    @abstractmethod
    def load_brokers(self) -> list[Broker]:
        pass

    @abstractmethod
    def load_locations(self) -> list[Location]:
        pass

    @abstractmethod
    def load_queues(self) -> tuple[dict[str, RotationQueue], dict[str, RotationQueue]]:
        """Get (rotation queues, Saturday queues) keyed by location ID."""
        pass

    @abstractmethod
    def save_queues(
        self,
        rotation_queues: dict[str, RotationQueue],
        saturday_queues: dict[str, RotationQueue],
    ) -> None:
        pass

    @abstractmethod
    def load_assignments(self, start: date, end: date) -> list[Assignment]:
        """Get assignments dated in [start, end)."""
        pass

    @abstractmethod
    def save_week(
        self,
        week_start: date,
        assignments: list[Assignment],
        stats: list[WeeklyStats],
        report: dict[str, Any],
    ) -> None:
        """Replace the stored week with an accepted one.

        Args:
            week_start: Monday of the week.
            assignments: Every assignment of the week.
            stats: Per-broker counters of the week.
            report: Validation report of the week.
        """
        pass

    @abstractmethod
    def load_stats(self, week_start: Optional[date] = None) -> list[WeeklyStats]:
        pass

    @abstractmethod
    def load_reports(self) -> list[dict[str, Any]]:
        pass


class InMemoryRepository(ScheduleRepository):
    """Repository holding everything in memory.

    Args:
        brokers: Broker roster.
        locations: Internal and external locations.
    """

    def __init__(
        self,
        brokers: Optional[list[Broker]] = None,
        locations: Optional[list[Location]] = None,
    ):
        self.brokers: list[Broker] = list(brokers or [])
        self.locations: list[Location] = list(locations or [])
        self.rotation_queues: dict[str, RotationQueue] = {}
        self.saturday_queues: dict[str, RotationQueue] = {}
        self.assignments: list[Assignment] = []
        self.stats: list[WeeklyStats] = []
        self.reports: list[dict[str, Any]] = []

    def load_brokers(self) -> list[Broker]:
        return list(self.brokers)

    def load_locations(self) -> list[Location]:
        return list(self.locations)

    def load_queues(self) -> tuple[dict[str, RotationQueue], dict[str, RotationQueue]]:
        return (
            {k: q.copy() for k, q in self.rotation_queues.items()},
            {k: q.copy() for k, q in self.saturday_queues.items()},
        )

    def save_queues(
        self,
        rotation_queues: dict[str, RotationQueue],
        saturday_queues: dict[str, RotationQueue],
    ) -> None:
        self.rotation_queues = {k: q.copy() for k, q in rotation_queues.items()}
        self.saturday_queues = {k: q.copy() for k, q in saturday_queues.items()}

    def load_assignments(self, start: date, end: date) -> list[Assignment]:
        return sorted(
            (a for a in self.assignments if start <= a.day < end),
            key=lambda a: (a.day, a.shift.order, a.location_id, a.broker_id),
        )

    def save_week(
        self,
        week_start: date,
        assignments: list[Assignment],
        stats: list[WeeklyStats],
        report: dict[str, Any],
    ) -> None:
        week_end = week_start + timedelta(days=7)
        self.assignments = [a for a in self.assignments if not week_start <= a.day < week_end]
        self.assignments.extend(assignments)
        self.stats = [s for s in self.stats if s.week_start != week_start]
        self.stats.extend(stats)
        self.reports = [r for r in self.reports if r.get("week_start") != week_start.isoformat()]
        self.reports.append(report)

    def load_stats(self, week_start: Optional[date] = None) -> list[WeeklyStats]:
        if week_start is None:
            return list(self.stats)
        return [s for s in self.stats if s.week_start == week_start]

    def load_reports(self) -> list[dict[str, Any]]:
        return list(self.reports)
