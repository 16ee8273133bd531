"""State carried from one week generation to the next."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from brokershift.domain.models import Assignment, Location
from brokershift.domain.queues import RotationQueue


@dataclass
class WeeklyStats:
    """Per-broker counters of one accepted week.

    Attributes:
        broker_id: Broker the row belongs to.
        week_start: Monday of the week.
        external_count: External shifts worked.
        internal_count: Internal shifts worked.
        saturday_count: Saturdays worked (any location).
    """

    broker_id: str
    week_start: date
    external_count: int = 0
    internal_count: int = 0
    saturday_count: int = 0


@dataclass
class WeeklyAccumulator:
    """Month-scoped state passed between sequential week generations.

    Attributes:
        previous_week_externals: Broker -> externals worked last week.
        monthly_saturdays: Broker -> Saturdays worked this month.
        monthly_sundays: Broker -> Sundays worked this month.
        sundays_by_location: Location -> broker -> Sundays worked there.
        monthly_externals: Broker -> externals worked this month.
        recent_saturdays: Broker -> Saturdays worked over recent weeks.
        last_days_externals: External assignments of the last three days
            (Friday to Sunday) of the previous week.
        last_saturday_workers: Brokers who worked an internal Saturday last week.
        rotation_queues: External location -> rotation queue.
        saturday_queues: Internal location -> Saturday queue.
        previous_week_assignments: All assignments of the previous week.
    """

    previous_week_externals: dict[str, int] = field(default_factory=dict)
    monthly_saturdays: dict[str, int] = field(default_factory=dict)
    monthly_sundays: dict[str, int] = field(default_factory=dict)
    sundays_by_location: dict[str, dict[str, int]] = field(default_factory=dict)
    monthly_externals: dict[str, int] = field(default_factory=dict)
    recent_saturdays: dict[str, int] = field(default_factory=dict)
    last_days_externals: list[Assignment] = field(default_factory=list)
    last_saturday_workers: set[str] = field(default_factory=set)
    rotation_queues: dict[str, RotationQueue] = field(default_factory=dict)
    saturday_queues: dict[str, RotationQueue] = field(default_factory=dict)
    previous_week_assignments: list[Assignment] = field(default_factory=list)

    def sundays_at(self, location_id: str, broker_id: str) -> int:
        return self.sundays_by_location.get(location_id, {}).get(broker_id, 0)

    def rotation_queue(self, location: Location) -> RotationQueue:
        """Working copy of an external location's rotation queue."""
        queue = self.rotation_queues.get(location.id)
        if queue is None:
            return RotationQueue(location.id, location.broker_ids)
        return queue.copy()

    def saturday_queue(self, location: Location) -> RotationQueue:
        """Working copy of an internal location's Saturday queue."""
        queue = self.saturday_queues.get(location.id)
        if queue is None:
            return RotationQueue(location.id, location.broker_ids)
        return queue.copy()

    def load_previous_week(
        self,
        week_start: date,
        assignments: list[Assignment],
        locations: dict[str, Location],
    ) -> None:
        """Seed cross-week state from the assignments of the prior week.

        Used when regenerating selected weeks, where the previous week
        was accepted in an earlier run.
        """
        previous_start = week_start - timedelta(days=7)
        previous = [a for a in assignments if previous_start <= a.day < week_start]
        self._remember_week(week_start, previous, locations)

    def record_week(
        self,
        week_start: date,
        assignments: list[Assignment],
        locations: dict[str, Location],
        month: Optional[int] = None,
    ) -> list[WeeklyStats]:
        """Fold an accepted week into the accumulator.

        Args:
            week_start: Monday of the accepted week.
            assignments: Every assignment of the week.
            locations: Location lookup.
            month: When given, only dates inside this month count toward
                the monthly counters.

        Returns:
            Per-broker stats rows for the week.
        """
        stats: dict[str, WeeklyStats] = {}
        saturday_seen: set[tuple[str, date]] = set()

        for a in assignments:
            row = stats.setdefault(a.broker_id, WeeklyStats(a.broker_id, week_start))
            location = locations.get(a.location_id)
            if location is not None and location.is_external:
                row.external_count += 1
            else:
                row.internal_count += 1
            if a.day.weekday() == 5 and (a.broker_id, a.day) not in saturday_seen:
                saturday_seen.add((a.broker_id, a.day))
                row.saturday_count += 1

        in_month = [a for a in assignments if month is None or a.day.month == month]
        counted_days: set[tuple[str, date]] = set()
        for a in in_month:
            location = locations.get(a.location_id)
            if location is not None and location.is_external:
                self.monthly_externals[a.broker_id] = self.monthly_externals.get(a.broker_id, 0) + 1
            if (a.broker_id, a.day) in counted_days:
                continue
            counted_days.add((a.broker_id, a.day))
            if a.day.weekday() == 5:
                self.monthly_saturdays[a.broker_id] = self.monthly_saturdays.get(a.broker_id, 0) + 1
            elif a.day.weekday() == 6:
                self.monthly_sundays[a.broker_id] = self.monthly_sundays.get(a.broker_id, 0) + 1
                per_location = self.sundays_by_location.setdefault(a.location_id, {})
                per_location[a.broker_id] = per_location.get(a.broker_id, 0) + 1

        for row in stats.values():
            if row.saturday_count:
                self.recent_saturdays[row.broker_id] = (
                    self.recent_saturdays.get(row.broker_id, 0) + row.saturday_count
                )

        self._remember_week(week_start + timedelta(days=7), assignments, locations)
        return list(stats.values())

    def _remember_week(
        self,
        next_week_start: date,
        assignments: list[Assignment],
        locations: dict[str, Location],
    ) -> None:
        externals: dict[str, int] = defaultdict(int)
        tail_start = next_week_start - timedelta(days=3)
        last_days: list[Assignment] = []
        saturday_workers: set[str] = set()

        for a in assignments:
            location = locations.get(a.location_id)
            is_external = location is not None and location.is_external
            if is_external:
                externals[a.broker_id] += 1
                if a.day >= tail_start:
                    last_days.append(a)
            elif a.day.weekday() == 5:
                saturday_workers.add(a.broker_id)

        self.previous_week_externals = dict(externals)
        self.last_days_externals = last_days
        self.last_saturday_workers = saturday_workers
        self.previous_week_assignments = list(assignments)
