"""Internal office staffing.

Saturdays are staffed from each office's Saturday FIFO queue, within the
office's minimum/maximum staffing. Weekdays are a fixed roster: every
linked broker works each configured shift they are available for,
unless already booked in that slot.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from brokershift.domain.models import (
    BUSINESS_DAYS,
    Assignment,
    Broker,
    DayConfig,
    Location,
    Shift,
    weekday_name,
)
from brokershift.domain.queues import RotationQueue
from brokershift.scheduling.events import EventKind, EventRecorder
from brokershift.scheduling.state import AllocationContext

logger = logging.getLogger(__name__)


@dataclass
class SaturdayStaffing:
    """Staffing requirement of an internal office on a Saturday."""

    location: Location
    day: date
    config: DayConfig
    shifts: list[Shift]
    minimum: int
    maximum: int


class InternalShiftAllocator:
    """Allocates internal-office shifts for a week.

    Args:
        locations: Location lookup; only internal locations are staffed.
        brokers_map: Broker lookup.
        saturday_queues: Internal location ID -> Saturday queue. Queues are
            mutated as brokers are placed.
        events: Event recorder.
    """

    def __init__(
        self,
        locations: dict[str, Location],
        brokers_map: dict[str, Broker],
        saturday_queues: dict[str, RotationQueue],
        events: Optional[EventRecorder] = None,
    ):
        self.locations = locations
        self.brokers_map = brokers_map
        self.saturday_queues = saturday_queues
        self.events = events or EventRecorder()

    @property
    def internal_locations(self) -> list[Location]:
        return [loc for loc in self.locations.values() if loc.is_internal]

    def _queue(self, location: Location) -> RotationQueue:
        queue = self.saturday_queues.get(location.id)
        if queue is None:
            queue = RotationQueue(location.id, location.broker_ids)
            self.saturday_queues[location.id] = queue
        return queue

    def _works_saturday(self, broker_id: str) -> bool:
        broker = self.brokers_map.get(broker_id)
        return broker is not None and broker.active and broker.works_on("saturday")

    def saturday_staffing(self, location: Location, week_start: date) -> Optional[SaturdayStaffing]:
        """Resolve the Saturday requirement of an office, or None when closed."""
        saturday = week_start + timedelta(days=5)
        shifts = location.open_shifts(saturday)
        if not shifts:
            return None
        config = location.day_config(saturday)
        minimum = location.saturday_min_staff
        return SaturdayStaffing(
            location=location,
            day=saturday,
            config=config,
            shifts=shifts,
            minimum=minimum,
            maximum=max(config.max_brokers, minimum),
        )

    def preidentify_saturday_crews(
        self,
        week_start: date,
        last_saturday_workers: Optional[set[str]] = None,
    ) -> dict[str, list[str]]:
        """Pick the likely Saturday crew of each office before externals run.

        Whoever worked Saturday last week is skipped; the rest are taken
        least-worked first, then by queue position. If that falls short of
        the minimum, linked brokers available on Saturday fill the gap.

        Returns:
            Internal location ID -> broker IDs.
        """
        last_saturday_workers = last_saturday_workers or set()
        crews: dict[str, list[str]] = {}
        for location in self.internal_locations:
            staffing = self.saturday_staffing(location, week_start)
            if staffing is None:
                continue
            entries = [
                e for e in self._queue(location)
                if e.broker_id not in last_saturday_workers and self._works_saturday(e.broker_id)
            ]
            entries.sort(key=lambda e: (e.times_assigned, e.position))
            crew = [e.broker_id for e in entries[: staffing.maximum]]

            if len(crew) < staffing.minimum:
                pool = [
                    b for b in location.broker_ids
                    if b not in crew and self._works_saturday(b)
                ]
                pool.sort(key=lambda b: b in last_saturday_workers)
                crew.extend(pool[: staffing.minimum - len(crew)])

            crews[location.id] = crew
            logger.info("Saturday crew for %s: %s", location.name, ", ".join(crew) or "none")
        return crews

    def allocate(
        self,
        context: AllocationContext,
        week_start: date,
        crews: Optional[dict[str, list[str]]] = None,
    ) -> list[Assignment]:
        """Staff Saturdays, then weekdays. Returns the internal assignments."""
        made = self.allocate_saturdays(context, week_start, crews or {})
        made.extend(self.allocate_weekdays(context, week_start))
        return made

    def allocate_saturdays(
        self,
        context: AllocationContext,
        week_start: date,
        crews: dict[str, list[str]],
    ) -> list[Assignment]:
        made: list[Assignment] = []
        for location in self.internal_locations:
            staffing = self.saturday_staffing(location, week_start)
            if staffing is None:
                continue
            saturday = staffing.day
            sunday = saturday + timedelta(days=1)
            crew = set(crews.get(location.id, ()))

            def is_free(broker_id: str) -> bool:
                return (
                    not context.has_any_assignment(broker_id, saturday)
                    and not context.has_any_assignment(broker_id, sunday)
                )

            queue = self._queue(location)
            candidates = [
                e for e in queue
                if self._works_saturday(e.broker_id) and is_free(e.broker_id)
            ]
            candidates.sort(key=lambda e: (e.broker_id not in crew, e.times_assigned, e.position))
            chosen = [e.broker_id for e in candidates[: staffing.maximum]]

            if len(chosen) < staffing.minimum:
                pool = [
                    b for b in location.broker_ids
                    if b not in chosen and self._works_saturday(b) and is_free(b)
                ]

                def pool_key(broker_id: str) -> tuple[int, int]:
                    state = context.broker_states.get(broker_id)
                    if state is None:
                        return (0, 0)
                    return (state.external_count, state.recent_saturdays)

                pool.sort(key=pool_key)
                chosen.extend(pool[: staffing.minimum - len(chosen)])

            for broker_id in chosen:
                for shift in staffing.shifts:
                    start, end = staffing.config.times_for(shift)
                    assignment = Assignment(broker_id, location.id, saturday, shift, start, end)
                    context.add_internal(assignment)
                    made.append(assignment)
                queue.record_assignment(broker_id, saturday)

            if len(chosen) < staffing.minimum:
                logger.warning(
                    "%s Saturday staffed with %d, below the minimum of %d",
                    location.name,
                    len(chosen),
                    staffing.minimum,
                )
            context.events.emit(
                EventKind.ALLOCATED,
                f"{location.name} Saturday crew: {', '.join(chosen) or 'none'}",
                location=location.id,
                brokers=chosen,
                stage="saturday_internal",
            )
        return made

    def allocate_weekdays(self, context: AllocationContext, week_start: date) -> list[Assignment]:
        made: list[Assignment] = []
        for location in self.internal_locations:
            for offset in range(len(BUSINESS_DAYS)):
                day = week_start + timedelta(days=offset)
                shifts = location.open_shifts(day)
                if not shifts:
                    continue
                config = location.day_config(day)
                weekday = weekday_name(day)
                for link in location.links:
                    broker = self.brokers_map.get(link.broker_id)
                    if broker is None or not broker.active:
                        continue
                    for shift in shifts:
                        if not (broker.allows_shift(weekday, shift) and link.allows_shift(weekday, shift)):
                            continue
                        if any(a.shift is shift for a in context.day_assignments(broker.id, day)):
                            continue
                        start, end = config.times_for(shift)
                        assignment = Assignment(broker.id, location.id, day, shift, start, end)
                        context.add_internal(assignment)
                        made.append(assignment)
        return made
