"""Mutable per-week allocation state.

All counters that change while a week is being generated live on an
AllocationContext owned by that generation attempt; nothing is kept in
module state. The context is discarded (or folded into the accumulator)
when the attempt ends.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from brokershift.domain.models import Assignment, Demand, Location, Shift
from brokershift.domain.policies import AllocationLimits
from brokershift.domain.queues import QueueEntry, RotationQueue
from brokershift.errors import SchedulingError
from brokershift.scheduling.events import EventKind, EventRecorder


@dataclass
class BrokerState:
    """A broker's running counters during one week.

    Attributes:
        broker_id: Broker ID.
        name: Broker name (for reporting).
        target: External shifts the broker should receive this week.
        available_weekdays: Globally available weekdays.
        internal_location_id: Home internal office, if any.
        external_count: Externals allocated so far this week.
        last_external_date: Date of the latest external allocated.
        recent_saturdays: Saturdays worked in recent weeks.
        monthly_saturdays: Saturdays worked so far this month.
        monthly_externals: Externals worked so far this month.
        external_location_count: External locations the broker is linked to.
        saturday_internal: Pre-identified for internal Saturday duty.
    """

    broker_id: str
    name: str
    target: int
    available_weekdays: set[str] = field(default_factory=set)
    internal_location_id: Optional[str] = None
    external_count: int = 0
    last_external_date: Optional[date] = None
    recent_saturdays: int = 0
    monthly_saturdays: int = 0
    monthly_externals: int = 0
    external_location_count: int = 0
    saturday_internal: bool = False

    @property
    def credit(self) -> int:
        """Externals still owed to reach the target (may be negative)."""
        return self.target - self.external_count


@dataclass
class Reservation:
    """A broker bound to a scarce demand before the passes run.

    Attributes:
        broker_id: Reserved broker.
        day: Demand date.
        shift: Demand shift.
        demand_key: Key of the reserved demand.
        reason: Why the reservation exists.
    """

    broker_id: str
    day: date
    shift: Shift
    demand_key: str
    reason: str = ""

    @property
    def key(self) -> tuple[str, date, Shift]:
        return (self.broker_id, self.day, self.shift)


@dataclass
class AllocationRecord:
    """How a demand got its broker.

    Attributes:
        demand_key: Allocated demand.
        broker_id: Broker placed.
        stage: "pass1".."pass5", "single_broker", "reserved", "rebalance",
            "deconsecutive", "last_resort" or "cpsat".
        relaxed: Consecutive-day rule was relaxed.
        third_shift: Allocation gave the broker a third external.
    """

    demand_key: str
    broker_id: str
    stage: str
    relaxed: bool = False
    third_shift: bool = False


class AllocationContext:
    """Everything an allocation attempt reads and mutates.

    Args:
        week_start: Monday of the week.
        locations: Location lookup (internal and external).
        broker_states: Broker ID -> state, in roster order.
        rotation_queues: External location ID -> rotation queue.
        previous_externals: External assignments of the last days of the
            previous week (cross-week consecutive checks).
        saturday_internal_workers: Brokers pre-identified for internal
            Saturday duty.
        monthly_sundays: Broker -> Sundays worked this month.
        sundays_by_location: Location -> broker -> Sundays worked there.
        limits: Weekly limits.
        events: Event recorder.
    """

    def __init__(
        self,
        week_start: date,
        locations: dict[str, Location],
        broker_states: dict[str, BrokerState],
        rotation_queues: Optional[dict[str, RotationQueue]] = None,
        previous_externals: Optional[list[Assignment]] = None,
        saturday_internal_workers: Optional[set[str]] = None,
        monthly_sundays: Optional[dict[str, int]] = None,
        sundays_by_location: Optional[dict[str, dict[str, int]]] = None,
        limits: Optional[AllocationLimits] = None,
        events: Optional[EventRecorder] = None,
    ):
        self.week_start = week_start
        self.locations = locations
        self.broker_states = broker_states
        self.rotation_queues = rotation_queues if rotation_queues is not None else {}
        self.saturday_internal_workers = set(saturday_internal_workers or ())
        self.saturday_external_workers: set[str] = set()
        self.monthly_sundays = monthly_sundays or {}
        self.sundays_by_location = sundays_by_location or {}
        self.limits = limits or AllocationLimits()
        self.events = events or EventRecorder()

        self.assignments: list[Assignment] = []
        self.allocated: dict[str, Assignment] = {}
        self.records: list[AllocationRecord] = []
        self.reservations: dict[tuple[str, date, Shift], Reservation] = {}
        self._queue_snapshots: dict[tuple[str, str], QueueEntry] = {}

        self._by_broker_day: dict[tuple[str, date], list[Assignment]] = defaultdict(list)
        self._previous_external_dates: dict[str, set[date]] = defaultdict(set)
        for a in previous_externals or []:
            self._previous_external_dates[a.broker_id].add(a.day)
            self._by_broker_day[(a.broker_id, a.day)].append(a)

    # -- queries ---------------------------------------------------------

    def state(self, broker_id: str) -> BrokerState:
        return self.broker_states[broker_id]

    def is_external(self, location_id: str) -> bool:
        location = self.locations.get(location_id)
        return location is not None and location.is_external

    def builder_of(self, location_id: str) -> Optional[str]:
        location = self.locations.get(location_id)
        return location.builder if location is not None else None

    def day_assignments(self, broker_id: str, day: date) -> list[Assignment]:
        """Assignments of a broker on a date (previous-week tail included)."""
        return list(self._by_broker_day.get((broker_id, day), ()))

    def has_any_assignment(self, broker_id: str, day: date) -> bool:
        return bool(self._by_broker_day.get((broker_id, day)))

    def has_external_on(self, broker_id: str, day: date) -> bool:
        return any(self.is_external(a.location_id) for a in self._by_broker_day.get((broker_id, day), ()))

    def external_dates(self, broker_id: str) -> set[date]:
        """Dates with an external for a broker, previous-week tail included."""
        dates = set(self._previous_external_dates.get(broker_id, ()))
        for a in self.assignments:
            if a.broker_id == broker_id and self.is_external(a.location_id):
                dates.add(a.day)
        return dates

    def is_allocated(self, demand: Demand) -> bool:
        return demand.key in self.allocated

    def worked_location(self, broker_id: str, location_id: str) -> bool:
        """Whether the broker already worked this location this week."""
        return any(
            a.broker_id == broker_id and a.location_id == location_id
            for a in self.assignments
        )

    def team_members(self, internal_location_id: str) -> list[BrokerState]:
        return [
            s for s in self.broker_states.values()
            if s.internal_location_id == internal_location_id
        ]

    def team_externals_on(self, internal_location_id: str, day: date) -> int:
        """Members of an internal team holding an external on a date."""
        return sum(
            1 for s in self.team_members(internal_location_id)
            if self.has_external_on(s.broker_id, day)
        )

    def reservation_for(self, broker_id: str, day: date, shift: Shift) -> Optional[Reservation]:
        return self.reservations.get((broker_id, day, shift))

    def reserved_broker(self, demand: Demand) -> Optional[str]:
        """Broker a demand is reserved for, if any."""
        for reservation in self.reservations.values():
            if reservation.demand_key == demand.key:
                return reservation.broker_id
        return None

    def consecutive_pairs_if_allocated(self, broker_id: str, day: date) -> int:
        """Adjacent external-day pairs the broker would have with ``day`` added."""
        dates = sorted(self.external_dates(broker_id) | {day})
        return sum(1 for a, b in zip(dates, dates[1:]) if (b - a).days == 1)

    # -- mutations -------------------------------------------------------

    def allocate(
        self,
        demand: Demand,
        broker_id: str,
        stage: str,
        relaxed: bool = False,
    ) -> Assignment:
        """Place a broker on an external demand and update every counter.

        Raises:
            SchedulingError: If the demand is already covered, the broker is
                already booked in that slot, or the hard cap would be broken.
        """
        if demand.key in self.allocated:
            raise SchedulingError(f"Demand {demand} is already allocated")
        state = self.state(broker_id)
        if state.external_count >= self.limits.hard_cap:
            raise SchedulingError(
                f"Broker {broker_id} would exceed the hard cap of {self.limits.hard_cap}"
            )
        if any(a.shift is demand.shift for a in self.day_assignments(broker_id, demand.day)):
            raise SchedulingError(f"Broker {broker_id} is already booked for {demand.day} {demand.shift.value}")

        third_shift = state.external_count >= self.limits.weekly_target
        assignment = Assignment.for_demand(demand, broker_id)
        self._add(assignment)
        self.allocated[demand.key] = assignment

        state.external_count += 1
        if state.last_external_date is None or demand.day > state.last_external_date:
            state.last_external_date = demand.day
        if demand.is_saturday:
            self.saturday_external_workers.add(broker_id)

        queue = self.rotation_queues.get(demand.location_id)
        if queue is not None:
            snapshot = queue.record_assignment(broker_id, demand.day)
            self._queue_snapshots.setdefault((demand.location_id, broker_id), snapshot)

        self.records.append(
            AllocationRecord(
                demand_key=demand.key,
                broker_id=broker_id,
                stage=stage,
                relaxed=relaxed,
                third_shift=third_shift,
            )
        )
        self.events.emit(
            EventKind.ALLOCATED,
            f"{state.name} -> {demand} ({stage})",
            broker_id=broker_id,
            demand=demand.key,
            stage=stage,
            external_count=state.external_count,
        )
        if relaxed:
            self.events.emit(
                EventKind.RELAXED_ALLOCATION,
                f"Consecutive-day rule relaxed so {state.name} reaches the weekly target",
                broker_id=broker_id,
                demand=demand.key,
            )
        if third_shift:
            self.events.emit(
                EventKind.THIRD_SHIFT_GRANTED,
                f"{state.name} granted external #{state.external_count} with {demand}",
                broker_id=broker_id,
                demand=demand.key,
            )
        return assignment

    def release(self, demand: Demand) -> Assignment:
        """Remove the broker from an external demand (used by swaps)."""
        assignment = self.allocated.pop(demand.key)
        self.assignments.remove(assignment)
        self._by_broker_day[(assignment.broker_id, assignment.day)].remove(assignment)
        self.records = [r for r in self.records if r.demand_key != demand.key]

        state = self.state(assignment.broker_id)
        state.external_count -= 1
        remaining = [
            a.day for a in self.assignments
            if a.broker_id == assignment.broker_id and self.is_external(a.location_id)
        ]
        state.last_external_date = max(remaining) if remaining else None
        if demand.is_saturday and not self.has_external_on(assignment.broker_id, demand.day):
            self.saturday_external_workers.discard(assignment.broker_id)
        self._restore_queue(demand, assignment.broker_id)
        return assignment

    def _restore_queue(self, demand: Demand, broker_id: str) -> None:
        """Undo the queue update made when the demand was allocated.

        The entry goes back to how it was before the broker's first shift
        at the location this week. When the broker still holds other shifts
        there, only the counters are rebuilt and the position is kept.
        """
        snapshot = self._queue_snapshots.get((demand.location_id, broker_id))
        queue = self.rotation_queues.get(demand.location_id)
        if snapshot is None or queue is None:
            return
        still_held = [
            a.day for a in self.allocated.values()
            if a.broker_id == broker_id and a.location_id == demand.location_id
        ]
        if not still_held:
            queue.restore(snapshot)
            del self._queue_snapshots[(demand.location_id, broker_id)]
            return
        entry = queue.entry(broker_id)
        entry.times_assigned = snapshot.times_assigned + len(still_held)
        entry.last_assigned = max(still_held)

    def add_internal(self, assignment: Assignment) -> None:
        """Record an internal-office assignment."""
        if any(a.shift is assignment.shift for a in self.day_assignments(assignment.broker_id, assignment.day)):
            raise SchedulingError(
                f"Broker {assignment.broker_id} is already booked for "
                f"{assignment.day} {assignment.shift.value}"
            )
        self._add(assignment)

    def _add(self, assignment: Assignment) -> None:
        self.assignments.append(assignment)
        self._by_broker_day[(assignment.broker_id, assignment.day)].append(assignment)

    def adjacent_days(self, day: date) -> tuple[date, date]:
        return day - timedelta(days=1), day + timedelta(days=1)
