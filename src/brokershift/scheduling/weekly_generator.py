"""Weekly schedule generation.

This module provides the WeeklyGenerator class that produces one week of
assignments from the roster, the locations and the state accumulated
over the previous weeks:

- Saturday crews of the internal offices are pre-identified
- External demands are mapped and analyzed for bottlenecks
- The multi-pass engine (or the CP-SAT solver) fills the externals
- Internal offices are staffed around the externals

Each call works on copies of the rotation and Saturday queues; the caller
commits them to the accumulator only when the week is accepted.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Optional

from brokershift.domain.accumulator import WeeklyAccumulator
from brokershift.domain.models import Assignment, Broker, Demand, Location, demand_key
from brokershift.domain.policies import (
    AllocationLimits,
    DefaultExternalTargetPolicy,
    ExternalTargetPolicy,
)
from brokershift.domain.queues import RotationQueue
from brokershift.scheduling.allocation_engine import AllocationEngine
from brokershift.scheduling.bottleneck import BottleneckAnalyzer, BottleneckReport
from brokershift.scheduling.demand_mapper import DemandMapper, DemandMappingResult
from brokershift.scheduling.eligibility import EligibilityResolver
from brokershift.scheduling.events import EventRecorder, SchedulingEvent
from brokershift.scheduling.internal_allocator import InternalShiftAllocator
from brokershift.scheduling.state import AllocationContext, AllocationRecord, BrokerState

logger = logging.getLogger(__name__)


@dataclass
class WeekGenerationResult:
    """Output of a single generation attempt for a week.

    Attributes:
        week_start: Monday of the week.
        attempt: Attempt number that produced it.
        assignments: Every assignment, external and internal.
        impossible: Demands no broker is configured for.
        unallocated: Demands with candidates that stayed uncovered.
        records: How each external demand was filled.
        bottlenecks: Scarcity analysis of the week.
        broker_states: Final per-broker counters.
        rotation_queues: Rotation queues after the week (uncommitted).
        saturday_queues: Saturday queues after the week (uncommitted).
        events: Events emitted while generating.
        solver: "greedy" or "cpsat".
    """

    week_start: date
    attempt: int
    assignments: list[Assignment] = field(default_factory=list)
    impossible: list[Demand] = field(default_factory=list)
    unallocated: list[Demand] = field(default_factory=list)
    records: list[AllocationRecord] = field(default_factory=list)
    bottlenecks: BottleneckReport = field(default_factory=BottleneckReport)
    broker_states: dict[str, BrokerState] = field(default_factory=dict)
    rotation_queues: dict[str, RotationQueue] = field(default_factory=dict)
    saturday_queues: dict[str, RotationQueue] = field(default_factory=dict)
    events: list[SchedulingEvent] = field(default_factory=list)
    solver: str = "greedy"

    @property
    def external_assignments(self) -> list[Assignment]:
        external_keys = {r.demand_key for r in self.records}
        return [
            a for a in self.assignments
            if demand_key(a.location_id, a.day, a.shift) in external_keys
        ]

    @property
    def coverage(self) -> float:
        """Share of mapped demands that got a broker."""
        total = len(self.records) + len(self.unallocated) + len(self.impossible)
        if total == 0:
            return 1.0
        return len(self.records) / total


@dataclass
class _WeekSetup:
    context: AllocationContext
    mapping: DemandMappingResult
    bottlenecks: BottleneckReport
    crews: dict[str, list[str]]
    internal: InternalShiftAllocator


class WeeklyGenerator:
    """Generates the schedule of one week.

    Args:
        brokers: Broker roster.
        locations: Internal and external locations.
        limits: Weekly external limits.
        target_policy: Decides each broker's external target.
        record_denials: Keep rule-denial events (verbose runs).

    Example:
        >>> generator = WeeklyGenerator(brokers, locations)
        >>> result = generator.generate(date(2025, 3, 3), accumulator)
        >>> print(len(result.assignments), len(result.unallocated))
    """

    def __init__(
        self,
        brokers: list[Broker],
        locations: list[Location],
        limits: Optional[AllocationLimits] = None,
        target_policy: Optional[ExternalTargetPolicy] = None,
        record_denials: bool = False,
    ):
        self.locations = list(locations)
        self.locations_map = {loc.id: loc for loc in self.locations}
        self.limits = limits or AllocationLimits()
        self.target_policy = target_policy or DefaultExternalTargetPolicy(self.limits)
        self.record_denials = record_denials
        self.brokers = self._with_home_offices(brokers)
        self.brokers_map = {b.id: b for b in self.brokers}

    def _with_home_offices(self, brokers: list[Broker]) -> list[Broker]:
        """Fill in missing home offices from links to internal locations."""
        resolved = []
        for broker in brokers:
            if broker.internal_location_id is None:
                home = next(
                    (
                        loc.id for loc in self.locations
                        if loc.is_internal and loc.link_for(broker.id) is not None
                    ),
                    None,
                )
                if home is not None:
                    broker = replace(broker, internal_location_id=home)
            resolved.append(broker)
        return resolved

    def _working_queues(
        self, accumulator: WeeklyAccumulator
    ) -> tuple[dict[str, RotationQueue], dict[str, RotationQueue]]:
        rotation: dict[str, RotationQueue] = {}
        saturday: dict[str, RotationQueue] = {}
        for location in self.locations:
            working = (
                accumulator.rotation_queue(location)
                if location.is_external
                else accumulator.saturday_queue(location)
            )
            working.sync(location.broker_ids)
            (rotation if location.is_external else saturday)[location.id] = working
        return rotation, saturday

    def build_broker_states(
        self,
        accumulator: WeeklyAccumulator,
        saturday_crew: set[str],
    ) -> dict[str, BrokerState]:
        """Per-broker counters at the start of the week, in roster order."""
        external_links: dict[str, int] = {}
        for location in self.locations:
            if location.is_external:
                for broker_id in location.broker_ids:
                    external_links[broker_id] = external_links.get(broker_id, 0) + 1

        states = {}
        for broker in self.brokers:
            if not broker.active:
                continue
            on_saturday_duty = broker.id in saturday_crew
            states[broker.id] = BrokerState(
                broker_id=broker.id,
                name=broker.name,
                target=self.target_policy.target_for(
                    accumulator.previous_week_externals.get(broker.id, 0),
                    on_saturday_duty,
                ),
                available_weekdays=set(broker.available_weekdays),
                internal_location_id=broker.internal_location_id,
                recent_saturdays=accumulator.recent_saturdays.get(broker.id, 0),
                monthly_saturdays=accumulator.monthly_saturdays.get(broker.id, 0),
                monthly_externals=accumulator.monthly_externals.get(broker.id, 0),
                external_location_count=external_links.get(broker.id, 0),
                saturday_internal=on_saturday_duty,
            )
        return states

    def _prepare(
        self,
        week_start: date,
        accumulator: WeeklyAccumulator,
        events: EventRecorder,
    ) -> _WeekSetup:
        rotation_queues, saturday_queues = self._working_queues(accumulator)

        internal = InternalShiftAllocator(
            self.locations_map, self.brokers_map, saturday_queues, events=events
        )
        crews = internal.preidentify_saturday_crews(week_start, accumulator.last_saturday_workers)
        saturday_crew = {b for crew in crews.values() for b in crew}

        context = AllocationContext(
            week_start=week_start,
            locations=self.locations_map,
            broker_states=self.build_broker_states(accumulator, saturday_crew),
            rotation_queues=rotation_queues,
            previous_externals=accumulator.last_days_externals,
            saturday_internal_workers=saturday_crew,
            monthly_sundays=dict(accumulator.monthly_sundays),
            sundays_by_location={
                loc: dict(counts) for loc, counts in accumulator.sundays_by_location.items()
            },
            limits=self.limits,
            events=events,
        )

        resolver = EligibilityResolver(self.brokers_map)
        mapping = DemandMapper(self.locations, resolver, events=events).map_week(week_start)

        analyzer = BottleneckAnalyzer(
            self.brokers_map,
            previous_externals=accumulator.last_days_externals,
            events=events,
        )
        bottlenecks = analyzer.analyze(mapping.demands)
        context.reservations = dict(bottlenecks.reservations)

        return _WeekSetup(
            context=context,
            mapping=mapping,
            bottlenecks=bottlenecks,
            crews=crews,
            internal=internal,
        )

    def _finish(
        self,
        setup: _WeekSetup,
        week_start: date,
        attempt: int,
        unallocated: list[Demand],
        events: EventRecorder,
        solver: str,
    ) -> WeekGenerationResult:
        context = setup.context
        setup.internal.allocate(context, week_start, setup.crews)
        return WeekGenerationResult(
            week_start=week_start,
            attempt=attempt,
            assignments=list(context.assignments),
            impossible=list(setup.mapping.impossible),
            unallocated=unallocated,
            records=list(context.records),
            bottlenecks=setup.bottlenecks,
            broker_states=context.broker_states,
            rotation_queues=context.rotation_queues,
            saturday_queues=setup.internal.saturday_queues,
            events=list(events.events),
            solver=solver,
        )

    def generate(
        self,
        week_start: date,
        accumulator: WeeklyAccumulator,
        attempt: int = 1,
    ) -> WeekGenerationResult:
        """Generate a week with the multi-pass engine.

        Args:
            week_start: Monday of the week.
            accumulator: State carried from earlier weeks (read only).
            attempt: Attempt number; seeds the tie-break shuffles.

        Returns:
            WeekGenerationResult of this attempt.

        Raises:
            SchedulingError: If an engine invariant is breached.
        """
        events = EventRecorder(record_denials=self.record_denials)
        setup = self._prepare(week_start, accumulator, events)
        engine = AllocationEngine(setup.context, attempt=attempt)
        allocation = engine.run(setup.mapping.demands)
        logger.debug("Week %s attempt %d stages: %s", week_start, attempt, allocation.stage_counts)
        return self._finish(setup, week_start, attempt, allocation.unallocated, events, "greedy")

    def generate_optimized(
        self,
        week_start: date,
        accumulator: WeeklyAccumulator,
        solver,
        attempt: int = 0,
    ) -> Optional[WeekGenerationResult]:
        """Generate a week with a CP-SAT week solver.

        Args:
            week_start: Monday of the week.
            accumulator: State carried from earlier weeks (read only).
            solver: A CPSATWeekSolver.
            attempt: Attempt number recorded on the result.

        Returns:
            WeekGenerationResult, or None when the model has no solution.
        """
        events = EventRecorder(record_denials=self.record_denials)
        setup = self._prepare(week_start, accumulator, events)
        outcome = solver.solve(setup.mapping.demands, setup.context)
        if not outcome.is_feasible:
            logger.warning("CP-SAT found no solution for week %s (%s)", week_start, outcome.status)
            return None
        for demand, broker_id in outcome.assignments:
            setup.context.allocate(demand, broker_id, stage="cpsat")
        unallocated = [d for d in setup.mapping.demands if not setup.context.is_allocated(d)]
        return self._finish(setup, week_start, attempt, unallocated, events, "cpsat")
