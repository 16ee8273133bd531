"""Demand mapping: turn location periods into concrete weekly demands."""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from brokershift.domain.models import Demand, Location, week_dates
from brokershift.scheduling.eligibility import EligibilityResolver
from brokershift.scheduling.events import EventKind, EventRecorder

logger = logging.getLogger(__name__)


@dataclass
class DemandMappingResult:
    """Demands of a week.

    Attributes:
        demands: Demands with at least one eligible broker.
        impossible: Demands nobody can fill (a configuration gap).
    """

    demands: list[Demand] = field(default_factory=list)
    impossible: list[Demand] = field(default_factory=list)

    @property
    def all_demands(self) -> list[Demand]:
        return self.demands + self.impossible


class DemandMapper:
    """Derives the (location, date, shift) demands of a week.

    For every external location and date inside an active period the
    day config is resolved (specific date over weekday template), whole
    day and per-shift exclusions are applied, and each remaining shift
    becomes a Demand with its eligible brokers resolved.
    """

    def __init__(
        self,
        locations: list[Location],
        resolver: EligibilityResolver,
        events: Optional[EventRecorder] = None,
    ):
        self.locations = locations
        self.resolver = resolver
        self.events = events or EventRecorder()

    def demands_for_day(self, location: Location, day: date) -> list[Demand]:
        """Demands of one location on one date, eligibility resolved."""
        config = location.day_config(day)
        demands = []
        for shift in location.open_shifts(day):
            start, end = config.times_for(shift)
            demands.append(
                Demand(
                    location_id=location.id,
                    location_name=location.name,
                    day=day,
                    shift=shift,
                    start_time=start,
                    end_time=end,
                    eligible_broker_ids=self.resolver.eligible_brokers(location, day, shift),
                    builder=location.builder,
                    flagship=location.flagship,
                )
            )
        return demands

    def map_week(self, week_start: date) -> DemandMappingResult:
        """Map all external demands of the week starting at ``week_start``."""
        result = DemandMappingResult()
        for location in self.locations:
            if not location.is_external:
                continue
            for day in week_dates(week_start):
                for demand in self.demands_for_day(location, day):
                    if demand.eligible_broker_ids:
                        result.demands.append(demand)
                    else:
                        result.impossible.append(demand)
                        self.events.emit(
                            EventKind.IMPOSSIBLE_DEMAND,
                            f"No eligible broker for {demand}",
                            demand=demand.key,
                        )
        logger.info(
            "Week %s: %d demands, %d impossible",
            week_start.isoformat(),
            len(result.demands),
            len(result.impossible),
        )
        return result
