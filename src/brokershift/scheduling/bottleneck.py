"""Bottleneck analysis and mandatory reservations.

Before any allocation, every demand is scored by how many brokers could
fill it under the fixed rules only (weekday availability, eligibility,
the previous week's trailing externals). Demands with a single candidate
reserve that broker so easier demands cannot consume them first.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional

from brokershift.domain.models import Assignment, Broker, Demand, Shift
from brokershift.scheduling.events import EventKind, EventRecorder
from brokershift.scheduling.state import Reservation

logger = logging.getLogger(__name__)


class BottleneckPriority(Enum):
    """Scarcity classification of a demand."""

    CRITICAL = "critical"  # 0 or 1 eligible
    HIGH = "high"  # 2 eligible, or Sunday with 3 or fewer
    NORMAL = "normal"

    @property
    def rank(self) -> int:
        return {"critical": 0, "high": 1, "normal": 2}[self.value]


@dataclass
class DemandAnalysis:
    """Scarcity analysis of one demand."""

    demand: Demand
    eligible_broker_ids: list[str]
    priority: BottleneckPriority

    @property
    def eligible_count(self) -> int:
        return len(self.eligible_broker_ids)

    @property
    def impossible(self) -> bool:
        return not self.eligible_broker_ids


@dataclass
class CascadeWarning:
    """Reserving a broker leaves an adjacent-day demand without candidates."""

    broker_id: str
    reserved_demand: str
    starved_demand: str


@dataclass
class BottleneckReport:
    """Ordered analyses plus the reservations they produced."""

    analyses: list[DemandAnalysis] = field(default_factory=list)
    reservations: dict[tuple[str, date, Shift], Reservation] = field(default_factory=dict)
    cascade_warnings: list[CascadeWarning] = field(default_factory=list)

    @property
    def critical(self) -> list[DemandAnalysis]:
        return [a for a in self.analyses if a.priority is BottleneckPriority.CRITICAL]

    @property
    def impossible(self) -> list[DemandAnalysis]:
        return [a for a in self.analyses if a.impossible]


def _weekend_rank(day: date) -> int:
    if day.weekday() == 6:
        return 0
    if day.weekday() == 5:
        return 1
    return 2


class BottleneckAnalyzer:
    """Finds scarce demands and reserves their only candidate.

    Args:
        brokers_map: Broker lookup.
        previous_externals: Externals from the last days of the previous week.
        events: Event recorder.
    """

    def __init__(
        self,
        brokers_map: dict[str, Broker],
        previous_externals: Optional[list[Assignment]] = None,
        events: Optional[EventRecorder] = None,
    ):
        self.brokers_map = brokers_map
        self.events = events or EventRecorder()
        self._previous: set[tuple[str, date]] = {
            (a.broker_id, a.day) for a in previous_externals or []
        }

    def passes_fixed_rules(self, broker_id: str, demand: Demand) -> bool:
        """Check rules that do not depend on this week's allocations."""
        broker = self.brokers_map.get(broker_id)
        if broker is None or not broker.works_on(demand.weekday):
            return False
        if not demand.is_eligible(broker_id):
            return False
        before = demand.day - timedelta(days=1)
        if (broker_id, before) in self._previous:
            return False
        if demand.is_saturday and (broker_id, demand.day + timedelta(days=1)) in self._previous:
            return False
        if demand.is_sunday and (broker_id, before) in self._previous:
            return False
        return True

    def classify(self, demand: Demand, eligible_count: int) -> BottleneckPriority:
        if eligible_count <= 1:
            return BottleneckPriority.CRITICAL
        if eligible_count == 2:
            return BottleneckPriority.HIGH
        if demand.is_sunday and eligible_count <= 3:
            return BottleneckPriority.HIGH
        return BottleneckPriority.NORMAL

    def analyze(self, demands: list[Demand]) -> BottleneckReport:
        """Analyze demands, create reservations and run the lookahead.

        Args:
            demands: Demands of the week.

        Returns:
            BottleneckReport sorted by priority, weekend rank and date.
        """
        report = BottleneckReport()
        for demand in demands:
            eligible = [b for b in demand.eligible_broker_ids if self.passes_fixed_rules(b, demand)]
            report.analyses.append(
                DemandAnalysis(demand=demand, eligible_broker_ids=eligible, priority=self.classify(demand, len(eligible)))
            )

        report.analyses.sort(
            key=lambda a: (
                a.priority.rank,
                _weekend_rank(a.demand.day),
                a.demand.day,
                a.demand.shift.order,
            )
        )

        for analysis in report.critical:
            if analysis.eligible_count != 1:
                continue
            demand = analysis.demand
            broker_id = analysis.eligible_broker_ids[0]
            key = (broker_id, demand.day, demand.shift)
            if key in report.reservations:
                logger.warning(
                    "Broker %s already reserved for %s; %s stays unreserved",
                    broker_id,
                    report.reservations[key].demand_key,
                    demand.key,
                )
                continue
            report.reservations[key] = Reservation(
                broker_id=broker_id,
                day=demand.day,
                shift=demand.shift,
                demand_key=demand.key,
                reason="only eligible broker",
            )
            self.events.emit(
                EventKind.RESERVATION_CREATED,
                f"{broker_id} reserved for {demand}",
                broker_id=broker_id,
                demand=demand.key,
            )

        report.cascade_warnings = self._lookahead(report)
        return report

    def _lookahead(self, report: BottleneckReport) -> list[CascadeWarning]:
        """One-hop check: does a reservation starve an adjacent-day demand?"""
        warnings = []
        for reservation in report.reservations.values():
            for analysis in report.analyses:
                demand = analysis.demand
                if abs((demand.day - reservation.day).days) != 1:
                    continue
                if analysis.eligible_count > 2 or reservation.broker_id not in analysis.eligible_broker_ids:
                    continue
                remaining = [b for b in analysis.eligible_broker_ids if b != reservation.broker_id]
                if remaining:
                    continue
                warning = CascadeWarning(
                    broker_id=reservation.broker_id,
                    reserved_demand=reservation.demand_key,
                    starved_demand=demand.key,
                )
                warnings.append(warning)
                self.events.emit(
                    EventKind.CASCADE_RISK,
                    f"Reserving {reservation.broker_id} for {reservation.demand_key} "
                    f"leaves {demand} without candidates",
                    broker_id=reservation.broker_id,
                    reserved=reservation.demand_key,
                    starved=demand.key,
                )
        return warnings
