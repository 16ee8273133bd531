"""OR-Tools CP-SAT solver for whole-week external allocation.

This module provides a constraint programming alternative to the greedy
multi-pass engine. One boolean per (demand, eligible broker) pair is
solved at once for the week, with the absolute rules as hard constraints
and the fairness rules as objective penalties.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional

from ortools.sat.python import cp_model

from brokershift.domain.models import Demand
from brokershift.scheduling.state import AllocationContext


class SolverType(Enum):
    """Which allocator fills the external demands of a week."""

    GREEDY = "greedy"  # Multi-pass engine only
    CPSAT = "cpsat"  # CP-SAT only
    HYBRID = "hybrid"  # Greedy, CP-SAT once retries are exhausted


@dataclass
class SolverConfig:
    """Configuration for the CP-SAT week solver.

    Attributes:
        time_limit_seconds: Maximum solver runtime.
        num_workers: Number of parallel workers (0 = auto).
        coverage_weight: Reward per covered demand.
        excess_penalty: Penalty per external above the weekly target.
        consecutive_penalty: Penalty per adjacent pair of external days.
    """

    time_limit_seconds: float = 10.0
    num_workers: int = 0
    coverage_weight: int = 100
    excess_penalty: int = 30
    consecutive_penalty: int = 10


@dataclass
class SolverResult:
    """Result from the CP-SAT week solver.

    Attributes:
        assignments: (demand, broker ID) pairs selected by the solver.
        status: Solver status (OPTIMAL, FEASIBLE, etc.).
        objective_value: Final objective value.
        solve_time_seconds: Time taken to solve.
        num_branches: Number of branches explored.
        num_conflicts: Number of conflicts encountered.
    """

    assignments: list[tuple[Demand, str]] = field(default_factory=list)
    status: str = "UNKNOWN"
    objective_value: int = 0
    solve_time_seconds: float = 0.0
    num_branches: int = 0
    num_conflicts: int = 0

    @property
    def is_optimal(self) -> bool:
        return self.status == "OPTIMAL"

    @property
    def is_feasible(self) -> bool:
        return self.status in ("OPTIMAL", "FEASIBLE")


class CPSATWeekSolver:
    """Solves the external demands of a week with CP-SAT.

    Hard constraints: one broker per demand, one booking per broker and
    slot, one external location per broker and day, both shifts of a
    location never to the same broker, no competing builders on a day,
    weekend exclusivity (internal Saturday crews included), no three
    consecutive external days and the hard cap.
    """

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or SolverConfig()

    def solve(self, demands: list[Demand], context: AllocationContext) -> SolverResult:
        """Solve the week.

        Args:
            demands: External demands with eligible brokers.
            context: Fresh allocation context of the week (not mutated).

        Returns:
            SolverResult with the chosen (demand, broker) pairs.
        """
        model = cp_model.CpModel()
        limits = context.limits

        # Decision variables: x[(demand_key, broker)] = 1 if broker takes demand
        x: dict[tuple[str, str], cp_model.IntVar] = {}
        demand_by_key = {d.key: d for d in demands}
        for demand in demands:
            for broker_id in demand.eligible_broker_ids:
                if broker_id not in context.broker_states:
                    continue
                if demand.is_saturday and broker_id in context.saturday_internal_workers:
                    continue
                if demand.is_sunday and broker_id in context.saturday_internal_workers:
                    continue
                x[(demand.key, broker_id)] = model.NewBoolVar(f"x_{demand.key}_{broker_id}")

        by_demand: dict[str, list[cp_model.IntVar]] = defaultdict(list)
        by_broker: dict[str, list[cp_model.IntVar]] = defaultdict(list)
        by_broker_day: dict[tuple[str, date], list[cp_model.IntVar]] = defaultdict(list)
        for (key, broker_id), var in x.items():
            demand = demand_by_key[key]
            by_demand[key].append(var)
            by_broker[broker_id].append(var)
            by_broker_day[(broker_id, demand.day)].append(var)

        # Constraint 1: at most one broker per demand
        for variables in by_demand.values():
            model.AddAtMostOne(variables)

        # Constraint 2: at most one external per broker and day. This also
        # rules out double booking, a second location, both shifts of one
        # location and competing builders on the same day.
        for variables in by_broker_day.values():
            model.AddAtMostOne(variables)

        # Day indicators: works[(broker, date)] = 1 if any external that date
        works: dict[tuple[str, date], cp_model.IntVar] = {}
        for (broker_id, day), variables in by_broker_day.items():
            indicator = model.NewBoolVar(f"works_{broker_id}_{day.isoformat()}")
            model.AddMaxEquality(indicator, variables)
            works[(broker_id, day)] = indicator

        def worked(broker_id: str, day: date):
            if (broker_id, day) in works:
                return works[(broker_id, day)]
            return 1 if context.has_external_on(broker_id, day) else 0

        # Constraint 3: weekend exclusivity
        for (broker_id, day), indicator in works.items():
            if day.weekday() == 5:
                sunday = worked(broker_id, day + timedelta(days=1))
                if not isinstance(sunday, int):
                    model.Add(indicator + sunday <= 1)

        consecutive_terms = []
        for broker_id in context.broker_states:
            days = sorted(d for (b, d) in works if b == broker_id)
            if not days:
                continue
            first = days[0] - timedelta(days=2)
            while first <= days[-1]:
                triple = [worked(broker_id, first + timedelta(days=i)) for i in range(3)]
                if not all(isinstance(t, int) for t in triple):
                    # Constraint 4: no three consecutive external days
                    model.Add(sum(triple) <= 2)
                pair = triple[:2]
                if not all(isinstance(t, int) for t in pair):
                    both = model.NewBoolVar(f"pair_{broker_id}_{first.isoformat()}")
                    model.Add(both >= sum(pair) - 1)
                    consecutive_terms.append(both)
                first += timedelta(days=1)

        # Constraint 5: hard cap, and excess over the weekly target
        excess_terms = []
        for broker_id, variables in by_broker.items():
            model.Add(sum(variables) <= limits.hard_cap)
            excess = model.NewIntVar(0, limits.hard_cap, f"excess_{broker_id}")
            model.Add(excess >= sum(variables) - limits.weekly_target)
            excess_terms.append(excess)

        objective_terms = [var * self.config.coverage_weight for var in x.values()]
        objective_terms.extend(-term * self.config.excess_penalty for term in excess_terms)
        objective_terms.extend(-term * self.config.consecutive_penalty for term in consecutive_terms)
        model.Maximize(sum(objective_terms))

        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = self.config.time_limit_seconds
        if self.config.num_workers > 0:
            solver.parameters.num_workers = self.config.num_workers

        status = solver.Solve(model)

        status_map = {
            cp_model.OPTIMAL: "OPTIMAL",
            cp_model.FEASIBLE: "FEASIBLE",
            cp_model.INFEASIBLE: "INFEASIBLE",
            cp_model.MODEL_INVALID: "MODEL_INVALID",
            cp_model.UNKNOWN: "UNKNOWN",
        }
        status_str = status_map.get(status, "UNKNOWN")

        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            return SolverResult(status=status_str, solve_time_seconds=solver.WallTime())

        chosen = [
            (demand_by_key[key], broker_id)
            for (key, broker_id), var in x.items()
            if solver.Value(var)
        ]
        chosen.sort(key=lambda pair: (pair[0].day, pair[0].shift.order, pair[0].location_id))

        return SolverResult(
            assignments=chosen,
            status=status_str,
            objective_value=int(solver.ObjectiveValue()),
            solve_time_seconds=solver.WallTime(),
            num_branches=solver.NumBranches(),
            num_conflicts=solver.NumConflicts(),
        )
