"""Multi-pass external shift allocation.

The engine fills external demands in a fixed priority order through five
progressively permissive passes, then improves the result:

1. Passes 1-5: greedy allocation with the absolute rules always on and
   the soft rules of each pass (see PassPolicy).
2. Rebalancing: shifts move from brokers above the target to brokers
   below it ("2 before 3").
3. De-consecutivizing: the later day of an adjacent external pair moves
   to a broker who stays free of adjacency.
4. Last resort: leftovers go to brokers below 2 (relaxing the
   consecutive-day rule only for them), and only when the global gate is
   clear may anyone receive a third external, never beyond the hard cap.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from brokershift.domain.models import Assignment, Demand, demand_key
from brokershift.domain.policies import PassPolicy
from brokershift.scheduling.events import EventKind
from brokershift.scheduling.rules import RelaxationLevel, RuleEngine
from brokershift.scheduling.shuffle import shuffle
from brokershift.scheduling.state import AllocationContext, AllocationRecord, BrokerState

logger = logging.getLogger(__name__)

_NEVER = date.min


@dataclass
class AllocationResult:
    """Outcome of allocating the external demands of a week.

    Attributes:
        assignments: External assignments made.
        unallocated: Demands left without a broker.
        records: How each demand was filled.
        stage_counts: Allocations per stage ("pass1", "rebalance", ...).
        broker_states: Final per-broker counters.
    """

    assignments: list[Assignment] = field(default_factory=list)
    unallocated: list[Demand] = field(default_factory=list)
    records: list[AllocationRecord] = field(default_factory=list)
    stage_counts: dict[str, int] = field(default_factory=dict)
    broker_states: dict[str, BrokerState] = field(default_factory=dict)

    @property
    def relaxed_records(self) -> list[AllocationRecord]:
        return [r for r in self.records if r.relaxed]

    @property
    def third_shift_records(self) -> list[AllocationRecord]:
        return [r for r in self.records if r.third_shift]


def _day_group(demand: Demand) -> int:
    if demand.is_saturday:
        return 0
    if demand.is_sunday:
        return 1
    return 2


class AllocationEngine:
    """Allocates brokers to the external demands of one week.

    Args:
        context: Allocation context of the attempt (mutated in place).
        attempt: Attempt number; from 2 on, tie-breaks are shuffled with
            seeds derived from it.
        rules: Rule engine (built from the context when omitted).

    Example:
        >>> engine = AllocationEngine(context, attempt=1)
        >>> result = engine.run(demands)
        >>> print(len(result.assignments), len(result.unallocated))
    """

    def __init__(
        self,
        context: AllocationContext,
        attempt: int = 1,
        rules: Optional[RuleEngine] = None,
    ):
        self.context = context
        self.attempt = attempt
        self.rules = rules or RuleEngine(context)
        self.limits = context.limits
        self._stage_counts: dict[str, int] = {}
        self._broken_reservations: set[str] = set()
        self._final_policy = PassPolicy.for_pass(5)

    # -- entry point -----------------------------------------------------

    def run(self, demands: list[Demand]) -> AllocationResult:
        """Allocate all demands and return the outcome."""
        ordered = self.order_demands(demands)
        self._demand_index = {d.key: d for d in ordered}
        self._paired_keys = self._find_paired(ordered)

        for policy in PassPolicy.all_passes():
            self._run_pass(ordered, policy)

        self.rebalance()
        self.deconsecutivize()
        self.last_resort(ordered)

        ctx = self.context
        unallocated = [d for d in ordered if not ctx.is_allocated(d)]
        if unallocated:
            logger.warning("%d demands left unallocated", len(unallocated))
        return AllocationResult(
            assignments=list(ctx.allocated.values()),
            unallocated=unallocated,
            records=list(ctx.records),
            stage_counts=dict(self._stage_counts),
            broker_states=ctx.broker_states,
        )

    # -- ordering --------------------------------------------------------

    def order_demands(self, demands: list[Demand]) -> list[Demand]:
        """Saturday, Sunday, then weekdays; scarcest, earliest, morning first.

        From attempt 2 on each day group is shuffled with its own seed,
        keeping the group order.
        """
        ordered = sorted(
            demands,
            key=lambda d: (_day_group(d), len(d.eligible_broker_ids), d.day, d.shift.order),
        )
        if self.attempt <= 1:
            return ordered
        groups = [[d for d in ordered if _day_group(d) == g] for g in range(3)]
        return [
            demand
            for index, group in enumerate(groups)
            for demand in shuffle(group, self.attempt * 1000 * (index + 1))
        ]

    def rank_candidates(self, demand: Demand) -> list[str]:
        """Order the eligible brokers of a demand, best candidate first."""
        ctx = self.context
        queue = ctx.rotation_queues.get(demand.location_id)

        def position(broker_id: str) -> int:
            return queue.position_of(broker_id) if queue is not None else 999

        states = [ctx.state(b) for b in demand.eligible_broker_ids if b in ctx.broker_states]

        if demand.flagship:
            states.sort(
                key=lambda s: (
                    s.external_count,
                    ctx.worked_location(s.broker_id, demand.location_id),
                    position(s.broker_id),
                )
            )
            return [s.broker_id for s in states]

        if demand.is_sunday:
            at_location = ctx.sundays_by_location.get(demand.location_id, {})
            states.sort(
                key=lambda s: (
                    at_location.get(s.broker_id, 0),
                    ctx.monthly_sundays.get(s.broker_id, 0),
                    position(s.broker_id),
                    s.external_count,
                )
            )
            return [s.broker_id for s in states]

        if demand.is_saturday:
            # Spread Saturdays before anything else
            states.sort(
                key=lambda s: (
                    s.monthly_saturdays,
                    s.recent_saturdays,
                    s.external_count,
                    position(s.broker_id),
                    s.monthly_externals,
                )
            )
            return [s.broker_id for s in states]

        states.sort(
            key=lambda s: (
                s.external_count,
                s.external_location_count,
                position(s.broker_id),
                s.last_external_date or _NEVER,
                s.monthly_externals,
            )
        )
        if self.attempt <= 1:
            return [s.broker_id for s in states]

        by_credit: dict[int, list[BrokerState]] = {}
        for s in states:
            by_credit.setdefault(s.credit, []).append(s)
        ranked = []
        for credit in sorted(by_credit, reverse=True):
            seed = self.attempt * 1000 + credit * 100 + demand.day.toordinal() % 1000
            ranked.extend(s.broker_id for s in shuffle(by_credit[credit], seed))
        return ranked

    # -- passes ----------------------------------------------------------

    def _run_pass(self, demands: list[Demand], policy: PassPolicy) -> None:
        ctx = self.context
        stage = f"pass{policy.number}"
        ctx.events.emit(EventKind.PASS_STARTED, f"Pass {policy.number} started", number=policy.number)
        before = len(ctx.allocated)
        for demand in demands:
            if ctx.is_allocated(demand):
                continue
            choice = self.find_broker(demand, policy)
            if choice is None:
                continue
            broker_id, how, relaxed = choice
            ctx.allocate(demand, broker_id, stage=how, relaxed=relaxed)
            self._count(stage)
        ctx.events.emit(
            EventKind.PASS_COMPLETED,
            f"Pass {policy.number} allocated {len(ctx.allocated) - before}",
            number=policy.number,
            allocated=len(ctx.allocated) - before,
            remaining=sum(1 for d in demands if not ctx.is_allocated(d)),
        )

    def find_broker(self, demand: Demand, policy: PassPolicy) -> Optional[tuple[str, str, bool]]:
        """Pick a broker for a demand under a pass policy.

        Returns:
            (broker_id, stage, relaxed) or None when nobody qualifies.
        """
        ctx = self.context
        stage = f"pass{policy.number}"

        location = ctx.locations.get(demand.location_id)
        if location is not None and len(location.links) == 1 and len(demand.eligible_broker_ids) == 1:
            return self._single_broker(demand)

        candidates = self.rank_candidates(demand)

        for broker_id in candidates:
            reservation = ctx.reservation_for(broker_id, demand.day, demand.shift)
            if reservation is None or reservation.demand_key != demand.key:
                continue
            verdict = self.rules.evaluate(broker_id, demand, pass_policy=policy)
            if verdict:
                return broker_id, "reserved", False
            if demand.key not in self._broken_reservations:
                self._broken_reservations.add(demand.key)
                ctx.events.emit(
                    EventKind.RESERVATION_BROKEN,
                    f"Reservation of {broker_id} for {demand} not honored: {verdict.reason}",
                    broker_id=broker_id,
                    demand=demand.key,
                    rule=verdict.rule.value,
                )

        reserved_for = ctx.reserved_broker(demand)
        for broker_id in candidates:
            if policy.exclusive_reservations:
                if reserved_for is not None and reserved_for != broker_id:
                    continue
                if self._protects_reservation(broker_id, demand, policy):
                    continue
            if self.rules.evaluate(broker_id, demand, pass_policy=policy):
                return broker_id, stage, False
        return None

    def _single_broker(self, demand: Demand) -> Optional[tuple[str, str, bool]]:
        """Force the only configured broker onto the demand.

        Weekly slack and the soft rules are ignored; only the absolute
        rules (with adjacent days allowed) and the hard cap can block it.
        """
        broker_id = demand.eligible_broker_ids[0]
        state = self.context.state(broker_id)
        if state.external_count >= self.limits.hard_cap:
            return None
        verdict = self.rules.evaluate(broker_id, demand, RelaxationLevel.CONSECUTIVE_RELAXED)
        if not verdict:
            return None
        return broker_id, "single_broker", verdict.relaxed

    def _protects_reservation(self, broker_id: str, demand: Demand, policy: PassPolicy) -> bool:
        """Whether taking this demand would cost the broker a pending reservation."""
        ctx = self.context
        pending = [
            r for r in ctx.reservations.values()
            if r.broker_id == broker_id
            and r.demand_key != demand.key
            and r.demand_key not in ctx.allocated
        ]
        if not pending:
            return False
        if any(r.day == demand.day for r in pending):
            return True
        state = ctx.state(broker_id)
        limit = state.target if policy.personal_targets else self.limits.weekly_target
        return state.external_count + 1 + len(pending) > limit

    # -- rebalancing -----------------------------------------------------

    def rebalance(self) -> int:
        """Move shifts from brokers above the target to brokers below it.

        Singleton shifts (the location runs a single shift that day) move
        first. Returns the number of shifts moved.
        """
        ctx = self.context
        over = [s for s in ctx.broker_states.values() if s.external_count > self.limits.weekly_target]
        if not over:
            return 0

        moved = 0
        for giver in over:
            owned = [
                a for key, a in ctx.allocated.items()
                if a.broker_id == giver.broker_id and key in self._demand_index
            ]
            owned.sort(key=lambda a: (self._is_paired(a), a.day, a.shift.order))
            for assignment in owned:
                if giver.external_count <= self.limits.weekly_target:
                    break
                demand = self._demand_for(assignment)
                receiver = self._find_receiver(demand, giver)
                if receiver is None:
                    continue
                ctx.release(demand)
                ctx.allocate(demand, receiver, stage="rebalance")
                self._count("rebalance")
                moved += 1
                ctx.events.emit(
                    EventKind.REBALANCED,
                    f"{demand} moved from {giver.name} to {ctx.state(receiver).name}",
                    demand=demand.key,
                    giver=giver.broker_id,
                    receiver=receiver,
                )
        return moved

    def _find_receiver(self, demand: Demand, giver: BrokerState) -> Optional[str]:
        ctx = self.context
        under = sorted(
            (
                ctx.state(b) for b in demand.eligible_broker_ids
                if b != giver.broker_id and b in ctx.broker_states
            ),
            key=lambda s: s.external_count,
        )
        for state in under:
            if state.external_count >= self.limits.weekly_target:
                break
            if self.rules.evaluate(state.broker_id, demand, pass_policy=self._final_policy):
                return state.broker_id
        return None

    # -- de-consecutivizing ----------------------------------------------

    def deconsecutivize(self) -> int:
        """Break up adjacent-day externals by moving the later day.

        Returns the number of swaps made.
        """
        ctx = self.context
        swaps = 0
        for state in list(ctx.broker_states.values()):
            dates = sorted(ctx.external_dates(state.broker_id))
            for earlier, later in zip(dates, dates[1:]):
                if (later - earlier).days != 1:
                    continue
                for assignment in self._owned_on(state.broker_id, later):
                    demand = self._demand_for(assignment)
                    alternative = self._find_alternative(demand, state)
                    if alternative is None:
                        continue
                    ctx.release(demand)
                    ctx.allocate(demand, alternative, stage="deconsecutive")
                    self._count("deconsecutive")
                    swaps += 1
                    ctx.events.emit(
                        EventKind.SWAPPED,
                        f"{demand} moved from {state.name} to {ctx.state(alternative).name} "
                        f"to break consecutive days",
                        demand=demand.key,
                        giver=state.broker_id,
                        receiver=alternative,
                    )
        return swaps

    def _owned_on(self, broker_id: str, day: date) -> list[Assignment]:
        return [
            a for key, a in self.context.allocated.items()
            if a.broker_id == broker_id and a.day == day and key in self._demand_index
        ]

    def _find_alternative(self, demand: Demand, holder: BrokerState) -> Optional[str]:
        ctx = self.context
        options = sorted(
            (
                ctx.state(b) for b in demand.eligible_broker_ids
                if b != holder.broker_id and b in ctx.broker_states
            ),
            key=lambda s: s.external_count,
        )
        for state in options:
            if state.external_count > holder.external_count:
                break
            if self.rules.evaluate(state.broker_id, demand, pass_policy=self._final_policy):
                return state.broker_id
        return None

    # -- last resort -----------------------------------------------------

    def brokers_who_can_reach_target(self, pending: list[Demand]) -> list[str]:
        """Global gate: brokers below the target who could still take a pending demand.

        The consecutive-day rule is relaxed for this check since such a
        broker may receive a relaxed allocation.
        """
        ctx = self.context
        reachable = []
        for state in ctx.broker_states.values():
            if state.external_count >= self.limits.weekly_target:
                continue
            for demand in pending:
                if not demand.is_eligible(state.broker_id):
                    continue
                if self.rules.evaluate(state.broker_id, demand, RelaxationLevel.CONSECUTIVE_RELAXED):
                    reachable.append(state.broker_id)
                    break
        reachable.sort(key=lambda b: ctx.state(b).external_count)
        return reachable

    def last_resort(self, demands: list[Demand]) -> None:
        """Emergency allocation of whatever the passes left open."""
        ctx = self.context
        pending = [d for d in demands if not ctx.is_allocated(d)]
        if not pending:
            return

        # (i) brokers below the target, consecutive rule intact
        for demand in pending:
            if ctx.is_allocated(demand):
                continue
            ranked = sorted(
                (b for b in demand.eligible_broker_ids if b in ctx.broker_states),
                key=lambda b: ctx.state(b).external_count,
            )
            for broker_id in ranked:
                if ctx.state(broker_id).external_count >= self.limits.weekly_target:
                    continue
                if self.rules.evaluate(broker_id, demand):
                    ctx.allocate(demand, broker_id, stage="last_resort")
                    self._count("last_resort")
                    break

        # (i) continued: relax the consecutive rule for brokers who can still reach 2
        pending = [d for d in pending if not ctx.is_allocated(d)]
        gate = self.brokers_who_can_reach_target(pending)
        for demand in pending:
            if ctx.is_allocated(demand):
                continue
            for broker_id in gate:
                if ctx.state(broker_id).external_count >= self.limits.weekly_target:
                    continue
                if not demand.is_eligible(broker_id):
                    continue
                verdict = self.rules.evaluate(broker_id, demand, RelaxationLevel.CONSECUTIVE_RELAXED)
                if verdict:
                    ctx.allocate(demand, broker_id, stage="last_resort", relaxed=verdict.relaxed)
                    self._count("last_resort")
                    break

        # (ii) third externals, only once nobody can reach 2 anymore
        pending = [d for d in pending if not ctx.is_allocated(d)]
        if not pending:
            return
        gate = self.brokers_who_can_reach_target(pending)
        ctx.events.emit(
            EventKind.GLOBAL_GATE,
            "Global gate closed: brokers can still reach the target"
            if gate else "Global gate clear: third externals allowed",
            open=not gate,
            brokers=gate,
        )
        if gate:
            return
        for demand in pending:
            if ctx.is_allocated(demand):
                continue
            queue = ctx.rotation_queues.get(demand.location_id)
            ranked = sorted(
                (b for b in demand.eligible_broker_ids if b in ctx.broker_states),
                key=lambda b: (
                    ctx.state(b).external_count,
                    queue.position_of(b) if queue is not None else 999,
                    ctx.consecutive_pairs_if_allocated(b, demand.day),
                ),
            )
            for broker_id in ranked:
                if ctx.state(broker_id).external_count >= self.limits.hard_cap:
                    continue
                if self.rules.evaluate(broker_id, demand):
                    ctx.allocate(demand, broker_id, stage="last_resort")
                    self._count("last_resort")
                    break

    # -- helpers ---------------------------------------------------------

    def _count(self, stage: str) -> None:
        self._stage_counts[stage] = self._stage_counts.get(stage, 0) + 1

    def _demand_for(self, assignment: Assignment) -> Demand:
        return self._demand_index[demand_key(assignment.location_id, assignment.day, assignment.shift)]

    def _find_paired(self, demands: list[Demand]) -> set[str]:
        """Keys of demands whose location runs both shifts that day."""
        shifts_per_day: dict[tuple[str, date], int] = {}
        for d in demands:
            shifts_per_day[(d.location_id, d.day)] = shifts_per_day.get((d.location_id, d.day), 0) + 1
        return {d.key for d in demands if shifts_per_day[(d.location_id, d.day)] > 1}

    def _is_paired(self, assignment: Assignment) -> bool:
        return demand_key(assignment.location_id, assignment.day, assignment.shift) in self._paired_keys
