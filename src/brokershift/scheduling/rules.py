"""Rule pipeline deciding whether a broker may take a demand.

A single ordered pipeline evaluates the absolute rules (never relaxed,
except the consecutive-day rule under explicit relaxation) followed,
when a pass policy is given, by the soft rules of that pass. The first
failing rule produces a denial verdict naming the rule.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional

from brokershift.domain.models import Demand
from brokershift.domain.policies import AllocationLimits, PassPolicy
from brokershift.scheduling.events import EventKind
from brokershift.scheduling.state import AllocationContext


class RuleId(Enum):
    """Identifiers of allocation rules."""

    # Absolute
    HARD_CAP = "hard_cap"
    THREE_IN_A_ROW = "three_in_a_row"
    PHYSICAL_CONFLICT = "physical_conflict"
    OTHER_EXTERNAL_SAME_DAY = "other_external_same_day"
    BUILDER_CONFLICT = "builder_conflict"
    WEEKEND_EXCLUSIVITY = "weekend_exclusivity"
    SATURDAY_INTERNAL_DUTY = "saturday_internal_duty"
    SAME_LOCATION_BOTH_SHIFTS = "same_location_both_shifts"
    NOT_ELIGIBLE = "not_eligible"
    CONSECUTIVE_DAYS = "consecutive_days"
    # Soft
    WEEKLY_TARGET = "weekly_target"
    SATURDAY_WORKER_CAP = "saturday_worker_cap"
    FRIDAY_BEFORE_SATURDAY = "friday_before_saturday"
    LAST_INTERNAL = "last_internal"
    TEAM_CAPACITY = "team_capacity"

    @property
    def is_absolute(self) -> bool:
        return self in _ABSOLUTE


_ABSOLUTE = frozenset(
    {
        RuleId.HARD_CAP,
        RuleId.THREE_IN_A_ROW,
        RuleId.PHYSICAL_CONFLICT,
        RuleId.OTHER_EXTERNAL_SAME_DAY,
        RuleId.BUILDER_CONFLICT,
        RuleId.WEEKEND_EXCLUSIVITY,
        RuleId.SATURDAY_INTERNAL_DUTY,
        RuleId.SAME_LOCATION_BOTH_SHIFTS,
        RuleId.NOT_ELIGIBLE,
        RuleId.CONSECUTIVE_DAYS,
    }
)


class RelaxationLevel(Enum):
    """How far the absolute rules may bend."""

    NONE = "none"
    CONSECUTIVE_RELAXED = "consecutive_relaxed"


@dataclass(frozen=True)
class Verdict:
    """Outcome of evaluating a broker against a demand.

    Attributes:
        allowed: Whether the broker may take the demand.
        rule: Rule that denied it (None when allowed).
        reason: Human-readable explanation of a denial.
        relaxed: Allowed only because the consecutive-day rule was relaxed.
    """

    allowed: bool
    rule: Optional[RuleId] = None
    reason: str = ""
    relaxed: bool = False

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls, relaxed: bool = False) -> "Verdict":
        return cls(allowed=True, relaxed=relaxed)

    @classmethod
    def deny(cls, rule: RuleId, reason: str) -> "Verdict":
        return cls(allowed=False, rule=rule, reason=reason)


class RuleEngine:
    """Evaluates the rule hierarchy against an allocation context.

    Example:
        >>> rules = RuleEngine(context)
        >>> verdict = rules.evaluate("B001", demand)
        >>> if not verdict:
        ...     print(verdict.rule, verdict.reason)
    """

    def __init__(self, context: AllocationContext, limits: Optional[AllocationLimits] = None):
        self.context = context
        self.limits = limits or context.limits
        self._team_saturday_available: dict[str, int] = {}

    def evaluate(
        self,
        broker_id: str,
        demand: Demand,
        relaxation: RelaxationLevel = RelaxationLevel.NONE,
        pass_policy: Optional[PassPolicy] = None,
    ) -> Verdict:
        """Run the pipeline for one broker and one demand.

        Args:
            broker_id: Candidate broker.
            demand: Demand to fill.
            relaxation: Relaxation level for the consecutive-day rule.
            pass_policy: When given, the soft rules of that pass run too.

        Returns:
            The first denial, or an allow verdict.
        """
        verdict = self._check_absolute(broker_id, demand, relaxation)
        if verdict.allowed and pass_policy is not None:
            soft = self._check_soft(broker_id, demand, pass_policy)
            if not soft.allowed:
                verdict = soft
        if not verdict.allowed:
            self.context.events.emit(
                EventKind.RULE_DENIED,
                f"{broker_id} denied for {demand}: {verdict.reason}",
                broker_id=broker_id,
                demand=demand.key,
                rule=verdict.rule.value,
            )
        return verdict

    # -- absolute rules --------------------------------------------------

    def _check_absolute(self, broker_id: str, demand: Demand, relaxation: RelaxationLevel) -> Verdict:
        ctx = self.context
        state = ctx.state(broker_id)
        day = demand.day

        if state.external_count >= self.limits.hard_cap:
            return Verdict.deny(RuleId.HARD_CAP, f"already has {state.external_count} externals")

        if self.would_make_three_in_a_row(broker_id, demand):
            return Verdict.deny(RuleId.THREE_IN_A_ROW, "three consecutive external days")

        same_day = ctx.day_assignments(broker_id, day)
        for a in same_day:
            if a.shift is demand.shift:
                return Verdict.deny(
                    RuleId.PHYSICAL_CONFLICT,
                    f"already working {a.shift.value} at {a.location_id}",
                )

        for a in same_day:
            if ctx.is_external(a.location_id) and a.location_id != demand.location_id:
                return Verdict.deny(
                    RuleId.OTHER_EXTERNAL_SAME_DAY,
                    f"already at external {a.location_id} that day",
                )

        if demand.builder:
            for a in same_day:
                other = ctx.builder_of(a.location_id)
                if other and other != demand.builder:
                    return Verdict.deny(
                        RuleId.BUILDER_CONFLICT,
                        f"serving builder {other} that day",
                    )

        weekend = self._weekend_conflict(broker_id, demand)
        if weekend is not None:
            return weekend

        for a in same_day:
            if a.location_id == demand.location_id and a.shift is not demand.shift:
                return Verdict.deny(
                    RuleId.SAME_LOCATION_BOTH_SHIFTS,
                    "already has the other shift at this location",
                )

        if not demand.is_eligible(broker_id):
            return Verdict.deny(RuleId.NOT_ELIGIBLE, "not eligible for this demand")

        if self.has_adjacent_external(broker_id, demand):
            if relaxation is RelaxationLevel.CONSECUTIVE_RELAXED:
                return Verdict.allow(relaxed=True)
            return Verdict.deny(RuleId.CONSECUTIVE_DAYS, "external on an adjacent day")

        return Verdict.allow()

    def would_make_three_in_a_row(self, broker_id: str, demand: Demand) -> bool:
        """Whether adding the demand date creates a 3-day external run."""
        dates = sorted(self.context.external_dates(broker_id) | {demand.day})
        for first, second, third in zip(dates, dates[1:], dates[2:]):
            if (second - first).days == 1 and (third - second).days == 1:
                return True
        return False

    def has_adjacent_external(self, broker_id: str, demand: Demand) -> bool:
        before, after = self.context.adjacent_days(demand.day)
        return (
            self.context.has_external_on(broker_id, before)
            or self.context.has_external_on(broker_id, after)
        )

    def _weekend_conflict(self, broker_id: str, demand: Demand) -> Optional[Verdict]:
        ctx = self.context
        if demand.is_saturday:
            if broker_id in ctx.saturday_internal_workers:
                return Verdict.deny(RuleId.SATURDAY_INTERNAL_DUTY, "on internal Saturday duty")
            if ctx.has_any_assignment(broker_id, demand.day + timedelta(days=1)):
                return Verdict.deny(RuleId.WEEKEND_EXCLUSIVITY, "already works Sunday")
        elif demand.is_sunday:
            if broker_id in ctx.saturday_internal_workers:
                return Verdict.deny(RuleId.WEEKEND_EXCLUSIVITY, "on internal Saturday duty")
            if ctx.has_any_assignment(broker_id, demand.day - timedelta(days=1)):
                return Verdict.deny(RuleId.WEEKEND_EXCLUSIVITY, "already works Saturday")
        return None

    # -- soft rules ------------------------------------------------------

    def _check_soft(self, broker_id: str, demand: Demand, policy: PassPolicy) -> Verdict:
        ctx = self.context
        state = ctx.state(broker_id)

        limit = state.target if policy.personal_targets else self.limits.weekly_target
        if state.external_count >= limit:
            return Verdict.deny(
                RuleId.WEEKLY_TARGET,
                f"reached target of {limit} (has {state.external_count})",
            )

        works_saturday = (
            broker_id in ctx.saturday_internal_workers
            or broker_id in ctx.saturday_external_workers
        )
        if demand.is_saturday and state.external_count >= self.limits.saturday_worker_cap:
            return Verdict.deny(
                RuleId.SATURDAY_WORKER_CAP,
                f"has {state.external_count} externals, Saturday would exceed the cap",
            )
        if works_saturday and not demand.is_saturday and state.external_count >= self.limits.saturday_worker_cap:
            return Verdict.deny(
                RuleId.SATURDAY_WORKER_CAP,
                f"works Saturday and already has {state.external_count} externals",
            )
        if works_saturday and policy.avoid_friday_before_saturday and demand.day.weekday() == 4:
            return Verdict.deny(RuleId.FRIDAY_BEFORE_SATURDAY, "works Saturday, avoiding Friday")

        if demand.is_saturday and state.internal_location_id:
            reservation = ctx.reservation_for(broker_id, demand.day, demand.shift)
            reserved_here = reservation is not None and reservation.demand_key == demand.key
            if not reserved_here and not self._colleague_covers_saturday(broker_id, demand):
                return Verdict.deny(
                    RuleId.LAST_INTERNAL,
                    f"last available member of {state.internal_location_id} on Saturday",
                )

        return self._team_capacity(broker_id, demand, policy)

    def _colleague_covers_saturday(self, broker_id: str, demand: Demand) -> bool:
        ctx = self.context
        home = ctx.state(broker_id).internal_location_id
        colleagues = [s for s in ctx.team_members(home) if s.broker_id != broker_id]
        if not colleagues:
            return True
        return any(
            "saturday" in s.available_weekdays and not ctx.has_any_assignment(s.broker_id, demand.day)
            for s in colleagues
        )

    def team_saturday_available(self, internal_location_id: str) -> int:
        """Team members globally available on Saturdays."""
        if internal_location_id not in self._team_saturday_available:
            ctx = self.context
            self._team_saturday_available[internal_location_id] = sum(
                1 for s in ctx.team_members(internal_location_id)
                if "saturday" in s.available_weekdays
            )
        return self._team_saturday_available[internal_location_id]

    def _team_capacity(self, broker_id: str, demand: Demand, policy: PassPolicy) -> Verdict:
        ctx = self.context
        home_id = ctx.state(broker_id).internal_location_id
        home = ctx.locations.get(home_id) if home_id else None
        if home is None or home.max_team_on_external_per_day is None:
            return Verdict.allow()
        cap = home.max_team_on_external_per_day
        on_external = ctx.team_externals_on(home_id, demand.day)

        if demand.day.weekday() < 5:
            if on_external >= cap:
                return Verdict.deny(
                    RuleId.TEAM_CAPACITY,
                    f"{on_external} of {home.name} already on externals today (limit {cap})",
                )
        elif demand.is_saturday:
            available = self.team_saturday_available(home_id)
            if available == 2:
                limit = 1
            elif available >= 3:
                limit = min(policy.team_saturday_unlocked, cap)
            else:
                return Verdict.allow()
            if on_external >= limit:
                return Verdict.deny(
                    RuleId.TEAM_CAPACITY,
                    f"{home.name} Saturday quota {limit} reached at pass {policy.number}",
                )
        return Verdict.allow()
