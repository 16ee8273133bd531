"""Tests for the allocation rule pipeline."""

from datetime import date, time, timedelta

import pytest

from brokershift.domain.models import (
    WEEKDAYS,
    Assignment,
    Demand,
    Location,
    LocationType,
    Shift,
)
from brokershift.domain.policies import PassPolicy
from brokershift.scheduling.events import EventKind, EventRecorder
from brokershift.scheduling.rules import RelaxationLevel, RuleEngine, RuleId
from brokershift.scheduling.state import AllocationContext, BrokerState


# Test fixtures
@pytest.fixture
def base_date():
    """A Monday to use as the start of the week."""
    return date(2025, 3, 3)


@pytest.fixture
def locations():
    """Two external sites of competing builders and one small office."""
    return {
        "E1": Location(id="E1", name="Harbor View", location_type=LocationType.EXTERNAL, builder="Acme"),
        "E2": Location(id="E2", name="Parkside", location_type=LocationType.EXTERNAL, builder="Beta"),
        "I1": Location(
            id="I1",
            name="Main Office",
            location_type=LocationType.INTERNAL,
            max_team_on_external_per_day=1,
        ),
    }


def create_context(base_date, locations, broker_ids=("B1", "B2"), home=None, **kwargs) -> AllocationContext:
    """Create a context where every broker has a target of 2."""
    states = {
        b: BrokerState(
            broker_id=b,
            name=b,
            target=2,
            available_weekdays=set(WEEKDAYS),
            internal_location_id=home,
        )
        for b in broker_ids
    }
    return AllocationContext(week_start=base_date, locations=locations, broker_states=states, **kwargs)


def create_demand(location_id: str, day: date, shift: Shift = Shift.MORNING, eligible=("B1", "B2")) -> Demand:
    """Create a demand at a location."""
    return Demand(
        location_id=location_id,
        location_name=location_id,
        day=day,
        shift=shift,
        start_time=time(8, 0) if shift is Shift.MORNING else time(13, 0),
        end_time=time(12, 0) if shift is Shift.MORNING else time(18, 0),
        eligible_broker_ids=list(eligible),
        builder={"E1": "Acme", "E2": "Beta"}.get(location_id),
    )


class TestAbsoluteRules:
    """Tests for rules that are never relaxed."""

    def test_free_broker_allowed(self, base_date, locations):
        """A broker with nothing booked may take an eligible demand."""
        rules = RuleEngine(create_context(base_date, locations))
        verdict = rules.evaluate("B1", create_demand("E1", base_date))
        assert verdict.allowed is True
        assert verdict.relaxed is False

    def test_hard_cap(self, base_date, locations):
        """Brokers holding 3 externals are always denied."""
        context = create_context(base_date, locations)
        context.state("B1").external_count = 3
        verdict = RuleEngine(context).evaluate("B1", create_demand("E1", base_date))
        assert verdict.rule is RuleId.HARD_CAP

    def test_three_in_a_row(self, base_date, locations):
        """A third consecutive external day is denied even when relaxed."""
        context = create_context(base_date, locations)
        context.allocate(create_demand("E1", base_date), "B1", stage="pass1")
        context.allocate(create_demand("E1", base_date + timedelta(days=1)), "B1", stage="pass1")

        verdict = RuleEngine(context).evaluate(
            "B1",
            create_demand("E1", base_date + timedelta(days=2)),
            RelaxationLevel.CONSECUTIVE_RELAXED,
        )
        assert verdict.rule is RuleId.THREE_IN_A_ROW

    def test_three_in_a_row_across_weeks(self, base_date, locations):
        """Saturday and Sunday externals of last week block Monday."""
        previous = [
            Assignment("B1", "E1", base_date - timedelta(days=2), Shift.MORNING, time(8, 0), time(12, 0)),
            Assignment("B1", "E1", base_date - timedelta(days=1), Shift.MORNING, time(8, 0), time(12, 0)),
        ]
        context = create_context(base_date, locations, previous_externals=previous)
        verdict = RuleEngine(context).evaluate("B1", create_demand("E1", base_date))
        assert verdict.rule is RuleId.THREE_IN_A_ROW

    def test_physical_conflict(self, base_date, locations):
        """A broker cannot be in two places in the same shift."""
        context = create_context(base_date, locations)
        context.allocate(create_demand("E1", base_date), "B1", stage="pass1")
        verdict = RuleEngine(context).evaluate("B1", create_demand("E2", base_date))
        assert verdict.rule is RuleId.PHYSICAL_CONFLICT

    def test_other_external_same_day(self, base_date, locations):
        """A broker works at most one external location per day."""
        context = create_context(base_date, locations)
        context.allocate(create_demand("E1", base_date), "B1", stage="pass1")
        verdict = RuleEngine(context).evaluate("B1", create_demand("E2", base_date, Shift.AFTERNOON))
        assert verdict.rule is RuleId.OTHER_EXTERNAL_SAME_DAY

    def test_same_location_both_shifts(self, base_date, locations):
        """Both shifts of one location go to different brokers."""
        context = create_context(base_date, locations)
        context.allocate(create_demand("E1", base_date), "B1", stage="pass1")
        verdict = RuleEngine(context).evaluate("B1", create_demand("E1", base_date, Shift.AFTERNOON))
        assert verdict.rule is RuleId.SAME_LOCATION_BOTH_SHIFTS

    def test_saturday_internal_duty(self, base_date, locations):
        """Saturday crew members take no weekend externals."""
        context = create_context(base_date, locations, saturday_internal_workers={"B1"})
        rules = RuleEngine(context)
        saturday = base_date + timedelta(days=5)

        assert rules.evaluate("B1", create_demand("E1", saturday)).rule is RuleId.SATURDAY_INTERNAL_DUTY
        sunday_verdict = rules.evaluate("B1", create_demand("E1", saturday + timedelta(days=1)))
        assert sunday_verdict.rule is RuleId.WEEKEND_EXCLUSIVITY

    def test_weekend_exclusivity(self, base_date, locations):
        """Nobody works both Saturday and Sunday."""
        context = create_context(base_date, locations)
        saturday = base_date + timedelta(days=5)
        context.allocate(create_demand("E1", saturday), "B1", stage="pass1")

        verdict = RuleEngine(context).evaluate("B1", create_demand("E2", saturday + timedelta(days=1)))
        assert verdict.rule is RuleId.WEEKEND_EXCLUSIVITY

    def test_not_eligible(self, base_date, locations):
        """Brokers outside the eligible list are denied."""
        verdict = RuleEngine(create_context(base_date, locations)).evaluate(
            "B2", create_demand("E1", base_date, eligible=("B1",))
        )
        assert verdict.rule is RuleId.NOT_ELIGIBLE

    def test_consecutive_days_denied_unless_relaxed(self, base_date, locations):
        """Adjacent external days are denied unless explicitly relaxed."""
        context = create_context(base_date, locations)
        context.allocate(create_demand("E1", base_date), "B1", stage="pass1")
        rules = RuleEngine(context)
        tuesday = create_demand("E2", base_date + timedelta(days=1))

        assert rules.evaluate("B1", tuesday).rule is RuleId.CONSECUTIVE_DAYS
        relaxed = rules.evaluate("B1", tuesday, RelaxationLevel.CONSECUTIVE_RELAXED)
        assert relaxed.allowed is True
        assert relaxed.relaxed is True

    def test_denials_recorded_when_enabled(self, base_date, locations):
        """Rule denials are kept as events only when asked for."""
        events = EventRecorder(record_denials=True)
        context = create_context(base_date, locations, events=events)
        context.state("B1").external_count = 3
        RuleEngine(context).evaluate("B1", create_demand("E1", base_date))

        denied = events.of_kind(EventKind.RULE_DENIED)
        assert len(denied) == 1
        assert denied[0].data["rule"] == "hard_cap"


class TestSoftRules:
    """Tests for pass-dependent rules."""

    def test_personal_target_in_early_passes(self, base_date, locations):
        """Early passes stop at the personal target, later ones at 2."""
        context = create_context(base_date, locations)
        context.state("B1").target = 1
        context.allocate(create_demand("E1", base_date), "B1", stage="pass1")
        rules = RuleEngine(context)
        wednesday = create_demand("E1", base_date + timedelta(days=2))

        assert rules.evaluate("B1", wednesday, pass_policy=PassPolicy.for_pass(1)).rule is RuleId.WEEKLY_TARGET
        assert rules.evaluate("B1", wednesday, pass_policy=PassPolicy.for_pass(3)).allowed is True

    def test_saturday_worker_cap(self, base_date, locations):
        """A broker with an external already cannot add a Saturday one."""
        context = create_context(base_date, locations)
        context.allocate(create_demand("E1", base_date), "B1", stage="pass1")
        verdict = RuleEngine(context).evaluate(
            "B1",
            create_demand("E1", base_date + timedelta(days=5)),
            pass_policy=PassPolicy.for_pass(5),
        )
        assert verdict.rule is RuleId.SATURDAY_WORKER_CAP

    def test_friday_before_saturday(self, base_date, locations):
        """Saturday workers skip Friday externals through pass 3."""
        context = create_context(base_date, locations, saturday_internal_workers={"B1"})
        rules = RuleEngine(context)
        friday = create_demand("E1", base_date + timedelta(days=4))

        assert rules.evaluate("B1", friday, pass_policy=PassPolicy.for_pass(3)).rule is RuleId.FRIDAY_BEFORE_SATURDAY
        assert rules.evaluate("B1", friday, pass_policy=PassPolicy.for_pass(4)).allowed is True

    def test_team_capacity(self, base_date, locations):
        """A small office keeps its members on site beyond the daily cap."""
        context = create_context(base_date, locations, home="I1")
        context.allocate(create_demand("E1", base_date), "B2", stage="pass1")
        rules = RuleEngine(context)
        demand = create_demand("E2", base_date)

        assert rules.evaluate("B1", demand, pass_policy=PassPolicy.for_pass(1)).rule is RuleId.TEAM_CAPACITY
        # Absolute rules alone allow it
        assert rules.evaluate("B1", demand).allowed is True

    def test_last_internal_member_on_saturday(self, base_date, locations):
        """The last free office member is kept off Saturday externals."""
        context = create_context(base_date, locations, home="I1")
        saturday = base_date + timedelta(days=5)
        context.add_internal(Assignment("B2", "I1", saturday, Shift.MORNING, time(8, 0), time(12, 0)))

        verdict = RuleEngine(context).evaluate(
            "B1",
            create_demand("E1", saturday, Shift.AFTERNOON),
            pass_policy=PassPolicy.for_pass(5),
        )
        assert verdict.rule is RuleId.LAST_INTERNAL
