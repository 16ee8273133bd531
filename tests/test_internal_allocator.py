"""Tests for internal office staffing."""

from datetime import date, time, timedelta

import pytest

from brokershift.domain.models import (
    BUSINESS_DAYS,
    WEEKDAYS,
    Assignment,
    Broker,
    DayConfig,
    Location,
    LocationBrokerLink,
    LocationType,
    Period,
    Shift,
)
from brokershift.domain.queues import RotationQueue
from brokershift.scheduling.internal_allocator import InternalShiftAllocator
from brokershift.scheduling.state import AllocationContext, BrokerState


# Test fixtures
@pytest.fixture
def base_date():
    """A Monday to use as the start of the week."""
    return date(2025, 3, 3)


def create_office(broker_ids, saturday_max: int = 1, saturday_min: int = 1) -> Location:
    """Create an office open weekdays (both shifts) and Saturday mornings."""
    configs = {day: DayConfig() for day in BUSINESS_DAYS}
    configs["saturday"] = DayConfig(has_afternoon=False, max_brokers=saturday_max)
    return Location(
        id="I1",
        name="Main Office",
        location_type=LocationType.INTERNAL,
        periods=[
            Period(id="P-I1", start=date(2025, 1, 1), end=date(2025, 12, 31), weekday_configs=configs)
        ],
        links=[LocationBrokerLink(b) for b in broker_ids],
        saturday_min_staff=saturday_min,
    )


def create_allocator(office: Location, brokers=None):
    """Create an allocator and an empty context for the office."""
    brokers = brokers or [Broker(id=b, name=b) for b in office.broker_ids]
    brokers_map = {b.id: b for b in brokers}
    allocator = InternalShiftAllocator({office.id: office}, brokers_map, {})
    states = {
        b.id: BrokerState(broker_id=b.id, name=b.name, target=2, available_weekdays=set(WEEKDAYS))
        for b in brokers
    }
    return allocator, states


def create_context(base_date, office, states) -> AllocationContext:
    return AllocationContext(week_start=base_date, locations={office.id: office}, broker_states=states)


class TestSaturdayCrews:
    """Tests for Saturday crew pre-identification."""

    def test_queue_head_picked(self, base_date):
        """The head of the Saturday queue is picked first."""
        allocator, _ = create_allocator(create_office(["B1", "B2", "B3"]))
        crews = allocator.preidentify_saturday_crews(base_date)
        assert crews == {"I1": ["B1"]}

    def test_last_saturday_workers_skipped(self, base_date):
        """Whoever worked last Saturday is skipped."""
        allocator, _ = create_allocator(create_office(["B1", "B2", "B3"]))
        crews = allocator.preidentify_saturday_crews(base_date, last_saturday_workers={"B1"})
        assert crews == {"I1": ["B2"]}

    def test_minimum_backfilled(self, base_date):
        """Last week's workers fill in when the minimum is not met otherwise."""
        allocator, _ = create_allocator(create_office(["B1", "B2"], saturday_max=2, saturday_min=2))
        crews = allocator.preidentify_saturday_crews(base_date, last_saturday_workers={"B1"})
        assert sorted(crews["I1"]) == ["B1", "B2"]

    def test_weekday_only_brokers_excluded(self, base_date):
        """Brokers not available on Saturdays never join the crew."""
        office = create_office(["B1", "B2"])
        brokers = [
            Broker(id="B1", name="B1", available_weekdays=set(BUSINESS_DAYS)),
            Broker(id="B2", name="B2"),
        ]
        allocator, _ = create_allocator(office, brokers)
        assert allocator.preidentify_saturday_crews(base_date) == {"I1": ["B2"]}


class TestInternalAllocation:
    """Tests for Saturday and weekday staffing."""

    def test_weekday_roster(self, base_date):
        """Every linked broker works every open weekday shift."""
        office = create_office(["B1", "B2"])
        allocator, states = create_allocator(office)
        context = create_context(base_date, office, states)

        made = allocator.allocate_weekdays(context, base_date)

        assert len(made) == 2 * 5 * 2
        assert all(a.day.weekday() < 5 for a in made)

    def test_weekday_skips_booked_slots(self, base_date):
        """A broker already booked in a slot keeps only the free shift."""
        office = create_office(["B1"])
        allocator, states = create_allocator(office)
        context = create_context(base_date, office, states)
        context.add_internal(Assignment("B1", "E1", base_date, Shift.MORNING, time(8, 0), time(12, 0)))

        made = allocator.allocate_weekdays(context, base_date)
        monday = [a for a in made if a.day == base_date]

        assert [a.shift for a in monday] == [Shift.AFTERNOON]

    def test_saturday_staffed_from_crew(self, base_date):
        """The pre-identified crew staffs Saturday and rotates in the queue."""
        office = create_office(["B1", "B2", "B3"])
        allocator, states = create_allocator(office)
        context = create_context(base_date, office, states)

        made = allocator.allocate_saturdays(context, base_date, {"I1": ["B2"]})

        saturday = base_date + timedelta(days=5)
        assert [(a.broker_id, a.day, a.shift) for a in made] == [("B2", saturday, Shift.MORNING)]
        assert allocator.saturday_queues["I1"].order() == ["B1", "B3", "B2"]

    def test_saturday_skips_sunday_workers(self, base_date):
        """Brokers working Sunday are not staffed on Saturday."""
        office = create_office(["B1", "B2"])
        allocator, states = create_allocator(office)
        context = create_context(base_date, office, states)
        sunday = base_date + timedelta(days=6)
        context.add_internal(Assignment("B1", "E1", sunday, Shift.MORNING, time(8, 0), time(12, 0)))

        made = allocator.allocate_saturdays(context, base_date, {"I1": ["B1"]})

        assert [a.broker_id for a in made] == ["B2"]

    def test_existing_queue_used(self, base_date):
        """A stored Saturday queue decides who goes first."""
        office = create_office(["B1", "B2"])
        brokers_map = {b: Broker(id=b, name=b) for b in ("B1", "B2")}
        queues = {"I1": RotationQueue("I1", ["B2", "B1"])}
        allocator = InternalShiftAllocator({"I1": office}, brokers_map, queues)

        assert allocator.preidentify_saturday_crews(base_date) == {"I1": ["B2"]}
