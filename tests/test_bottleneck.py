"""Tests for bottleneck analysis and reservations."""

from datetime import date, time, timedelta

import pytest

from brokershift.domain.models import Assignment, Broker, Demand, Shift
from brokershift.scheduling.bottleneck import BottleneckAnalyzer, BottleneckPriority
from brokershift.scheduling.events import EventKind, EventRecorder


# Test fixtures
@pytest.fixture
def base_date():
    """A Monday to use as the start of the week."""
    return date(2025, 3, 3)


@pytest.fixture
def brokers_map():
    """Four brokers available every day."""
    return {b: Broker(id=b, name=b) for b in ("B1", "B2", "B3", "B4")}


def create_demand(location_id: str, day: date, eligible: list[str], shift: Shift = Shift.MORNING) -> Demand:
    """Create a demand with the given eligible brokers."""
    return Demand(
        location_id=location_id,
        location_name=f"Site {location_id}",
        day=day,
        shift=shift,
        start_time=time(8, 0),
        end_time=time(12, 0),
        eligible_broker_ids=eligible,
    )


class TestClassification:
    """Tests for scarcity classification."""

    def test_priorities(self, base_date, brokers_map):
        """Counts map to critical, high and normal priorities."""
        analyzer = BottleneckAnalyzer(brokers_map)
        weekday = create_demand("E1", base_date, [])
        sunday = create_demand("E1", base_date + timedelta(days=6), [])

        assert analyzer.classify(weekday, 0) is BottleneckPriority.CRITICAL
        assert analyzer.classify(weekday, 1) is BottleneckPriority.CRITICAL
        assert analyzer.classify(weekday, 2) is BottleneckPriority.HIGH
        assert analyzer.classify(weekday, 3) is BottleneckPriority.NORMAL
        assert analyzer.classify(sunday, 3) is BottleneckPriority.HIGH
        assert analyzer.classify(sunday, 4) is BottleneckPriority.NORMAL

    def test_sorted_by_priority_then_weekend(self, base_date, brokers_map):
        """Critical demands come first, Sundays before Saturdays before weekdays."""
        monday = create_demand("E1", base_date, ["B1"])
        saturday = create_demand("E1", base_date + timedelta(days=5), ["B2"])
        sunday = create_demand("E1", base_date + timedelta(days=6), ["B3"])
        normal = create_demand("E2", base_date, ["B1", "B2", "B3", "B4"])

        report = BottleneckAnalyzer(brokers_map).analyze([normal, monday, saturday, sunday])

        assert [a.demand for a in report.analyses] == [sunday, saturday, monday, normal]


class TestReservations:
    """Tests for mandatory reservations."""

    def test_single_candidate_reserved(self, base_date, brokers_map):
        """A demand with one candidate reserves that broker."""
        events = EventRecorder()
        demand = create_demand("E1", base_date, ["B1"])
        report = BottleneckAnalyzer(brokers_map, events=events).analyze([demand])

        reservation = report.reservations[("B1", base_date, Shift.MORNING)]
        assert reservation.demand_key == demand.key
        assert len(events.of_kind(EventKind.RESERVATION_CREATED)) == 1

    def test_one_reservation_per_slot(self, base_date, brokers_map):
        """A broker is reserved only once for the same date and shift."""
        first = create_demand("E1", base_date, ["B1"])
        second = create_demand("E2", base_date, ["B1"])
        report = BottleneckAnalyzer(brokers_map).analyze([first, second])

        assert len(report.reservations) == 1

    def test_previous_week_tail_removes_candidate(self, base_date, brokers_map):
        """A Sunday external last week keeps the broker out of Monday's count."""
        previous_sunday = base_date - timedelta(days=1)
        previous = [
            Assignment("B1", "E9", previous_sunday, Shift.MORNING, time(8, 0), time(12, 0))
        ]
        demand = create_demand("E1", base_date, ["B1", "B2"])
        report = BottleneckAnalyzer(brokers_map, previous_externals=previous).analyze([demand])

        analysis = report.analyses[0]
        assert analysis.eligible_broker_ids == ["B2"]
        assert analysis.priority is BottleneckPriority.CRITICAL
        assert ("B2", base_date, Shift.MORNING) in report.reservations

    def test_no_candidates_is_impossible(self, base_date, brokers_map):
        """Demands without candidates are flagged impossible and not reserved."""
        brokers_map["B1"] = Broker(id="B1", name="B1", available_weekdays={"tuesday"})
        demand = create_demand("E1", base_date, ["B1"])
        report = BottleneckAnalyzer(brokers_map).analyze([demand])

        assert len(report.impossible) == 1
        assert report.reservations == {}

    def test_cascade_warning(self, base_date, brokers_map):
        """Reserving a broker for adjacent single-candidate days raises cascade warnings."""
        events = EventRecorder()
        monday = create_demand("E1", base_date, ["B1"])
        tuesday = create_demand("E2", base_date + timedelta(days=1), ["B1"])
        report = BottleneckAnalyzer(brokers_map, events=events).analyze([monday, tuesday])

        assert len(report.cascade_warnings) == 2
        assert {w.starved_demand for w in report.cascade_warnings} == {monday.key, tuesday.key}
        assert len(events.of_kind(EventKind.CASCADE_RISK)) == 2
