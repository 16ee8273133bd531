"""Tests for eligibility resolution and demand mapping."""

from datetime import date, timedelta

import pytest

from brokershift.domain.models import (
    Broker,
    DayConfig,
    ExcludedDate,
    Location,
    LocationBrokerLink,
    LocationType,
    Period,
    Shift,
)
from brokershift.scheduling.demand_mapper import DemandMapper
from brokershift.scheduling.eligibility import EligibilityResolver
from brokershift.scheduling.events import EventKind, EventRecorder


# Test fixtures
@pytest.fixture
def base_date():
    """A Monday to use as the start of the week."""
    return date(2025, 3, 3)


def create_external(
    location_id: str,
    links: list[LocationBrokerLink],
    weekday_configs: dict[str, DayConfig],
    excluded_dates=None,
) -> Location:
    """Create an external location active through 2025."""
    return Location(
        id=location_id,
        name=f"Site {location_id}",
        location_type=LocationType.EXTERNAL,
        builder="Acme",
        periods=[
            Period(
                id=f"P-{location_id}",
                start=date(2025, 1, 1),
                end=date(2025, 12, 31),
                weekday_configs=weekday_configs,
                excluded_dates=excluded_dates or [],
            )
        ],
        links=links,
    )


class TestEligibilityResolver:
    """Tests for EligibilityResolver."""

    def test_global_override_is_absolute(self, base_date):
        """A location link can never re-admit a shift the broker excludes globally."""
        sunday = base_date + timedelta(days=6)
        broker = Broker(id="B1", name="Alice", weekday_shifts={"sunday": {Shift.MORNING}})
        location = create_external(
            "E1",
            [LocationBrokerLink("B1", weekday_shifts={"sunday": {Shift.MORNING, Shift.AFTERNOON}})],
            {"sunday": DayConfig()},
        )
        resolver = EligibilityResolver({"B1": broker})

        assert resolver.eligible_brokers(location, sunday, Shift.MORNING) == ["B1"]
        assert resolver.eligible_brokers(location, sunday, Shift.AFTERNOON) == []

    def test_link_override_narrows(self, base_date):
        """A link override can narrow the broker's global availability."""
        broker = Broker(id="B1", name="Alice")
        location = create_external(
            "E1",
            [LocationBrokerLink("B1", weekday_shifts={"monday": {Shift.AFTERNOON}})],
            {"monday": DayConfig()},
        )
        resolver = EligibilityResolver({"B1": broker})

        assert resolver.eligible_brokers(location, base_date, Shift.MORNING) == []
        assert resolver.eligible_brokers(location, base_date, Shift.AFTERNOON) == ["B1"]

    def test_unavailable_weekday(self, base_date):
        """Brokers are never eligible on weekdays they do not work."""
        broker = Broker(id="B1", name="Alice", available_weekdays={"tuesday"})
        location = create_external("E1", [LocationBrokerLink("B1")], {"monday": DayConfig()})
        resolver = EligibilityResolver({"B1": broker})

        assert resolver.eligible_brokers(location, base_date, Shift.MORNING) == []

    def test_sunday_unavailable_despite_link_override(self, base_date):
        """A broker who never works Sundays stays off them whatever the link says."""
        sunday = base_date + timedelta(days=6)
        weekdays = {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday"}
        broker = Broker(id="B1", name="Alice", available_weekdays=weekdays)
        location = create_external(
            "E1",
            [LocationBrokerLink("B1", weekday_shifts={"sunday": {Shift.MORNING, Shift.AFTERNOON}})],
            {"sunday": DayConfig()},
        )
        resolver = EligibilityResolver({"B1": broker})

        assert resolver.eligible_brokers(location, sunday, Shift.MORNING) == []
        assert resolver.eligible_brokers(location, sunday, Shift.AFTERNOON) == []

        mapping = DemandMapper([location], resolver).map_week(base_date)
        assert mapping.demands == []
        assert {d.day for d in mapping.impossible} == {sunday}

    def test_inactive_and_unlinked_brokers(self, base_date):
        """Inactive brokers and brokers without a link are excluded."""
        brokers = {
            "B1": Broker(id="B1", name="Alice", active=False),
            "B2": Broker(id="B2", name="Bruno"),
            "B3": Broker(id="B3", name="Carla"),
        }
        location = create_external(
            "E1",
            [LocationBrokerLink("B1"), LocationBrokerLink("B2")],
            {"monday": DayConfig()},
        )
        resolver = EligibilityResolver(brokers)

        assert resolver.eligible_brokers(location, base_date, Shift.MORNING) == ["B2"]
        assert resolver.is_eligible(brokers["B3"], location, base_date, Shift.MORNING) is False

    def test_link_order_preserved(self, base_date):
        """Eligible brokers come back in link order."""
        brokers = {b: Broker(id=b, name=b) for b in ("B1", "B2", "B3")}
        location = create_external(
            "E1",
            [LocationBrokerLink("B3"), LocationBrokerLink("B1"), LocationBrokerLink("B2")],
            {"monday": DayConfig()},
        )
        resolver = EligibilityResolver(brokers)

        assert resolver.eligible_brokers(location, base_date, Shift.MORNING) == ["B3", "B1", "B2"]


class TestDemandMapper:
    """Tests for DemandMapper."""

    @pytest.fixture
    def brokers_map(self):
        """Two brokers available every day."""
        return {b: Broker(id=b, name=b) for b in ("B1", "B2")}

    def test_maps_configured_shifts(self, base_date, brokers_map):
        """Each configured shift of the week becomes one demand."""
        location = create_external(
            "E1",
            [LocationBrokerLink("B1"), LocationBrokerLink("B2")],
            {
                "monday": DayConfig(),
                "wednesday": DayConfig(has_afternoon=False),
            },
        )
        mapper = DemandMapper([location], EligibilityResolver(brokers_map))
        result = mapper.map_week(base_date)

        assert len(result.demands) == 3
        assert result.impossible == []
        keys = {d.key for d in result.demands}
        assert "E1|2025-03-03|morning" in keys
        assert "E1|2025-03-03|afternoon" in keys
        assert "E1|2025-03-05|morning" in keys
        assert all(d.eligible_broker_ids == ["B1", "B2"] for d in result.demands)
        assert all(d.builder == "Acme" for d in result.demands)

    def test_excluded_date_produces_no_demand(self, base_date, brokers_map):
        """Whole-day exclusions remove every demand of that date."""
        location = create_external(
            "E1",
            [LocationBrokerLink("B1")],
            {"monday": DayConfig(), "tuesday": DayConfig()},
            excluded_dates=[ExcludedDate(base_date)],
        )
        mapper = DemandMapper([location], EligibilityResolver(brokers_map))
        result = mapper.map_week(base_date)

        assert {d.day for d in result.demands} == {base_date + timedelta(days=1)}

    def test_impossible_demands_reported(self, base_date, brokers_map):
        """Demands nobody can fill are separated and reported as events."""
        location = create_external(
            "E1",
            [LocationBrokerLink("B1", available_afternoon=False)],
            {"monday": DayConfig()},
        )
        events = EventRecorder()
        mapper = DemandMapper([location], EligibilityResolver(brokers_map), events=events)
        result = mapper.map_week(base_date)

        assert [d.shift for d in result.demands] == [Shift.MORNING]
        assert [d.shift for d in result.impossible] == [Shift.AFTERNOON]
        assert len(result.all_demands) == 2
        assert len(events.of_kind(EventKind.IMPOSSIBLE_DEMAND)) == 1

    def test_internal_locations_ignored(self, base_date, brokers_map):
        """Internal offices never produce external demands."""
        office = Location(
            id="I1",
            name="Main Office",
            location_type=LocationType.INTERNAL,
            periods=[
                Period(
                    id="P-I1",
                    start=date(2025, 1, 1),
                    end=date(2025, 12, 31),
                    weekday_configs={"monday": DayConfig()},
                )
            ],
            links=[LocationBrokerLink("B1")],
        )
        mapper = DemandMapper([office], EligibilityResolver(brokers_map))
        assert mapper.map_week(base_date).all_demands == []
