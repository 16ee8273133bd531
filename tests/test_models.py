"""Tests for core domain models."""

from datetime import date, time, timedelta

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
    ShiftConfigMode,
    demand_key,
    week_dates,
    week_start_for,
)
from brokershift.errors import ConfigurationError


# Test fixtures
@pytest.fixture
def base_date():
    """A Monday to use as the start of the week."""
    return date(2025, 3, 3)


def create_test_location(
    weekday_configs: dict[str, DayConfig],
    mode: ShiftConfigMode = ShiftConfigMode.WEEKDAY_TEMPLATE,
    specific_configs=None,
    excluded_dates=None,
) -> Location:
    """Create an external location with a single 2025 period."""
    return Location(
        id="E1",
        name="Harbor View",
        location_type=LocationType.EXTERNAL,
        shift_config_mode=mode,
        periods=[
            Period(
                id="P1",
                start=date(2025, 1, 1),
                end=date(2025, 12, 31),
                weekday_configs=weekday_configs,
                specific_configs=specific_configs or {},
                excluded_dates=excluded_dates or [],
            )
        ],
        links=[LocationBrokerLink("B1"), LocationBrokerLink("B2")],
    )


class TestWeekHelpers:
    """Tests for week date helpers."""

    def test_week_start_for_any_day(self, base_date):
        """Every day of a week should map to its Monday."""
        for offset in range(7):
            assert week_start_for(base_date + timedelta(days=offset)) == base_date

    def test_week_dates(self, base_date):
        """A week should run Monday to Sunday."""
        days = week_dates(base_date)
        assert len(days) == 7
        assert days[0] == base_date
        assert days[-1].weekday() == 6

    def test_demand_key(self, base_date):
        """Demand keys combine location, date and shift."""
        assert demand_key("E1", base_date, Shift.MORNING) == "E1|2025-03-03|morning"


class TestPeriod:
    """Tests for Period."""

    def test_end_before_start_rejected(self):
        """A period ending before it starts is a configuration error."""
        with pytest.raises(ConfigurationError):
            Period(id="P1", start=date(2025, 2, 1), end=date(2025, 1, 1))

    def test_unknown_weekday_rejected(self):
        """Weekday templates must use known weekday names."""
        with pytest.raises(ConfigurationError):
            Period(
                id="P1",
                start=date(2025, 1, 1),
                end=date(2025, 12, 31),
                weekday_configs={"funday": DayConfig()},
            )

    def test_partial_exclusion(self, base_date):
        """Excluding one shift leaves the day itself active."""
        period = Period(
            id="P1",
            start=date(2025, 1, 1),
            end=date(2025, 12, 31),
            excluded_dates=[ExcludedDate(base_date, {Shift.AFTERNOON})],
        )
        assert period.is_day_excluded(base_date) is False
        assert period.is_shift_excluded(base_date, Shift.AFTERNOON) is True
        assert period.is_shift_excluded(base_date, Shift.MORNING) is False

    def test_excluding_both_shifts_is_whole_day(self, base_date):
        """Excluding both shifts is the same as excluding the day."""
        excluded = ExcludedDate(base_date, {Shift.MORNING, Shift.AFTERNOON})
        assert excluded.whole_day is True


class TestLocationShifts:
    """Tests for resolving the shifts a location runs on a date."""

    def test_weekday_template(self, base_date):
        """Weekday templates define the shifts of matching dates."""
        location = create_test_location({"monday": DayConfig(has_afternoon=False)})
        assert location.open_shifts(base_date) == [Shift.MORNING]
        assert location.open_shifts(base_date + timedelta(days=1)) == []

    def test_specific_date_overrides_template(self, base_date):
        """A specific-date config wins over the weekday template."""
        location = create_test_location(
            {"monday": DayConfig()},
            specific_configs={base_date: DayConfig(has_morning=False, afternoon_start=time(14, 0))},
        )
        assert location.open_shifts(base_date) == [Shift.AFTERNOON]
        assert location.day_config(base_date).afternoon_start == time(14, 0)
        # Other Mondays keep the template
        assert location.open_shifts(base_date + timedelta(days=7)) == [Shift.MORNING, Shift.AFTERNOON]

    def test_specific_date_mode_ignores_template(self, base_date):
        """In specific-date mode only configured dates exist."""
        location = create_test_location(
            {"monday": DayConfig()},
            mode=ShiftConfigMode.SPECIFIC_DATE,
            specific_configs={base_date: DayConfig(has_afternoon=False)},
        )
        assert location.open_shifts(base_date) == [Shift.MORNING]
        assert location.open_shifts(base_date + timedelta(days=7)) == []

    def test_whole_day_exclusion(self, base_date):
        """An excluded date produces no shifts."""
        location = create_test_location(
            {"monday": DayConfig()},
            excluded_dates=[ExcludedDate(base_date)],
        )
        assert location.open_shifts(base_date) == []

    def test_shift_exclusion(self, base_date):
        """Excluding a shift removes only that shift."""
        location = create_test_location(
            {"monday": DayConfig()},
            excluded_dates=[ExcludedDate(base_date, {Shift.MORNING})],
        )
        assert location.open_shifts(base_date) == [Shift.AFTERNOON]

    def test_outside_period(self):
        """Dates outside every period have no shifts."""
        location = create_test_location({"monday": DayConfig()})
        assert location.open_shifts(date(2026, 1, 5)) == []

    def test_broker_ids_in_link_order(self):
        """Configured brokers are listed in link order."""
        location = create_test_location({})
        assert location.broker_ids == ["B1", "B2"]
        assert location.link_for("B2").broker_id == "B2"
        assert location.link_for("B9") is None


class TestBrokerAvailability:
    """Tests for broker and link availability."""

    def test_unavailable_weekday(self):
        """Brokers never work weekdays they are not available on."""
        broker = Broker(id="B1", name="Alice", available_weekdays={"monday"})
        assert broker.allows_shift("monday", Shift.MORNING) is True
        assert broker.allows_shift("tuesday", Shift.MORNING) is False

    def test_global_shift_override(self):
        """A global weekday override restricts the shifts of that weekday."""
        broker = Broker(id="B1", name="Alice", weekday_shifts={"friday": {Shift.MORNING}})
        assert broker.allows_shift("friday", Shift.MORNING) is True
        assert broker.allows_shift("friday", Shift.AFTERNOON) is False
        assert broker.allows_shift("thursday", Shift.AFTERNOON) is True

    def test_link_legacy_flags(self):
        """Without an override the link's legacy flags apply."""
        link = LocationBrokerLink("B1", available_afternoon=False)
        assert link.allows_shift("monday", Shift.MORNING) is True
        assert link.allows_shift("monday", Shift.AFTERNOON) is False

    def test_link_override_beats_legacy_flags(self):
        """A link weekday override takes precedence over the legacy flags."""
        link = LocationBrokerLink(
            "B1",
            weekday_shifts={"monday": {Shift.AFTERNOON}},
            available_afternoon=False,
        )
        assert link.allows_shift("monday", Shift.AFTERNOON) is True
        assert link.allows_shift("monday", Shift.MORNING) is False
