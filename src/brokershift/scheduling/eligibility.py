"""Eligibility resolution: which brokers may fill a given demand."""

from datetime import date

from brokershift.domain.models import Broker, Location, Shift, weekday_name


class EligibilityResolver:
    """Resolves the eligible brokers for a (location, date, shift).

    A broker is eligible when:
    - they are active and linked to the location,
    - the weekday is in their globally available weekdays,
    - their global weekday/shift override (if any) includes the shift;
      this is absolute, the location link cannot widen it,
    - the link's own override includes the shift, falling back to the
      link's legacy morning/afternoon flags.

    Example:
        >>> resolver = EligibilityResolver(brokers_map)
        >>> resolver.eligible_brokers(location, date(2024, 1, 15), Shift.MORNING)
        ['B001', 'B004']
    """

    def __init__(self, brokers_map: dict[str, Broker]):
        self.brokers_map = brokers_map

    def is_eligible(self, broker: Broker, location: Location, day: date, shift: Shift) -> bool:
        if not broker.active:
            return False
        link = location.link_for(broker.id)
        if link is None:
            return False
        weekday = weekday_name(day)
        if not broker.allows_shift(weekday, shift):
            return False
        return link.allows_shift(weekday, shift)

    def eligible_brokers(self, location: Location, day: date, shift: Shift) -> list[str]:
        """Get eligible broker IDs in link order."""
        eligible = []
        for link in location.links:
            broker = self.brokers_map.get(link.broker_id)
            if broker is not None and self.is_eligible(broker, location, day, shift):
                eligible.append(broker.id)
        return eligible
