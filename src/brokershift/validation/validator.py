"""Validation module for verifying schedule correctness.

This module is the single source of truth for the rule taxonomy of a
produced week. Every generated week is validated before it is accepted;
critical violations block acceptance, warnings are kept for auditing.
"""

from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Optional

from brokershift.domain.models import Assignment, Broker, Location, week_start_for
from brokershift.domain.policies import AllocationLimits


class Severity(Enum):
    """Severity of a rule violation."""

    CRITICAL = "critical"  # Never acceptable
    WARNING = "warning"  # Acceptable under relaxation


class ViolationRule(Enum):
    """Rules checked by the validator."""

    WEEKLY_HARD_CAP = "weekly_hard_cap"
    WEEKLY_LIMIT = "weekly_limit"
    PHYSICAL_CONFLICT = "physical_conflict"
    MULTIPLE_EXTERNAL_LOCATIONS = "multiple_external_locations"
    BUILDER_CONFLICT = "builder_conflict"
    SAME_LOCATION_BOTH_SHIFTS = "same_location_both_shifts"
    WEEKEND_DOUBLE_DUTY = "weekend_double_duty"
    THREE_CONSECUTIVE_EXTERNALS = "three_consecutive_externals"
    CONSECUTIVE_EXTERNALS = "consecutive_externals"
    ROTATION_REPEAT = "rotation_repeat"
    SATURDAY_EXTERNAL_LIMIT = "saturday_external_limit"

    @property
    def is_inviolable(self) -> bool:
        """Violations that always force another attempt."""
        return self in (
            ViolationRule.MULTIPLE_EXTERNAL_LOCATIONS,
            ViolationRule.BUILDER_CONFLICT,
            ViolationRule.WEEKEND_DOUBLE_DUTY,
        )

    @property
    def is_rotation(self) -> bool:
        return self is ViolationRule.ROTATION_REPEAT

    @property
    def is_relaxable(self) -> bool:
        """Violations a late attempt may accept as warnings."""
        return self in (
            ViolationRule.ROTATION_REPEAT,
            ViolationRule.CONSECUTIVE_EXTERNALS,
            ViolationRule.WEEKLY_LIMIT,
            ViolationRule.SATURDAY_EXTERNAL_LIMIT,
        )


@dataclass(frozen=True)
class RuleViolation:
    """A single rule violation."""

    rule: ViolationRule
    broker_id: str
    broker_name: str
    details: str
    severity: Severity
    day: Optional[date] = None
    location: Optional[str] = None

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.CRITICAL

    def __str__(self) -> str:
        parts = [f"[{self.severity.value}:{self.rule.value}]", f"{self.broker_name}:", self.details]
        if self.day is not None:
            parts.append(f"({self.day.isoformat()})")
        return " ".join(parts)


@dataclass
class ValidationResult:
    """Result of validating a week."""

    is_valid: bool = True
    violations: list[RuleViolation] = field(default_factory=list)

    def add(self, violation: RuleViolation) -> None:
        """Add a violation; critical ones mark the result invalid."""
        self.violations.append(violation)
        if violation.is_critical:
            self.is_valid = False

    @property
    def critical(self) -> list[RuleViolation]:
        return [v for v in self.violations if v.is_critical]

    @property
    def warnings(self) -> list[RuleViolation]:
        return [v for v in self.violations if not v.is_critical]

    def downgraded(self, note: str) -> "ValidationResult":
        """Copy with every critical violation turned into an annotated warning."""
        return ValidationResult(
            is_valid=True,
            violations=[
                replace(v, severity=Severity.WARNING, details=f"{v.details} ({note})")
                if v.is_critical else v
                for v in self.violations
            ],
        )

    def summary(self) -> str:
        if self.is_valid:
            if self.warnings:
                return f"All rules respected ({len(self.warnings)} warnings)"
            return "All rules respected"
        lines = [f"{len(self.critical)} critical violation(s):"]
        lines.extend(f"  - {v}" for v in self.critical)
        return "\n".join(lines)


class ScheduleValidator:
    """Validates a week of assignments against the full rule taxonomy.

    Validation is a pure function of its inputs: validating the same
    assignments twice yields identical violation lists.

    Example:
        >>> validator = ScheduleValidator(brokers_map, locations_map)
        >>> result = validator.validate(assignments, previous_assignments)
        >>> if not result.is_valid:
        ...     print(result.summary())
    """

    def __init__(
        self,
        brokers_map: dict[str, Broker],
        locations: dict[str, Location],
        limits: Optional[AllocationLimits] = None,
    ):
        self.brokers_map = brokers_map
        self.locations = locations
        self.limits = limits or AllocationLimits()

    def validate(
        self,
        assignments: list[Assignment],
        previous_assignments: Optional[Iterable[Assignment]] = None,
    ) -> ValidationResult:
        """Validate a week.

        Args:
            assignments: All assignments of the week.
            previous_assignments: Assignments of earlier weeks, for the
                cross-week rotation and consecutive-day checks.

        Returns:
            ValidationResult; valid iff no critical violation was found.
        """
        result = ValidationResult()
        previous = list(previous_assignments) if previous_assignments is not None else None

        by_broker: dict[str, list[Assignment]] = defaultdict(list)
        for a in assignments:
            by_broker[a.broker_id].append(a)

        tail: dict[str, list[date]] = defaultdict(list)
        if previous is not None and assignments:
            week_start = week_start_for(min(a.day for a in assignments))
            for a in previous:
                if week_start - timedelta(days=3) <= a.day < week_start and self._is_external(a.location_id):
                    tail[a.broker_id].append(a.day)

        for broker_id in sorted(by_broker):
            own = sorted(by_broker[broker_id], key=lambda a: (a.day, a.shift.order, a.location_id))
            self._validate_weekly_limits(broker_id, own, result)
            self._validate_same_day(broker_id, own, assignments, result)
            self._validate_consecutive(broker_id, own, tail.get(broker_id, []), result)
            self._validate_weekend(broker_id, own, result)

        if previous is not None:
            self._validate_rotation(by_broker, assignments, previous, result)

        return result

    # -- helpers ---------------------------------------------------------

    def _name(self, broker_id: str) -> str:
        broker = self.brokers_map.get(broker_id)
        return broker.name if broker else broker_id

    def _is_external(self, location_id: str) -> bool:
        location = self.locations.get(location_id)
        return location is not None and location.is_external

    def _location_name(self, location_id: str) -> str:
        location = self.locations.get(location_id)
        return location.name if location else location_id

    def _violation(
        self,
        rule: ViolationRule,
        broker_id: str,
        details: str,
        severity: Severity,
        day: Optional[date] = None,
        location: Optional[str] = None,
    ) -> RuleViolation:
        return RuleViolation(
            rule=rule,
            broker_id=broker_id,
            broker_name=self._name(broker_id),
            details=details,
            severity=severity,
            day=day,
            location=location,
        )

    def _external_days(self, own: list[Assignment]) -> list[date]:
        return sorted({a.day for a in own if self._is_external(a.location_id)})

    # -- checks ----------------------------------------------------------

    def _validate_weekly_limits(self, broker_id: str, own: list[Assignment], result: ValidationResult) -> None:
        external_days = self._external_days(own)
        count = len(external_days)
        if count > self.limits.hard_cap:
            result.add(
                self._violation(
                    ViolationRule.WEEKLY_HARD_CAP,
                    broker_id,
                    f"{count} external days in the week (absolute maximum {self.limits.hard_cap})",
                    Severity.CRITICAL,
                )
            )
        elif count > self.limits.weekly_target:
            result.add(
                self._violation(
                    ViolationRule.WEEKLY_LIMIT,
                    broker_id,
                    f"{count} external days in the week (target {self.limits.weekly_target})",
                    Severity.WARNING,
                )
            )

        works_saturday = any(a.day.weekday() == 5 for a in own)
        if works_saturday and count > self.limits.saturday_worker_cap:
            result.add(
                self._violation(
                    ViolationRule.SATURDAY_EXTERNAL_LIMIT,
                    broker_id,
                    f"works Saturday and has {count} external days",
                    Severity.WARNING,
                )
            )

    def _validate_same_day(
        self,
        broker_id: str,
        own: list[Assignment],
        assignments: list[Assignment],
        result: ValidationResult,
    ) -> None:
        by_day: dict[date, list[Assignment]] = defaultdict(list)
        for a in own:
            by_day[a.day].append(a)

        for day in sorted(by_day):
            day_assignments = by_day[day]

            seen_shifts: dict = {}
            for a in day_assignments:
                if a.shift in seen_shifts and seen_shifts[a.shift] != a.location_id:
                    result.add(
                        self._violation(
                            ViolationRule.PHYSICAL_CONFLICT,
                            broker_id,
                            f"{a.shift.value} at both {self._location_name(seen_shifts[a.shift])} "
                            f"and {self._location_name(a.location_id)}",
                            Severity.CRITICAL,
                            day=day,
                        )
                    )
                seen_shifts.setdefault(a.shift, a.location_id)

            externals = [a for a in day_assignments if self._is_external(a.location_id)]
            external_locations = sorted({a.location_id for a in externals})
            if len(external_locations) > 1:
                names = " and ".join(self._location_name(l) for l in external_locations)
                result.add(
                    self._violation(
                        ViolationRule.MULTIPLE_EXTERNAL_LOCATIONS,
                        broker_id,
                        f"at {len(external_locations)} external locations: {names}",
                        Severity.CRITICAL,
                        day=day,
                    )
                )

            builders = sorted(
                {
                    self.locations[a.location_id].builder
                    for a in externals
                    if self.locations[a.location_id].builder
                }
            )
            if len(builders) > 1:
                result.add(
                    self._violation(
                        ViolationRule.BUILDER_CONFLICT,
                        broker_id,
                        f"serves competing builders: {', '.join(builders)}",
                        Severity.CRITICAL,
                        day=day,
                    )
                )

            for location_id in external_locations:
                shifts = {a.shift for a in externals if a.location_id == location_id}
                if len(shifts) < 2:
                    continue
                others = {
                    a.broker_id for a in assignments
                    if a.location_id == location_id and a.broker_id != broker_id
                }
                severity = Severity.CRITICAL if others else Severity.WARNING
                details = "morning and afternoon at the same location"
                if not others:
                    details += " (only broker assigned there, unavoidable)"
                result.add(
                    self._violation(
                        ViolationRule.SAME_LOCATION_BOTH_SHIFTS,
                        broker_id,
                        details,
                        severity,
                        day=day,
                        location=self._location_name(location_id),
                    )
                )

    def _validate_consecutive(
        self,
        broker_id: str,
        own: list[Assignment],
        previous_days: list[date],
        result: ValidationResult,
    ) -> None:
        current = set(self._external_days(own))
        days = sorted(current | set(previous_days))
        for first, second, third in zip(days, days[1:], days[2:]):
            if third not in current:
                continue
            if (second - first).days == 1 and (third - second).days == 1:
                result.add(
                    self._violation(
                        ViolationRule.THREE_CONSECUTIVE_EXTERNALS,
                        broker_id,
                        f"externals on {first.isoformat()}, {second.isoformat()} and {third.isoformat()}",
                        Severity.CRITICAL,
                        day=first,
                    )
                )
        for first, second in zip(days, days[1:]):
            if second not in current:
                continue
            if (second - first).days == 1:
                result.add(
                    self._violation(
                        ViolationRule.CONSECUTIVE_EXTERNALS,
                        broker_id,
                        f"externals on consecutive days {first.isoformat()} and {second.isoformat()}",
                        Severity.WARNING,
                        day=first,
                    )
                )

    def _validate_weekend(self, broker_id: str, own: list[Assignment], result: ValidationResult) -> None:
        days = {a.day for a in own}
        for day in sorted(days):
            if day.weekday() == 5 and day + timedelta(days=1) in days:
                result.add(
                    self._violation(
                        ViolationRule.WEEKEND_DOUBLE_DUTY,
                        broker_id,
                        f"works Saturday {day.isoformat()} and Sunday "
                        f"{(day + timedelta(days=1)).isoformat()}",
                        Severity.CRITICAL,
                        day=day,
                    )
                )

    def _validate_rotation(
        self,
        by_broker: dict[str, list[Assignment]],
        assignments: list[Assignment],
        previous: list[Assignment],
        result: ValidationResult,
    ) -> None:
        if not assignments:
            return
        week_start = week_start_for(min(a.day for a in assignments))
        last_week = [
            a for a in previous
            if 0 < (week_start - a.day).days <= 7
        ]

        for broker_id in sorted(by_broker):
            current = {
                a.location_id for a in by_broker[broker_id]
                if self._is_external(a.location_id)
            }
            repeated = sorted(
                {
                    a.location_id for a in last_week
                    if a.broker_id == broker_id and a.location_id in current
                }
            )
            for location_id in repeated:
                location = self.locations[location_id]
                if not location.flagship:
                    continue
                only_configured = location.broker_ids == [broker_id]
                result.add(
                    self._violation(
                        ViolationRule.ROTATION_REPEAT,
                        broker_id,
                        f"repeats {location.name} in consecutive weeks"
                        + (" (only configured broker, unavoidable)" if only_configured else ""),
                        Severity.WARNING if only_configured else Severity.CRITICAL,
                        location=location.name,
                    )
                )
