"""Policy definitions for allocation limits, passes and retries.

Policies encapsulate the tunable numbers of the engine. Each policy has
an abstract interface where alternative behavior is plausible and a
default implementation with the production values.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class AllocationLimits:
    """Weekly external-shift limits.

    Attributes:
        weekly_target: Fairness target of externals per broker per week.
        reduced_target: Target after a heavy week or with Saturday duty.
        hard_cap: Never exceeded, under any circumstance.
        heavy_week_threshold: Externals last week that reduce the target.
        saturday_worker_cap: Externals allowed to brokers working Saturday.
    """

    weekly_target: int = 2
    reduced_target: int = 1
    hard_cap: int = 3
    heavy_week_threshold: int = 2
    saturday_worker_cap: int = 1


class ExternalTargetPolicy(ABC):
    """Abstract policy deciding a broker's external target for a week."""

    @abstractmethod
    def target_for(self, previous_week_externals: int, saturday_internal: bool) -> int:
        """Get the external-shift target for a broker this week.

        Args:
            previous_week_externals: External shifts worked last week.
            saturday_internal: Whether the broker is on internal Saturday duty.

        Returns:
            Number of externals the broker should receive.
        """
        pass


@dataclass
class DefaultExternalTargetPolicy(ExternalTargetPolicy):
    """Default target: 2, reduced to 1 after a heavy week or with Saturday duty."""

    limits: AllocationLimits = field(default_factory=AllocationLimits)

    def target_for(self, previous_week_externals: int, saturday_internal: bool) -> int:
        if previous_week_externals >= self.limits.heavy_week_threshold:
            return self.limits.reduced_target
        if saturday_internal:
            return self.limits.reduced_target
        return self.limits.weekly_target


TOTAL_PASSES = 5


@dataclass(frozen=True)
class PassPolicy:
    """What a single allocation pass enforces.

    Attributes:
        number: Pass number (1-5).
        personal_targets: Enforce each broker's own target (else the
            weekly target of 2 applies to everyone).
        avoid_friday_before_saturday: Skip Saturday workers for Friday demands.
        exclusive_reservations: Reserved demands only go to their broker.
        team_saturday_unlocked: Small-team members that may take a Saturday
            external when the team has 3+ people available on Saturday.
    """

    number: int
    personal_targets: bool
    avoid_friday_before_saturday: bool
    exclusive_reservations: bool
    team_saturday_unlocked: int

    @classmethod
    def for_pass(cls, number: int) -> "PassPolicy":
        if not 1 <= number <= TOTAL_PASSES:
            raise ValueError(f"Pass number must be 1-{TOTAL_PASSES}, got {number}")
        return cls(
            number=number,
            personal_targets=number <= 2,
            avoid_friday_before_saturday=number <= 3,
            exclusive_reservations=number < 5,
            team_saturday_unlocked=0 if number < 2 else (1 if number < 3 else 2),
        )

    @classmethod
    def all_passes(cls) -> list["PassPolicy"]:
        return [cls.for_pass(n) for n in range(1, TOTAL_PASSES + 1)]


@dataclass
class RetryPolicy:
    """Retry budget and auto-acceptance thresholds for a week.

    The thresholds are empirically tuned; retries past them rarely change
    the outcome.

    Attributes:
        max_attempts: Attempts for full-month generation.
        interactive_max_attempts: Attempts for selected-week regeneration.
        rotation_only_threshold: From this attempt, results whose only
            critical violations are rotation repeats are accepted as warnings.
        relaxable_threshold: From this attempt, results whose critical
            violations are all relaxable are accepted as warnings.
    """

    max_attempts: int = 100
    interactive_max_attempts: int = 50
    rotation_only_threshold: int = 20
    relaxable_threshold: int = 30
