"""Retry orchestration and multi-week generation.

A week is generated, validated and, when it has critical violations,
regenerated with the next attempt number (which reshuffles every
tie-break). Late attempts may accept residual violations as warnings:

- from ``rotation_only_threshold`` on, when rotation repeats are the only
  critical violations;
- from ``relaxable_threshold`` on, when every critical violation is of a
  relaxable kind.

Multiple external locations in a day, builder conflicts and weekend
double duty are never accepted. Weeks run strictly in order because each
one consumes the state left by the previous one.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Optional

from brokershift.domain.accumulator import WeeklyAccumulator, WeeklyStats
from brokershift.domain.models import Assignment, week_start_for
from brokershift.domain.policies import AllocationLimits, RetryPolicy
from brokershift.errors import SchedulingError
from brokershift.scheduling.cpsat_solver import CPSATWeekSolver, SolverConfig, SolverType
from brokershift.scheduling.events import EventKind, EventRecorder
from brokershift.scheduling.weekly_generator import WeekGenerationResult, WeeklyGenerator
from brokershift.storage.repository import ScheduleRepository
from brokershift.validation.validator import RuleViolation, ScheduleValidator, ValidationResult

logger = logging.getLogger(__name__)


class AcceptanceMode(Enum):
    """How a week came to be accepted."""

    CLEAN = "clean"  # No critical violation
    ROTATION_RELAXED = "rotation_relaxed"  # Rotation repeats accepted as warnings
    RELAXED = "relaxed"  # Relaxable violations accepted as warnings


@dataclass
class WeekResult:
    """Final outcome of generating one week.

    Attributes:
        week_start: Monday of the week.
        success: Whether a result was accepted.
        attempts: Attempts made.
        generation: Accepted generation (or the last one tried).
        validation: Validation of that generation.
        acceptance: How it was accepted; None on failure.
        stats: Per-broker counters once the week is committed.
        error: Last scheduling error, when attempts raised.
    """

    week_start: date
    success: bool
    attempts: int
    generation: Optional[WeekGenerationResult] = None
    validation: ValidationResult = field(default_factory=ValidationResult)
    acceptance: Optional[AcceptanceMode] = None
    stats: list[WeeklyStats] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def assignments(self) -> list[Assignment]:
        return self.generation.assignments if self.generation else []

    @property
    def violations(self) -> list[RuleViolation]:
        return self.validation.violations

    def to_report(self) -> dict[str, Any]:
        """Validation report in a JSON-compatible form."""
        generation = self.generation
        return {
            "week_start": self.week_start.isoformat(),
            "success": self.success,
            "attempts": self.attempts,
            "acceptance": self.acceptance.value if self.acceptance else None,
            "solver": generation.solver if generation else None,
            "coverage": round(generation.coverage, 4) if generation else 0.0,
            "impossible": [d.key for d in generation.impossible] if generation else [],
            "unallocated": [d.key for d in generation.unallocated] if generation else [],
            "summary": self.validation.summary(),
            "violations": [
                {
                    "rule": v.rule.value,
                    "severity": v.severity.value,
                    "broker_id": v.broker_id,
                    "broker_name": v.broker_name,
                    "details": v.details,
                    "date": v.day.isoformat() if v.day else None,
                    "location": v.location,
                }
                for v in self.validation.violations
            ],
        }


@dataclass
class MonthlyResult:
    """Outcome of generating a sequence of weeks.

    Attributes:
        success: All weeks were accepted.
        weeks: Results of the weeks processed (accepted ones and the
            failing one, if any).
        failed_week: Monday of the week that exhausted its attempts.
        violations: Critical violations of the failed week's last attempt.
    """

    success: bool
    weeks: list[WeekResult] = field(default_factory=list)
    failed_week: Optional[date] = None
    violations: list[RuleViolation] = field(default_factory=list)

    @property
    def accepted_weeks(self) -> list[WeekResult]:
        return [w for w in self.weeks if w.success]

    @property
    def assignments(self) -> list[Assignment]:
        return [a for w in self.accepted_weeks for a in w.assignments]


class RetryOrchestrator:
    """Generates a week until it validates or the attempts run out.

    Args:
        generator: Week generator.
        validator: Schedule validator.
        retry_policy: Attempt budget and acceptance thresholds.
        solver_type: GREEDY, CPSAT or HYBRID.
        solver_config: CP-SAT configuration.
        events: Event recorder for attempt-level events.

    Example:
        >>> orchestrator = RetryOrchestrator(generator, validator)
        >>> result = orchestrator.run_week(date(2025, 3, 3), accumulator)
        >>> if not result.success:
        ...     print(result.validation.summary())
    """

    def __init__(
        self,
        generator: WeeklyGenerator,
        validator: ScheduleValidator,
        retry_policy: Optional[RetryPolicy] = None,
        solver_type: SolverType = SolverType.GREEDY,
        solver_config: Optional[SolverConfig] = None,
        events: Optional[EventRecorder] = None,
    ):
        self.generator = generator
        self.validator = validator
        self.retry_policy = retry_policy or RetryPolicy()
        self.solver_type = solver_type
        self.solver_config = solver_config or SolverConfig()
        self.events = events or EventRecorder()

    def classify(self, validation: ValidationResult, attempt: int) -> Optional[AcceptanceMode]:
        """Decide whether a validated attempt can be accepted.

        Returns:
            The acceptance mode, or None when another attempt is needed.
        """
        critical = validation.critical
        if not critical:
            return AcceptanceMode.CLEAN
        if any(v.rule.is_inviolable for v in critical):
            return None
        policy = self.retry_policy
        if attempt >= policy.rotation_only_threshold and all(v.rule.is_rotation for v in critical):
            return AcceptanceMode.ROTATION_RELAXED
        if attempt >= policy.relaxable_threshold and all(v.rule.is_relaxable for v in critical):
            return AcceptanceMode.RELAXED
        return None

    def _accept(
        self,
        week_start: date,
        attempt: int,
        generation: WeekGenerationResult,
        validation: ValidationResult,
        mode: AcceptanceMode,
    ) -> WeekResult:
        if mode is not AcceptanceMode.CLEAN:
            validation = validation.downgraded(f"accepted at attempt {attempt}")
        self.events.emit(
            EventKind.WEEK_ACCEPTED,
            f"Week {week_start.isoformat()} accepted at attempt {attempt} ({mode.value})",
            week_start=week_start.isoformat(),
            attempt=attempt,
            acceptance=mode.value,
            warnings=len(validation.warnings),
        )
        return WeekResult(
            week_start=week_start,
            success=True,
            attempts=attempt,
            generation=generation,
            validation=validation,
            acceptance=mode,
        )

    def _validate(self, generation: WeekGenerationResult, accumulator: WeeklyAccumulator) -> ValidationResult:
        return self.validator.validate(generation.assignments, accumulator.previous_week_assignments)

    def run_week(
        self,
        week_start: date,
        accumulator: WeeklyAccumulator,
        max_attempts: Optional[int] = None,
    ) -> WeekResult:
        """Generate one week.

        The accumulator is only read; committing an accepted week is the
        caller's job.

        Args:
            week_start: Monday of the week.
            accumulator: State left by the previous weeks.
            max_attempts: Attempt budget (defaults to the policy's).

        Returns:
            WeekResult; ``success`` is False when the budget ran out.
        """
        max_attempts = max_attempts or self.retry_policy.max_attempts

        if self.solver_type is SolverType.CPSAT:
            return self._run_cpsat(week_start, accumulator, attempt=1)

        last_generation: Optional[WeekGenerationResult] = None
        last_validation = ValidationResult()
        last_error: Optional[str] = None

        for attempt in range(1, max_attempts + 1):
            try:
                generation = self.generator.generate(week_start, accumulator, attempt)
            except SchedulingError as e:
                last_error = str(e)
                self.events.emit(
                    EventKind.ATTEMPT_FAILED,
                    f"Week {week_start.isoformat()} attempt {attempt} aborted: {e}",
                    week_start=week_start.isoformat(),
                    attempt=attempt,
                    error=str(e),
                )
                continue

            validation = self._validate(generation, accumulator)
            mode = self.classify(validation, attempt)
            if mode is not None:
                return self._accept(week_start, attempt, generation, validation, mode)

            last_generation, last_validation = generation, validation
            self.events.emit(
                EventKind.ATTEMPT_FAILED,
                f"Week {week_start.isoformat()} attempt {attempt}: "
                f"{len(validation.critical)} critical violation(s)",
                week_start=week_start.isoformat(),
                attempt=attempt,
                rules=sorted({v.rule.value for v in validation.critical}),
            )

        if self.solver_type is SolverType.HYBRID:
            logger.info("Week %s: greedy attempts exhausted, trying CP-SAT", week_start)
            result = self._run_cpsat(week_start, accumulator, attempt=max_attempts)
            if result.success:
                return result

        logger.error(
            "Week %s: no acceptable schedule after %d attempts",
            week_start.isoformat(),
            max_attempts,
        )
        return WeekResult(
            week_start=week_start,
            success=False,
            attempts=max_attempts,
            generation=last_generation,
            validation=last_validation,
            error=last_error,
        )

    def _run_cpsat(self, week_start: date, accumulator: WeeklyAccumulator, attempt: int) -> WeekResult:
        """One CP-SAT run, judged like a late greedy attempt."""
        solver = CPSATWeekSolver(self.solver_config)
        try:
            generation = self.generator.generate_optimized(week_start, accumulator, solver, attempt)
        except SchedulingError as e:
            logger.error("CP-SAT solution for week %s rejected: %s", week_start, e)
            return WeekResult(week_start=week_start, success=False, attempts=attempt, error=str(e))
        if generation is None:
            return WeekResult(week_start=week_start, success=False, attempts=attempt)

        validation = self._validate(generation, accumulator)
        mode = self.classify(validation, max(attempt, self.retry_policy.relaxable_threshold))
        if mode is not None:
            return self._accept(week_start, attempt, generation, validation, mode)
        return WeekResult(
            week_start=week_start,
            success=False,
            attempts=attempt,
            generation=generation,
            validation=validation,
        )


def month_week_starts(year: int, month: int) -> list[date]:
    """Mondays of every Monday-Sunday week overlapping a month."""
    first = date(year, month, 1)
    next_month = date(year + month // 12, month % 12 + 1, 1)
    starts = []
    current = week_start_for(first)
    while current < next_month:
        starts.append(current)
        current += timedelta(days=7)
    return starts


class MonthlyScheduler:
    """Generates consecutive weeks on top of a repository.

    Every accepted week is committed to the accumulator and persisted
    before the next week starts.

    Args:
        repository: Source of configuration and destination of results.
        limits: Weekly external limits.
        retry_policy: Attempt budget and acceptance thresholds.
        solver_type: GREEDY, CPSAT or HYBRID.
        solver_config: CP-SAT configuration.
        record_denials: Keep rule-denial events.

    Example:
        >>> scheduler = MonthlyScheduler(JsonFileRepository("data.json"))
        >>> result = scheduler.generate_month(2025, 3)
        >>> print(result.success, len(result.assignments))
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        limits: Optional[AllocationLimits] = None,
        retry_policy: Optional[RetryPolicy] = None,
        solver_type: SolverType = SolverType.GREEDY,
        solver_config: Optional[SolverConfig] = None,
        record_denials: bool = False,
    ):
        self.repository = repository
        self.limits = limits or AllocationLimits()
        self.retry_policy = retry_policy or RetryPolicy()
        self.events = EventRecorder()

        self.generator = WeeklyGenerator(
            repository.load_brokers(),
            repository.load_locations(),
            limits=self.limits,
            record_denials=record_denials,
        )
        self.validator = ScheduleValidator(
            self.generator.brokers_map,
            self.generator.locations_map,
            limits=self.limits,
        )
        self.orchestrator = RetryOrchestrator(
            self.generator,
            self.validator,
            retry_policy=self.retry_policy,
            solver_type=solver_type,
            solver_config=solver_config,
            events=self.events,
        )

    def build_accumulator(self, week_start: date, month: int) -> WeeklyAccumulator:
        """Rebuild the accumulator as it stood at the start of a week.

        Queues come from the repository; monthly counters are replayed
        from the weeks of the month stored before ``week_start``; the
        previous week's snapshot is loaded last.
        """
        accumulator = WeeklyAccumulator()
        accumulator.rotation_queues, accumulator.saturday_queues = self.repository.load_queues()
        locations = self.generator.locations_map

        replay = week_start_for(date(week_start.year, month, 1)) if week_start.month == month else week_start
        while replay < week_start:
            stored = self.repository.load_assignments(replay, replay + timedelta(days=7))
            accumulator.record_week(replay, stored, locations, month)
            replay += timedelta(days=7)

        previous = self.repository.load_assignments(week_start - timedelta(days=7), week_start)
        accumulator.load_previous_week(week_start, previous, locations)
        return accumulator

    def commit(self, result: WeekResult, accumulator: WeeklyAccumulator, month: Optional[int]) -> None:
        """Fold an accepted week into the accumulator and persist it."""
        generation = result.generation
        accumulator.rotation_queues.update(generation.rotation_queues)
        accumulator.saturday_queues.update(generation.saturday_queues)
        result.stats = accumulator.record_week(
            result.week_start,
            generation.assignments,
            self.generator.locations_map,
            month,
        )
        self.repository.save_queues(accumulator.rotation_queues, accumulator.saturday_queues)
        self.repository.save_week(result.week_start, generation.assignments, result.stats, result.to_report())
        logger.info(
            "Week %s saved: %d assignments, %d warnings",
            result.week_start.isoformat(),
            len(generation.assignments),
            len(result.validation.warnings),
        )

    def _run(
        self,
        week_starts: list[date],
        accumulator: Optional[WeeklyAccumulator],
        month: Optional[int],
        max_attempts: int,
    ) -> MonthlyResult:
        outcome = MonthlyResult(success=True)
        for week_start in week_starts:
            week_month = month if month is not None else week_start.month
            if accumulator is None or month is None:
                accumulator = self.build_accumulator(week_start, week_month)
            result = self.orchestrator.run_week(week_start, accumulator, max_attempts)
            outcome.weeks.append(result)
            if not result.success:
                outcome.success = False
                outcome.failed_week = week_start
                outcome.violations = result.validation.critical
                return outcome
            self.commit(result, accumulator, week_month)
        return outcome

    def generate_month(self, year: int, month: int) -> MonthlyResult:
        """Generate every week overlapping a month, in order.

        Returns:
            MonthlyResult; on failure the weeks accepted so far stay saved.
        """
        week_starts = month_week_starts(year, month)
        logger.info("Generating %d weeks for %04d-%02d", len(week_starts), year, month)
        accumulator = self.build_accumulator(week_starts[0], month)
        return self._run(week_starts, accumulator, month, self.retry_policy.max_attempts)

    def generate_weeks(self, week_starts: list[date]) -> MonthlyResult:
        """Regenerate selected weeks, each on top of what is stored before it."""
        starts = sorted({week_start_for(d) for d in week_starts})
        return self._run(starts, None, None, self.retry_policy.interactive_max_attempts)
