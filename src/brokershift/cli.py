"""Command-line interface for broker shift generation."""

import argparse
import logging
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

from brokershift.domain.models import (
    BUSINESS_DAYS,
    Broker,
    DayConfig,
    ExcludedDate,
    Location,
    LocationBrokerLink,
    LocationType,
    Period,
    Shift,
    week_start_for,
)
from brokershift.domain.policies import RetryPolicy
from brokershift.errors import BrokerShiftError
from brokershift.output.pdf_generator import PDFGenerator
from brokershift.output.report_generator import ReportGenerator
from brokershift.scheduling.cpsat_solver import SolverConfig, SolverType
from brokershift.scheduling.orchestrator import MonthlyResult, MonthlyScheduler
from brokershift.storage.json_store import JsonFileRepository
from brokershift.storage.repository import InMemoryRepository, ScheduleRepository
from brokershift.validation.validator import ScheduleValidator

logger = logging.getLogger(__name__)

MORNING_ONLY = DayConfig(has_morning=True, has_afternoon=False)
AFTERNOON_ONLY = DayConfig(has_morning=False, has_afternoon=True)


def _period(period_id: str, weekday_configs: dict[str, DayConfig], **kwargs) -> Period:
    return Period(
        id=period_id,
        start=date(2000, 1, 1),
        end=date(2099, 12, 31),
        weekday_configs=weekday_configs,
        **kwargs,
    )


def create_sample_data() -> tuple[list[Broker], list[Location]]:
    """Create a sample roster of two offices and four external sites."""
    weekdays_only = set(BUSINESS_DAYS)
    brokers = [
        Broker(id="B1", name="Alice Moreau"),
        Broker(id="B2", name="Bruno Lima"),
        Broker(id="B3", name="Carla Souza"),
        Broker(id="B4", name="Diego Alves"),
        Broker(id="B5", name="Elena Rossi"),
        Broker(id="B6", name="Felipe Costa", weekday_shifts={"friday": {Shift.MORNING}}),
        Broker(id="B7", name="Gabriela Nunes", available_weekdays=weekdays_only),
        Broker(id="B8", name="Hugo Martins"),
    ]

    office_days = {day: DayConfig() for day in BUSINESS_DAYS}
    office_days["saturday"] = DayConfig(has_morning=True, has_afternoon=False, max_brokers=2)

    locations = [
        Location(
            id="I1",
            name="Main Office",
            location_type=LocationType.INTERNAL,
            periods=[_period("P-I1", dict(office_days))],
            links=[LocationBrokerLink(b) for b in ("B1", "B2", "B3", "B4")],
            saturday_min_staff=1,
            max_team_on_external_per_day=2,
        ),
        Location(
            id="I2",
            name="Downtown Office",
            location_type=LocationType.INTERNAL,
            periods=[_period("P-I2", dict(office_days))],
            links=[LocationBrokerLink(b) for b in ("B5", "B6", "B7", "B8")],
            saturday_min_staff=1,
        ),
        Location(
            id="E1",
            name="Harbor View",
            location_type=LocationType.EXTERNAL,
            builder="Acme Builders",
            flagship=True,
            periods=[
                _period(
                    "P-E1",
                    {"wednesday": MORNING_ONLY, "saturday": MORNING_ONLY, "sunday": MORNING_ONLY},
                )
            ],
            links=[LocationBrokerLink(f"B{n}") for n in range(1, 9)],
        ),
        Location(
            id="E2",
            name="Parkside Towers",
            location_type=LocationType.EXTERNAL,
            builder="Beta Construction",
            periods=[
                _period(
                    "P-E2",
                    {"tuesday": AFTERNOON_ONLY, "thursday": AFTERNOON_ONLY, "saturday": MORNING_ONLY},
                    excluded_dates=[ExcludedDate(date(2025, 12, 25))],
                )
            ],
            links=[LocationBrokerLink(b) for b in ("B1", "B2", "B5", "B6")],
        ),
        Location(
            id="E3",
            name="Lakeside Lofts",
            location_type=LocationType.EXTERNAL,
            builder="Acme Builders",
            periods=[
                _period(
                    "P-E3",
                    {"monday": AFTERNOON_ONLY, "wednesday": AFTERNOON_ONLY, "friday": AFTERNOON_ONLY},
                )
            ],
            links=[LocationBrokerLink(b) for b in ("B3", "B4", "B7", "B8")],
        ),
        Location(
            id="E4",
            name="Hilltop Villas",
            location_type=LocationType.EXTERNAL,
            periods=[_period("P-E4", {"thursday": MORNING_ONLY})],
            links=[LocationBrokerLink("B8")],
        ),
    ]
    return brokers, locations


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def _build_scheduler(repository: ScheduleRepository, args: argparse.Namespace) -> MonthlyScheduler:
    retry_policy = RetryPolicy()
    if getattr(args, "max_attempts", None):
        retry_policy.max_attempts = args.max_attempts
        retry_policy.interactive_max_attempts = args.max_attempts
    return MonthlyScheduler(
        repository,
        retry_policy=retry_policy,
        solver_type=SolverType(getattr(args, "solver", "greedy")),
        solver_config=SolverConfig(time_limit_seconds=getattr(args, "time_limit", 10.0)),
        record_denials=getattr(args, "verbose", False),
    )


def _print_result(result: MonthlyResult) -> None:
    for week in result.weeks:
        status = "accepted" if week.success else "FAILED"
        mode = f" ({week.acceptance.value})" if week.acceptance else ""
        print(
            f"  Week {week.week_start.isoformat()}: {status}{mode}, "
            f"{len(week.assignments)} assignments, {week.attempts} attempt(s), "
            f"{len(week.validation.warnings)} warning(s)"
        )
    if result.success:
        print(f"\nAll {len(result.weeks)} weeks generated.")
    else:
        print(f"\nGeneration FAILED at week {result.failed_week.isoformat()}:")
        for violation in result.violations[:10]:
            print(f"    - {violation}")
        if len(result.violations) > 10:
            print(f"    ... and {len(result.violations) - 10} more violations")


def _write_outputs(
    result: MonthlyResult,
    scheduler: MonthlyScheduler,
    pdf_path: Optional[str],
    report_path: Optional[str],
) -> None:
    locations_map = scheduler.generator.locations_map
    brokers_map = scheduler.generator.brokers_map
    if report_path:
        ReportGenerator().generate(result.weeks, locations_map, brokers_map, report_path)
        print(f"Report written to {report_path}")
    if pdf_path:
        PDFGenerator().generate(result.weeks, locations_map, brokers_map, pdf_path)
        print(f"PDF written to {pdf_path}")


def run_demo(
    year: int,
    month: int,
    output_path: Optional[str] = None,
    pdf_path: Optional[str] = None,
    report_path: Optional[str] = None,
    args: Optional[argparse.Namespace] = None,
) -> int:
    """Run a demo month on the sample roster."""
    brokers, locations = create_sample_data()
    print(f"Generating demo schedule for {year:04d}-{month:02d} "
          f"({len(brokers)} brokers, {len(locations)} locations)...")

    if output_path:
        repository: ScheduleRepository = JsonFileRepository.create(output_path, brokers, locations)
    else:
        repository = InMemoryRepository(brokers, locations)

    scheduler = _build_scheduler(repository, args or argparse.Namespace())
    result = scheduler.generate_month(year, month)
    _print_result(result)
    _write_outputs(result, scheduler, pdf_path, report_path)
    if output_path:
        print(f"Data written to {output_path}")
    return 0 if result.success else 1


def run_generate_month(args: argparse.Namespace) -> int:
    repository = JsonFileRepository(args.data)
    scheduler = _build_scheduler(repository, args)
    result = scheduler.generate_month(args.year, args.month)
    _print_result(result)
    _write_outputs(result, scheduler, args.pdf, args.report)
    return 0 if result.success else 1


def run_generate_weeks(args: argparse.Namespace) -> int:
    repository = JsonFileRepository(args.data)
    scheduler = _build_scheduler(repository, args)
    result = scheduler.generate_weeks(args.weeks)
    _print_result(result)
    _write_outputs(result, scheduler, args.pdf, args.report)
    return 0 if result.success else 1


def run_validate(args: argparse.Namespace) -> int:
    """Re-validate a stored week."""
    repository = JsonFileRepository(args.data)
    week_start = week_start_for(args.week)
    brokers_map = {b.id: b for b in repository.load_brokers()}
    locations_map = {loc.id: loc for loc in repository.load_locations()}

    assignments = repository.load_assignments(week_start, week_start + timedelta(days=7))
    previous = repository.load_assignments(week_start - timedelta(days=7), week_start)
    if not assignments:
        print(f"No assignments stored for the week of {week_start.isoformat()}")
        return 1

    result = ScheduleValidator(brokers_map, locations_map).validate(assignments, previous)
    print(f"Week of {week_start.isoformat()}: {len(assignments)} assignments")
    print(f"  {result.summary()}")
    for violation in result.warnings:
        print(f"    - {violation}")
    return 0 if result.is_valid else 1


def _add_generation_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--solver", "-s",
        type=str,
        default="greedy",
        choices=[t.value for t in SolverType],
        help="Solver: greedy (default), cpsat, hybrid (greedy, CP-SAT when retries run out)",
    )
    parser.add_argument(
        "--max-attempts", "-a",
        type=int,
        help="Attempts per week before giving up",
    )
    parser.add_argument(
        "--time-limit", "-t",
        type=float,
        default=10.0,
        help="CP-SAT solver time limit in seconds (default: 10)",
    )
    parser.add_argument("--pdf", type=str, help="Output PDF file path")
    parser.add_argument("--report", type=str, help="Output text report path")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Broker Shift - weekly shift allocation for real-estate brokers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo                                   Demo month with the sample roster
  %(prog)s demo --output data.json --pdf demo.pdf Keep the data and render a PDF

  %(prog)s generate-month --data data.json --year 2025 --month 3
  %(prog)s generate-weeks --data data.json --weeks 2025-03-10 2025-03-17
  %(prog)s validate --data data.json --week 2025-03-10
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    today = date.today()

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Generate a month for the sample roster")
    demo_parser.add_argument("--year", "-y", type=int, default=today.year, help="Year (default: current)")
    demo_parser.add_argument("--month", "-m", type=int, default=today.month, help="Month (default: current)")
    demo_parser.add_argument("--output", "-o", type=str, help="Save the data set to this JSON file")
    _add_generation_options(demo_parser)

    # Month generation
    month_parser = subparsers.add_parser("generate-month", help="Generate every week of a month")
    month_parser.add_argument("--data", "-d", type=Path, required=True, help="JSON data file")
    month_parser.add_argument("--year", "-y", type=int, required=True)
    month_parser.add_argument("--month", "-m", type=int, required=True)
    _add_generation_options(month_parser)

    # Selected weeks
    weeks_parser = subparsers.add_parser("generate-weeks", help="Regenerate selected weeks")
    weeks_parser.add_argument("--data", "-d", type=Path, required=True, help="JSON data file")
    weeks_parser.add_argument(
        "--weeks", "-w",
        type=_parse_date,
        nargs="+",
        required=True,
        help="Any date inside each week to regenerate (YYYY-MM-DD)",
    )
    _add_generation_options(weeks_parser)

    # Validation
    validate_parser = subparsers.add_parser("validate", help="Validate a stored week")
    validate_parser.add_argument("--data", "-d", type=Path, required=True, help="JSON data file")
    validate_parser.add_argument("--week", "-w", type=_parse_date, required=True, help="Any date inside the week")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    try:
        if args.command == "demo":
            return run_demo(args.year, args.month, args.output, args.pdf, args.report, args)
        elif args.command == "generate-month":
            return run_generate_month(args)
        elif args.command == "generate-weeks":
            return run_generate_weeks(args)
        elif args.command == "validate":
            return run_validate(args)
        else:
            parser.print_help()
            return 1
    except BrokerShiftError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
