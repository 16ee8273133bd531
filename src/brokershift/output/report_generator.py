"""Plain-text audit report for generated weeks.

The report lists, per week:
- Assignments per day
- External counts per broker
- Impossible and uncovered demands
- Relaxed and third-shift allocations
- Violations by severity
"""

from collections import defaultdict
from pathlib import Path
from typing import Union

from brokershift.domain.models import Broker, Location
from brokershift.scheduling.orchestrator import WeekResult
from brokershift.validation.validator import Severity


class ReportGenerator:
    """Generates a text report of generated weeks."""

    def generate(
        self,
        weeks: list[WeekResult],
        locations_map: dict[str, Location],
        brokers_map: dict[str, Broker],
        output_path: Union[str, Path],
    ) -> str:
        """Generate the report and save it to a file.

        Returns:
            The generated text content.
        """
        content = self.generate_to_string(weeks, locations_map, brokers_map)
        Path(output_path).write_text(content, encoding="utf-8")
        return content

    def generate_to_string(
        self,
        weeks: list[WeekResult],
        locations_map: dict[str, Location],
        brokers_map: dict[str, Broker],
    ) -> str:
        lines = []
        for week in weeks:
            lines.extend(self._week_section(week, locations_map, brokers_map))
            lines.append("")
        return "\n".join(lines)

    def _name(self, brokers_map: dict[str, Broker], broker_id: str) -> str:
        broker = brokers_map.get(broker_id)
        return broker.name if broker else broker_id

    def _week_section(
        self,
        week: WeekResult,
        locations_map: dict[str, Location],
        brokers_map: dict[str, Broker],
    ) -> list[str]:
        lines = []
        lines.append("=" * 80)
        status = "ACCEPTED" if week.success else "FAILED"
        lines.append(f"WEEK OF {week.week_start.isoformat()} - {status} ({week.attempts} attempts)")
        if week.acceptance is not None:
            lines.append(f"Acceptance: {week.acceptance.value}")
        if week.error:
            lines.append(f"Last error: {week.error}")
        lines.append("=" * 80)

        generation = week.generation
        if generation is None:
            lines.append("No schedule produced.")
            return lines

        # Assignments per day
        by_day = defaultdict(list)
        for a in generation.assignments:
            by_day[a.day].append(a)
        lines.append("")
        lines.append("ASSIGNMENTS")
        lines.append("-" * 80)
        for day in sorted(by_day):
            lines.append(day.strftime("%A %Y-%m-%d"))
            for a in sorted(by_day[day], key=lambda a: (a.shift.order, a.location_id, a.broker_id)):
                location = locations_map.get(a.location_id)
                kind = "EXT" if location is not None and location.is_external else "INT"
                location_name = location.name if location else a.location_id
                lines.append(
                    f"  {a.shift.value:<9} {kind} {location_name:<28} "
                    f"{self._name(brokers_map, a.broker_id)}"
                )

        # External counts
        lines.append("")
        lines.append("EXTERNALS PER BROKER")
        lines.append("-" * 80)
        for broker_id, state in sorted(generation.broker_states.items(), key=lambda kv: kv[1].name):
            marker = " *" if state.external_count > 2 else ""
            lines.append(
                f"  {state.name:<24} {state.external_count} (target {state.target}){marker}"
            )

        if generation.impossible:
            lines.append("")
            lines.append("IMPOSSIBLE DEMANDS (no eligible broker)")
            lines.append("-" * 80)
            for demand in generation.impossible:
                lines.append(f"  {demand}")

        if generation.unallocated:
            lines.append("")
            lines.append("UNCOVERED DEMANDS")
            lines.append("-" * 80)
            for demand in generation.unallocated:
                lines.append(f"  {demand}")

        special = [r for r in generation.records if r.relaxed or r.third_shift]
        if special:
            lines.append("")
            lines.append("RELAXED / THIRD-SHIFT ALLOCATIONS")
            lines.append("-" * 80)
            for record in special:
                tags = []
                if record.relaxed:
                    tags.append("consecutive relaxed")
                if record.third_shift:
                    tags.append("third external")
                lines.append(
                    f"  {record.demand_key:<40} {self._name(brokers_map, record.broker_id):<20} "
                    f"{record.stage} ({', '.join(tags)})"
                )

        lines.append("")
        lines.append("VALIDATION")
        lines.append("-" * 80)
        lines.append(f"  {week.validation.summary()}")
        for severity in (Severity.CRITICAL, Severity.WARNING):
            violations = [v for v in week.validation.violations if v.severity is severity]
            if not violations:
                continue
            lines.append(f"  {severity.value.upper()} ({len(violations)})")
            for violation in violations:
                lines.append(f"    - {violation}")
        return lines
