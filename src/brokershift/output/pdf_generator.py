"""PDF generation for weekly schedules.

This module creates printable PDF schedules showing:
- One grid page per week (locations by days, brokers per shift)
- A validation summary page
"""

from collections import defaultdict
from datetime import date, timedelta
from io import BytesIO
from pathlib import Path
from typing import Union

from brokershift.domain.models import WEEKDAYS, Assignment, Broker, Location, Shift
from brokershift.scheduling.orchestrator import WeekResult

# Color definitions (RGB tuples, 0-1 scale)
COLORS = {
    "external": (0.85, 0.92, 1.0),  # Light blue
    "flagship": (0.8, 0.95, 0.8),  # Light green
    "internal": (0.95, 0.95, 0.95),  # Light gray
    "empty": (1.0, 0.9, 0.85),  # Light orange
    "header": (0.25, 0.3, 0.4),  # Slate
}

SHIFT_LABELS = {Shift.MORNING: "M", Shift.AFTERNOON: "A"}


def _require_reportlab():
    try:
        from reportlab.lib.pagesizes import landscape, letter
        from reportlab.pdfgen import canvas
    except ImportError:
        raise ImportError(
            "reportlab is required for PDF generation. "
            "Install with: pip install reportlab"
        )
    return canvas, landscape(letter)


class PDFGenerator:
    """Generates printable PDF schedules.

    Example:
        >>> generator = PDFGenerator()
        >>> generator.generate(month.accepted_weeks, locations_map, brokers_map, "march.pdf")
    """

    def __init__(
        self,
        page_width: float = 792,  # Letter landscape width (11")
        page_height: float = 612,  # Letter landscape height (8.5")
        margin: float = 30,
        font_size: float = 7,
    ):
        self.page_width = page_width
        self.page_height = page_height
        self.margin = margin
        self.font_size = font_size

    def generate(
        self,
        weeks: list[WeekResult],
        locations_map: dict[str, Location],
        brokers_map: dict[str, Broker],
        output_path: Union[str, Path],
        include_summary: bool = True,
    ) -> None:
        """Generate the PDF and save it to a file.

        Args:
            weeks: Week results to render (accepted ones get a grid page).
            locations_map: Dict mapping location IDs to Location objects.
            brokers_map: Dict mapping broker IDs to Broker objects.
            output_path: Path to save the PDF.
            include_summary: Whether to include the validation summary page.
        """
        canvas, pagesize = _require_reportlab()
        c = canvas.Canvas(str(output_path), pagesize=pagesize)
        self._draw(c, weeks, locations_map, brokers_map, include_summary)
        c.save()

    def generate_to_buffer(
        self,
        weeks: list[WeekResult],
        locations_map: dict[str, Location],
        brokers_map: dict[str, Broker],
        include_summary: bool = True,
    ) -> BytesIO:
        """Generate the PDF and return it as a bytes buffer."""
        canvas, pagesize = _require_reportlab()
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=pagesize)
        self._draw(c, weeks, locations_map, brokers_map, include_summary)
        c.save()
        buffer.seek(0)
        return buffer

    def _draw(
        self,
        c,
        weeks: list[WeekResult],
        locations_map: dict[str, Location],
        brokers_map: dict[str, Broker],
        include_summary: bool,
    ) -> None:
        for week in weeks:
            if week.success:
                self._draw_week_page(c, week, locations_map, brokers_map)
        if include_summary:
            self._draw_summary_page(c, weeks)

    def _draw_week_page(
        self,
        c,
        week: WeekResult,
        locations_map: dict[str, Location],
        brokers_map: dict[str, Broker],
    ) -> None:
        """Grid of locations (rows) by days (columns)."""
        days = [week.week_start + timedelta(days=i) for i in range(7)]
        locations = sorted(
            locations_map.values(),
            key=lambda loc: (not loc.is_external, not loc.flagship, loc.name),
        )

        cells: dict[tuple[str, date], list[Assignment]] = defaultdict(list)
        for a in week.assignments:
            cells[(a.location_id, a.day)].append(a)

        c.setFont("Helvetica-Bold", 14)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 14,
            f"Week of {week.week_start.strftime('%B %d, %Y')}",
        )
        c.setFont("Helvetica", 9)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 28,
            f"Attempts: {week.attempts}   Accepted: {week.acceptance.value if week.acceptance else '-'}"
            f"   Warnings: {len(week.validation.warnings)}",
        )

        top = self.page_height - self.margin - 40
        bottom = self.margin + 20
        name_width = 110
        col_width = (self.page_width - 2 * self.margin - name_width) / 7
        header_height = 16
        row_height = max(18, min(60, (top - bottom - header_height) / max(len(locations), 1)))
        line_height = self.font_size + 1.5

        # Day header
        c.setFillColorRGB(*COLORS["header"])
        c.rect(self.margin, top - header_height, self.page_width - 2 * self.margin, header_height, fill=1, stroke=0)
        c.setFillColorRGB(1, 1, 1)
        c.setFont("Helvetica-Bold", 8)
        for i, day in enumerate(days):
            x = self.margin + name_width + i * col_width
            c.drawCentredString(x + col_width / 2, top - 11, f"{WEEKDAYS[i][:3].title()} {day.strftime('%d/%m')}")

        y = top - header_height
        for location in locations:
            y -= row_height
            if y < bottom:
                break
            c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica-Bold", 7)
            c.drawString(self.margin + 2, y + row_height - 9, location.name[:24])

            for i, day in enumerate(days):
                x = self.margin + name_width + i * col_width
                entries = sorted(cells.get((location.id, day), []), key=lambda a: (a.shift.order, a.broker_id))
                open_shifts = location.open_shifts(day) if location.is_external else []
                if location.is_external and len(entries) < len(open_shifts):
                    color = COLORS["empty"]
                elif location.flagship:
                    color = COLORS["flagship"]
                elif location.is_external:
                    color = COLORS["external"]
                else:
                    color = COLORS["internal"]
                c.setFillColorRGB(*color)
                c.setStrokeColorRGB(0.7, 0.7, 0.7)
                c.rect(x, y, col_width, row_height, fill=1, stroke=1)

                c.setFillColorRGB(0, 0, 0)
                c.setFont("Helvetica", self.font_size)
                max_lines = max(1, int((row_height - 2) // line_height))
                lines = [
                    f"{SHIFT_LABELS[a.shift]}: {brokers_map[a.broker_id].name if a.broker_id in brokers_map else a.broker_id}"
                    for a in entries
                ]
                if len(lines) > max_lines:
                    lines = lines[: max_lines - 1] + [f"+{len(lines) - max_lines + 1} more"]
                for n, text in enumerate(lines):
                    c.drawString(x + 2, y + row_height - (n + 1) * line_height, text[:28])

        c.setFont("Helvetica", 7)
        c.drawString(self.margin, self.margin, "M = morning, A = afternoon. Orange cells have uncovered shifts.")
        c.showPage()

    def _draw_summary_page(self, c, weeks: list[WeekResult]) -> None:
        """Validation summary of every week."""
        c.setFont("Helvetica-Bold", 16)
        c.drawString(self.margin, self.page_height - self.margin - 20, "Validation Summary")

        y = self.page_height - self.margin - 50
        for week in weeks:
            if y < self.margin + 40:
                c.showPage()
                y = self.page_height - self.margin - 20
            status = "accepted" if week.success else "FAILED"
            c.setFont("Helvetica-Bold", 10)
            c.drawString(
                self.margin,
                y,
                f"Week of {week.week_start.isoformat()}: {status} after {week.attempts} attempt(s)",
            )
            y -= 14
            c.setFont("Helvetica", 8)
            shown = week.validation.violations[:8]
            if not shown:
                c.drawString(self.margin + 15, y, "No violations")
                y -= 11
            for violation in shown:
                c.drawString(self.margin + 15, y, str(violation)[:140])
                y -= 11
            if len(week.validation.violations) > len(shown):
                c.drawString(self.margin + 15, y, f"... and {len(week.validation.violations) - len(shown)} more")
                y -= 11
            y -= 8
        c.showPage()
