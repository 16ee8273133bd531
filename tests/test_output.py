"""Tests for PDF and text report output."""

import pytest

from brokershift.cli import create_sample_data
from brokershift.output.pdf_generator import PDFGenerator
from brokershift.output.report_generator import ReportGenerator
from brokershift.scheduling.orchestrator import MonthlyScheduler, WeekResult
from brokershift.storage.repository import InMemoryRepository


@pytest.fixture(scope="module")
def generated():
    """A generated sample month with its lookups."""
    brokers, locations = create_sample_data()
    scheduler = MonthlyScheduler(InMemoryRepository(brokers, locations))
    result = scheduler.generate_month(2025, 3)
    return result, scheduler.generator.locations_map, scheduler.generator.brokers_map


class TestReportGenerator:
    """Tests for the text report."""

    def test_sections(self, generated):
        """Each week gets a header, assignments and a validation section."""
        result, locations_map, brokers_map = generated
        content = ReportGenerator().generate_to_string(result.weeks, locations_map, brokers_map)

        assert content.count("WEEK OF ") == len(result.weeks)
        assert "WEEK OF 2025-02-24 - ACCEPTED" in content
        assert "ASSIGNMENTS" in content
        assert "EXTERNALS PER BROKER" in content
        assert "VALIDATION" in content
        assert "Harbor View" in content

    def test_write_to_file(self, generated, tmp_path):
        """The report is written to the given path."""
        result, locations_map, brokers_map = generated
        path = tmp_path / "report.txt"
        content = ReportGenerator().generate(result.weeks, locations_map, brokers_map, path)
        assert path.read_text(encoding="utf-8") == content

    def test_failed_week_without_generation(self, generated):
        """A failed week without a schedule is reported as such."""
        result, locations_map, brokers_map = generated
        failed = WeekResult(week_start=result.weeks[0].week_start, success=False, attempts=3, error="boom")
        content = ReportGenerator().generate_to_string([failed], locations_map, brokers_map)
        assert "FAILED (3 attempts)" in content
        assert "Last error: boom" in content
        assert "No schedule produced." in content


class TestPDFGenerator:
    """Tests for the PDF output."""

    def test_generate_to_buffer(self, generated):
        """The buffer holds a PDF document."""
        pytest.importorskip("reportlab")
        result, locations_map, brokers_map = generated
        buffer = PDFGenerator().generate_to_buffer(result.weeks, locations_map, brokers_map)
        assert buffer.getvalue().startswith(b"%PDF")

    def test_generate_to_file(self, generated, tmp_path):
        """The PDF is written to the given path."""
        pytest.importorskip("reportlab")
        result, locations_map, brokers_map = generated
        path = tmp_path / "schedule.pdf"
        PDFGenerator().generate(result.weeks, locations_map, brokers_map, path, include_summary=False)
        assert path.exists()
        assert path.stat().st_size > 0
