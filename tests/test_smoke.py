"""Smoke tests for the command-line flow."""

import pytest

from brokershift.cli import main
from brokershift.storage.json_store import JsonFileRepository


class TestSmoke:
    """End-to-end smoke tests through the CLI."""

    @pytest.fixture
    def data_path(self, tmp_path):
        """Data file produced by a demo month."""
        path = tmp_path / "data.json"
        assert main(["demo", "--year", "2025", "--month", "3", "--output", str(path)]) == 0
        return path

    def test_demo_in_memory(self, capsys):
        """The demo month runs without a data file."""
        assert main(["demo", "--year", "2025", "--month", "3"]) == 0
        out = capsys.readouterr().out
        assert "All 6 weeks generated." in out

    def test_demo_writes_outputs(self, tmp_path):
        """The demo writes the data set, report and PDF when asked."""
        pytest.importorskip("reportlab")
        data = tmp_path / "data.json"
        report = tmp_path / "report.txt"
        pdf = tmp_path / "schedule.pdf"
        code = main([
            "demo", "--year", "2025", "--month", "3",
            "--output", str(data), "--report", str(report), "--pdf", str(pdf),
        ])
        assert code == 0
        assert data.exists()
        assert report.exists()
        assert pdf.exists()

    def test_validate_stored_week(self, data_path, capsys):
        """A stored week re-validates with the verdict it was accepted with."""
        report = next(
            r for r in JsonFileRepository(data_path).load_reports()
            if r["week_start"] == "2025-03-03"
        )
        expected = 0 if report["acceptance"] == "clean" else 1
        assert main(["validate", "--data", str(data_path), "--week", "2025-03-05"]) == expected
        assert "Week of 2025-03-03" in capsys.readouterr().out

    def test_validate_empty_week(self, data_path):
        """Validating a week with nothing stored fails."""
        assert main(["validate", "--data", str(data_path), "--week", "2024-01-03"]) == 1

    def test_generate_weeks(self, data_path):
        """Selected weeks regenerate on top of the stored month."""
        assert main(["generate-weeks", "--data", str(data_path), "--weeks", "2025-03-12"]) == 0

    def test_generate_month_next(self, data_path):
        """The following month continues from the stored queues."""
        assert main(["generate-month", "--data", str(data_path), "--year", "2025", "--month", "4"]) == 0

    def test_corrupt_data_file(self, tmp_path, capsys):
        """Unreadable data files exit with status 2."""
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        assert main(["generate-month", "--data", str(path), "--year", "2025", "--month", "3"]) == 2
        assert "Error:" in capsys.readouterr().err

    def test_no_command(self):
        """Running without a command prints help and fails."""
        assert main([]) == 1
