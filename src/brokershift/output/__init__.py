"""Output generation for schedules (PDF, text report)."""

from brokershift.output.pdf_generator import PDFGenerator
from brokershift.output.report_generator import ReportGenerator

__all__ = [
    "PDFGenerator",
    "ReportGenerator",
]
