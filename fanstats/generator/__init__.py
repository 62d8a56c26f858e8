"""Report generator package - grid layout and the report pipeline.

Consumes resolved templates and chart results to produce renderable reports.

Modules:
    layout: Grid unit widths per breakpoint and block sizing helpers
    report_builder: Report, builder (editing) view and admin preview
"""

from .layout import Breakpoint, LayoutCaps, default_width, width_for, widths_for
from .report_builder import ReportBuilder, ReportResult, synthetic_statistics

__all__ = [
    "Breakpoint",
    "LayoutCaps",
    "default_width",
    "width_for",
    "widths_for",
    "ReportBuilder",
    "ReportResult",
    "synthetic_statistics",
]
