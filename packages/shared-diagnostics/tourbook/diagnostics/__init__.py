"""
Tourbook Diagnostics - health reports for conversion tracking.

Provides:
- DiagnosticReporter: summary, breakdowns, recommendations and issues
  built from a ConversionMonitor's attempts and validation results
- HTMLRenderer: Jinja2 rendering of diagnostic reports

Usage:
    from tourbook.diagnostics import DiagnosticReporter, HTMLRenderer

    report = DiagnosticReporter(monitor).generate(period_hours=24)
    html = HTMLRenderer().render_report(report)
"""

from tourbook.diagnostics.html import HTMLRenderer
from tourbook.diagnostics.report import (
    DiagnosticIssue,
    DiagnosticReport,
    DiagnosticReporter,
    Recommendation,
)

__all__ = [
    "DiagnosticReporter",
    "DiagnosticReport",
    "DiagnosticIssue",
    "Recommendation",
    "HTMLRenderer",
]
