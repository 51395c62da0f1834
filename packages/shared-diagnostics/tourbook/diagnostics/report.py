"""
DiagnosticReporter - conversion tracking health report.

Reads the monitor's attempts and validation results (copies only) and
summarizes:
- Attempt outcomes over the report period
- Breakdown by event type, status, retries and error message
- Per-check validation pass rates
- Collaborator status
- Recommendations and detailed issues
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from tourbook.monitoring.schema import ConversionStatus

if TYPE_CHECKING:
    from tourbook.monitoring import ConversionAttempt, ConversionMonitor, ValidationResult

logger = logging.getLogger(__name__)

# Success rate below which tracking needs review
SUCCESS_RATE_THRESHOLD = 0.9


@dataclass
class Recommendation:
    """Action suggested by the report."""

    priority: str  # "critical", "high", "medium"
    category: str
    message: str


@dataclass
class DiagnosticIssue:
    """A specific problem found in the report period."""

    type: str
    severity: str
    message: str
    recommendation: str


@dataclass
class DiagnosticReport:
    """Diagnostic report for one period."""

    period_hours: float
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    summary: dict[str, Any] = field(default_factory=dict)
    conversion_attempts: dict[str, Any] = field(default_factory=dict)
    validation_results: dict[str, Any] = field(default_factory=dict)
    accuracy_metrics: dict[str, Any] = field(default_factory=dict)
    system_status: dict[str, Any] = field(default_factory=dict)
    recommendations: list[Recommendation] = field(default_factory=list)
    detailed_issues: list[DiagnosticIssue] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "generated_at": self.generated_at.isoformat(),
            "report_period": f"{self.period_hours:g} hours",
            "summary": self.summary,
            "conversion_attempts": self.conversion_attempts,
            "validation_results": self.validation_results,
            "accuracy_metrics": self.accuracy_metrics,
            "system_status": self.system_status,
            "recommendations": [vars(r) for r in self.recommendations],
            "detailed_issues": [vars(i) for i in self.detailed_issues],
            "error": self.error,
        }


class DiagnosticReporter:
    """
    Build diagnostic reports from a ConversionMonitor.

    Example:
        reporter = DiagnosticReporter(monitor)
        report = reporter.generate(period_hours=24)
        for rec in report.recommendations:
            print(rec.priority, rec.message)
    """

    def __init__(self, monitor: ConversionMonitor):
        self.monitor = monitor

    def generate(self, period_hours: float = 24) -> DiagnosticReport:
        """
        Generate a report covering the last ``period_hours``.

        A failure while building a section is logged and stored in
        ``report.error``; the sections built so far are returned.
        """
        since = datetime.now(UTC) - timedelta(hours=period_hours)
        report = DiagnosticReport(
            period_hours=period_hours,
            accuracy_metrics=self.monitor.get_monitoring_status().accuracy_metrics.to_dict(),
        )

        try:
            attempts = [a for a in self.monitor.iter_attempts() if a.timestamp >= since]
            validations = [v for v in self.monitor.iter_validations() if v.timestamp >= since]

            report.summary = summarize_attempts(attempts)
            report.conversion_attempts = analyze_attempts(attempts)
            report.validation_results = analyze_validations(validations)
            report.system_status = self.check_system_status()
            report.recommendations = generate_recommendations(report)
            report.detailed_issues = identify_issues(attempts)

            logger.info(f"Diagnostic report generated for last {period_hours:g} hours")
        except Exception as e:
            logger.exception("Failed to generate diagnostic report")
            report.error = str(e)

        return report

    def check_system_status(self) -> dict[str, Any]:
        """Collect collaborator and monitor status."""
        monitor = self.monitor
        status = monitor.get_monitoring_status()

        booking_flow = monitor.booking_flow
        if booking_flow is not None:
            booking_status = {
                "has_active_booking": bool(booking_flow.get_current_booking_state()),
                "current_step": booking_flow.get_current_step(),
            }
        else:
            booking_status = {"has_active_booking": False, "current_step": None}

        enhanced = monitor.enhanced_conversions
        return {
            "gtm": dict(monitor.tag_delivery.get_status()),
            "booking_flow": booking_status,
            "enhanced_conversion": dict(enhanced.get_status()) if enhanced else {"is_enabled": False},
            "monitor": {
                "is_initialized": status.is_initialized,
                "monitoring_enabled": status.monitoring_enabled,
                "active_attempts": status.active_attempts,
                "validation_results": status.validation_results,
            },
        }


def summarize_attempts(attempts: list[ConversionAttempt]) -> dict[str, Any]:
    """Count outcomes and compute the success rate."""
    total = len(attempts)
    successful = sum(1 for a in attempts if a.status == ConversionStatus.VALIDATED)
    failed = sum(
        1 for a in attempts
        if a.status in (ConversionStatus.VALIDATION_FAILED, ConversionStatus.FIRING_FAILED)
    )
    validation_errors = sum(1 for a in attempts if a.status == ConversionStatus.VALIDATION_FAILED)

    return {
        "total_attempts": total,
        "successful_attempts": successful,
        "failed_attempts": failed,
        "validation_errors": validation_errors,
        "success_rate": successful / total if total > 0 else 0.0,
    }


def analyze_attempts(attempts: list[ConversionAttempt]) -> dict[str, Any]:
    """Break attempts down by event type, status, retry count and error message."""
    by_event_type: dict[str, dict[str, int]] = {}
    by_status: dict[str, int] = {}
    retry_analysis: dict[int, int] = {}
    error_counts: dict[str, int] = {}

    for attempt in attempts:
        event_stats = by_event_type.setdefault(attempt.event, {"count": 0, "successful": 0})
        event_stats["count"] += 1
        if attempt.status == ConversionStatus.VALIDATED:
            event_stats["successful"] += 1

        by_status[attempt.status.value] = by_status.get(attempt.status.value, 0) + 1

        if attempt.retry_count > 0:
            retry_analysis[attempt.retry_count] = retry_analysis.get(attempt.retry_count, 0) + 1

        for error in attempt.errors:
            error_counts[error] = error_counts.get(error, 0) + 1

    return {
        "by_event_type": by_event_type,
        "by_status": by_status,
        "retry_analysis": retry_analysis,
        "error_patterns": [
            {"error": error, "count": count} for error, count in error_counts.items()
        ],
    }


def analyze_validations(validations: list[ValidationResult]) -> dict[str, Any]:
    """Pass rates overall and per validation check."""
    checks = {
        "gtm": "gtm_validation",
        "booking_flow": "booking_validation",
        "enhanced_conversion": "enhanced_validation",
    }
    validation_types = {name: {"total": 0, "successful": 0} for name in checks}

    successful = 0
    for validation in validations:
        if validation.is_valid:
            successful += 1
        for name, attr in checks.items():
            check = getattr(validation, attr)
            validation_types[name]["total"] += 1
            if check.is_valid:
                validation_types[name]["successful"] += 1

    return {
        "total_validations": len(validations),
        "successful_validations": successful,
        "failed_validations": len(validations) - successful,
        "validation_types": validation_types,
    }


def generate_recommendations(report: DiagnosticReport) -> list[Recommendation]:
    """Recommendations derived from the summary and system status."""
    recommendations = []

    if report.summary.get("success_rate", 0) < SUCCESS_RATE_THRESHOLD:
        recommendations.append(Recommendation(
            priority="high",
            category="accuracy",
            message="Conversion success rate is below 90%. Review GTM configuration and validation logic.",
        ))

    if not report.system_status.get("gtm", {}).get("is_initialized"):
        recommendations.append(Recommendation(
            priority="critical",
            category="gtm",
            message="GTM is not initialized. Check container ID and loading configuration.",
        ))

    if not report.system_status.get("enhanced_conversion", {}).get("is_enabled"):
        recommendations.append(Recommendation(
            priority="medium",
            category="enhanced_conversion",
            message="Enhanced conversions are disabled. Enable for better attribution accuracy.",
        ))

    if report.summary.get("validation_errors", 0) > 0:
        recommendations.append(Recommendation(
            priority="high",
            category="validation",
            message="Validation errors detected. Review conversion data structure and requirements.",
        ))

    return recommendations


def identify_issues(attempts: list[ConversionAttempt]) -> list[DiagnosticIssue]:
    """Flag attempts that needed several retries and validations that timed out."""
    issues = []

    high_retry_count = sum(1 for a in attempts if a.retry_count > 1)
    if high_retry_count > 0:
        issues.append(DiagnosticIssue(
            type="retry_issues",
            severity="warning",
            message=f"{high_retry_count} conversion attempts required multiple retries",
            recommendation="Investigate network issues or GTM configuration problems",
        ))

    timeout_count = sum(1 for a in attempts if a.status == ConversionStatus.VALIDATION_TIMEOUT)
    if timeout_count > 0:
        issues.append(DiagnosticIssue(
            type="validation_timeouts",
            severity="high",
            message=f"{timeout_count} conversion validations timed out",
            recommendation="Increase validation timeout or optimize validation logic",
        ))

    return issues
