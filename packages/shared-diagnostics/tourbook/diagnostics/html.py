"""
HTMLRenderer - Jinja2-based HTML rendering of diagnostic reports.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

if TYPE_CHECKING:
    from tourbook.diagnostics.report import DiagnosticReport

DIAGNOSTIC_TEMPLATE = "diagnostic_report"


class HTMLRenderer:
    """
    Render HTML from Jinja2 templates.

    Example:
        renderer = HTMLRenderer()
        html = renderer.render_report(reporter.generate(period_hours=24))
    """

    def __init__(
        self,
        templates_dir: Path | str | None = None,
    ):
        """
        Initialize HTML renderer.

        Args:
            templates_dir: Custom templates directory
        """
        if templates_dir is None:
            templates_dir = Path(__file__).parent / "templates"

        self.templates_dir = Path(templates_dir)
        self._env: Environment | None = None

    @property
    def env(self) -> Environment:
        """Lazy initialization of Jinja2 environment."""
        if self._env is None:
            self._env = Environment(
                loader=FileSystemLoader(str(self.templates_dir)),
                autoescape=select_autoescape(["html", "xml", "j2"]),
            )
            self._env.filters["format_yen"] = self._format_yen
            self._env.filters["format_percent"] = self._format_percent
            self._env.filters["format_number"] = self._format_number
            self._env.filters["format_datetime"] = self._format_datetime

        return self._env

    def render(
        self,
        template: str,
        data: dict[str, Any],
    ) -> str:
        """
        Render template to HTML string.

        Args:
            template: Template name (without extension)
            data: Template context data

        Returns:
            Rendered HTML string
        """
        tmpl = self.env.get_template(f"{template}.html.j2")
        return tmpl.render(**data)

    def render_report(self, report: DiagnosticReport) -> str:
        """Render a diagnostic report with the bundled template."""
        return self.render(
            DIAGNOSTIC_TEMPLATE,
            {
                "report": report,
                "generated_at": report.generated_at,
                "period_hours": report.period_hours,
                "summary": report.summary,
                "attempts": report.conversion_attempts,
                "validations": report.validation_results,
                "accuracy": report.accuracy_metrics,
                "system_status": report.system_status,
                "recommendations": report.recommendations,
                "issues": report.detailed_issues,
                "error": report.error,
            },
        )

    def list_templates(self) -> list[str]:
        """List available templates."""
        return [
            p.stem.replace(".html", "")
            for p in self.templates_dir.glob("*.html.j2")
        ]

    @staticmethod
    def _format_yen(value: float) -> str:
        """Format number as yen."""
        return f"¥{value:,.0f}"

    @staticmethod
    def _format_percent(value: float, decimals: int = 1) -> str:
        """Format ratio as percentage."""
        return f"{value * 100:.{decimals}f}%"

    @staticmethod
    def _format_number(value: float, decimals: int = 0) -> str:
        """Format number with thousands separator."""
        return f"{value:,.{decimals}f}"

    @staticmethod
    def _format_datetime(value: datetime | str | None) -> str:
        if value is None:
            return "never"
        if isinstance(value, str):
            return value
        return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
