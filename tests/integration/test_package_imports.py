"""Integration tests for package imports."""

from unittest.mock import MagicMock

import pytest


class TestAllPackagesImportable:
    """Test that all Tourbook packages can be imported together."""

    def test_monitoring_package_imports(self):
        """Monitoring package classes should be importable."""
        from tourbook.monitoring import ConversionMonitor
        from tourbook.monitoring import MonitorConfig
        from tourbook.monitoring import SupabaseBookingSource
        from tourbook.monitoring import ConversionData

        assert ConversionMonitor is not None
        assert MonitorConfig is not None
        assert SupabaseBookingSource is not None
        assert ConversionData is not None

    def test_diagnostics_package_imports(self):
        """Diagnostics package classes should be importable."""
        from tourbook.diagnostics import DiagnosticReporter
        from tourbook.diagnostics import HTMLRenderer

        assert DiagnosticReporter is not None
        assert HTMLRenderer is not None

    def test_namespace_package(self):
        """tourbook is a namespace package spanning both workspace packages."""
        import tourbook

        assert getattr(tourbook, "__file__", None) is None
        assert len(list(tourbook.__path__)) >= 1


class TestCrossPackageIntegration:
    """Test that packages work together."""

    @pytest.mark.asyncio
    async def test_track_then_report(self, sample_view_item_data):
        """A tracked conversion shows up in the diagnostic report."""
        from tourbook.diagnostics import DiagnosticReporter, HTMLRenderer
        from tourbook.monitoring import ConversionMonitor, MonitorConfig

        tag_delivery = MagicMock()
        tag_delivery.get_status.return_value = {"is_initialized": True}
        tag_delivery.track_conversion.return_value = True
        tag_delivery.validate_tag_firing.return_value = True
        booking_flow = MagicMock()
        booking_flow.get_current_booking_state.return_value = {"booking_id": "BK-1"}
        booking_flow.get_current_step.return_value = "tour_details"
        booking_flow.is_conversion_tracked.return_value = False

        monitor = ConversionMonitor(
            tag_delivery=tag_delivery,
            booking_flow=booking_flow,
            config=MonitorConfig(validation_delay=60),
        )
        async with monitor:
            result = await monitor.track_conversion_attempt(sample_view_item_data)
            await monitor.validate_conversion_firing(result.attempt_id)

            report = DiagnosticReporter(monitor).generate(period_hours=1)

        assert report.summary["total_attempts"] == 1
        assert report.summary["successful_attempts"] == 1
        assert report.conversion_attempts["by_event_type"] == {"view_item": {"count": 1, "successful": 1}}
        assert "view_item" in HTMLRenderer().render_report(report)
