"""Tests for tourbook.monitoring package exports."""


class TestPackageExports:
    """Test that all expected classes are exported from the package."""

    def test_monitor_exported(self):
        from tourbook.monitoring import ConversionMonitor, MonitorConfig

        assert ConversionMonitor is not None
        assert MonitorConfig is not None

    def test_event_variants_exported(self):
        from tourbook.monitoring import AddPaymentInfo, BeginCheckout, Purchase, ViewItem

        assert {cls.event.value for cls in (ViewItem, BeginCheckout, AddPaymentInfo, Purchase)} == {
            "view_item",
            "begin_checkout",
            "add_payment_info",
            "purchase",
        }

    def test_exceptions_share_base(self):
        from tourbook.monitoring import (
            BookingSourceError,
            ConversionDataError,
            InvalidTransitionError,
            MonitoringError,
        )

        for exc in (BookingSourceError, ConversionDataError, InvalidTransitionError):
            assert issubclass(exc, MonitoringError)

    def test_all_names_importable(self):
        import tourbook.monitoring

        for name in tourbook.monitoring.__all__:
            assert hasattr(tourbook.monitoring, name), name
