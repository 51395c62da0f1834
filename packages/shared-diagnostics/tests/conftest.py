"""Shared fixtures for diagnostics package tests."""

from unittest.mock import MagicMock

import pytest
from tourbook.monitoring import ConversionMonitor, ConversionStatus, MonitorConfig


@pytest.fixture
def mock_tag_delivery():
    """Healthy tag manager."""
    tag_delivery = MagicMock()
    tag_delivery.get_status.return_value = {"is_initialized": True, "container_id": "GTM-TEST"}
    tag_delivery.track_conversion.return_value = True
    tag_delivery.validate_tag_firing.return_value = True
    return tag_delivery


@pytest.fixture
def mock_booking_flow():
    """Booking flow with an active booking that tracked every conversion."""
    booking_flow = MagicMock()
    booking_flow.get_current_booking_state.return_value = {
        "booking_id": "BK-1042",
        "current_step": "payment",
    }
    booking_flow.get_current_step.return_value = "payment"
    booking_flow.is_conversion_tracked.return_value = True
    return booking_flow


@pytest.fixture
async def diagnostics_monitor(mock_tag_delivery, mock_booking_flow):
    """Monitor with one attempt in each interesting status.

    - purchase: validated
    - begin_checkout: rejected before firing
    - purchase: firing failed after two retries
    - add_payment_info: validation timed out
    """
    monitor = ConversionMonitor(
        tag_delivery=mock_tag_delivery,
        booking_flow=mock_booking_flow,
        config=MonitorConfig(validation_delay=60, validation_timeout=60),
    )
    monitor.initialize()
    attempts = monitor._attempts

    validated = attempts.create("purchase", {"event": "purchase", "transaction_id": "tx_1", "value": 13000})
    validated.transition(ConversionStatus.FIRED)
    await monitor.validate_conversion_firing(validated.id)

    rejected = attempts.create("begin_checkout", {"event": "begin_checkout"})
    rejected.transition(ConversionStatus.VALIDATION_FAILED)
    rejected.add_errors(["Items array is required for begin_checkout events"])

    firing_failed = attempts.create("purchase", {"event": "purchase", "transaction_id": "tx_2", "value": 8000})
    firing_failed.retry_count = 2
    firing_failed.transition(ConversionStatus.FIRING_FAILED)
    firing_failed.add_errors(["All retry attempts failed"])

    timed_out = attempts.create("add_payment_info", {"event": "add_payment_info"})
    timed_out.transition(ConversionStatus.FIRED)
    timed_out.transition(ConversionStatus.VALIDATION_TIMEOUT)
    timed_out.add_errors(["Validation timeout exceeded"])

    yield monitor
    await monitor.stop()
