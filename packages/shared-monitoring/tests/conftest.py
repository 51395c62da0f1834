"""Shared fixtures for monitoring package tests."""

from datetime import UTC, datetime

import pytest
from fakes import FakeBookingFlow, FakeEnhancedConversions, FakeTagDelivery
from tourbook.monitoring import ConversionMonitor, MonitorConfig


@pytest.fixture
def fast_config():
    """Monitor configuration with near-zero delays."""
    return MonitorConfig(
        retry_delay=0,
        validation_delay=0.01,
        validation_timeout=0.5,
    )


@pytest.fixture
def tag_delivery():
    return FakeTagDelivery()


@pytest.fixture
def enhanced_conversions():
    return FakeEnhancedConversions()


@pytest.fixture
def booking_state():
    """Active booking state with every conversion tracked."""
    return {
        "booking_id": "BK-1042",
        "transaction_id": "ch_test_1042",
        "current_step": "confirmation",
        "created_at": datetime.now(UTC).isoformat(),
        "payment_data": {"amount": 13000},
        "tour_data": {"tour_id": "night-food-tour"},
        "conversion_tracking": {
            "view_item_tracked": True,
            "begin_checkout_tracked": True,
            "add_payment_info_tracked": True,
            "purchase_tracked": True,
        },
    }


@pytest.fixture
def booking_flow(booking_state):
    return FakeBookingFlow(
        state=booking_state,
        tracked={"view_item", "begin_checkout", "add_payment_info", "purchase"},
    )


@pytest.fixture
async def monitor(tag_delivery, booking_flow, enhanced_conversions, fast_config):
    """Started monitor wired to healthy fakes; stopped after the test."""
    monitor = ConversionMonitor(
        tag_delivery=tag_delivery,
        booking_flow=booking_flow,
        enhanced_conversions=enhanced_conversions,
        config=fast_config,
    )
    monitor.initialize()
    yield monitor
    await monitor.stop()


@pytest.fixture
async def make_monitor(booking_flow, fast_config):
    """Factory for monitors with custom collaborators; all are stopped after the test."""
    monitors = []

    def factory(tag_delivery=None, **kwargs):
        kwargs.setdefault("booking_flow", booking_flow)
        kwargs.setdefault("config", fast_config)
        monitor = ConversionMonitor(tag_delivery=tag_delivery or FakeTagDelivery(), **kwargs)
        monitor.initialize()
        monitors.append(monitor)
        return monitor

    yield factory

    for monitor in monitors:
        await monitor.stop()
