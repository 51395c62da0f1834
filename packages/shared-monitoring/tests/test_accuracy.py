"""Tests for tracked vs actual accuracy comparison."""

from datetime import UTC, datetime, timedelta

import pytest
from tourbook.monitoring import (
    AccuracyLevel,
    ActualBooking,
    ConversionAttemptStore,
    match_conversions_with_bookings,
)
from tourbook.monitoring.accuracy import (
    analyze_accuracy,
    calculate_accuracy,
    compare_conversions,
    conversion_match_key,
)

END = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
START = END - timedelta(hours=1)


@pytest.fixture
def store():
    return ConversionAttemptStore()


class TestConversionMatchKey:
    """Test tracked side key selection."""

    def test_prefers_transaction_id(self, store):
        attempt = store.create("purchase", {"transaction_id": "tx_1", "booking_id": "BK-1"})
        assert conversion_match_key(attempt) == "tx_1"

    def test_falls_back_to_booking_id(self, store):
        attempt = store.create("purchase", {"booking_id": "BK-1"})
        assert conversion_match_key(attempt) == "BK-1"

    def test_falls_back_to_attempt_id(self, store):
        attempt = store.create("purchase", {})
        assert conversion_match_key(attempt) == attempt.id

    def test_booking_key(self):
        assert ActualBooking(id="BK-1", transaction_id="tx_1").match_key == "tx_1"
        assert ActualBooking(id="BK-1").match_key == "BK-1"


class TestMatchConversionsWithBookings:
    """Test matching."""

    def test_matched_missing_extra(self, store):
        tracked_1 = store.create("purchase", {"transaction_id": "tx_1"})
        tracked_extra = store.create("purchase", {"transaction_id": "tx_9"})
        bookings = [
            ActualBooking(id="BK-1", transaction_id="tx_1"),
            ActualBooking(id="BK-2", transaction_id="tx_2"),
        ]

        matched, missing, extra = match_conversions_with_bookings([tracked_1, tracked_extra], bookings)

        assert [(m.booking.id, m.conversion.id) for m in matched] == [("BK-1", tracked_1.id)]
        assert [b.id for b in missing] == ["BK-2"]
        assert extra == [tracked_extra]

    def test_match_on_booking_id(self, store):
        tracked = store.create("purchase", {"booking_id": "BK-7"})

        matched, missing, extra = match_conversions_with_bookings([tracked], [ActualBooking(id="BK-7")])

        assert len(matched) == 1
        assert missing == []
        assert extra == []


class TestCalculateAccuracy:
    """Test accuracy ratio."""

    def test_ratio(self):
        assert calculate_accuracy(9, 10, 9) == 0.9

    def test_nothing_actual_nothing_tracked(self):
        assert calculate_accuracy(0, 0, 0) == 1.0

    def test_nothing_actual_something_tracked(self):
        assert calculate_accuracy(0, 0, 3) == 0.0


class TestCompareConversions:
    """Test the full comparison."""

    def test_perfect_match(self, store):
        tracked = store.create("purchase", {"transaction_id": "tx_1"})

        comparison = compare_conversions([tracked], [ActualBooking(id="BK-1", transaction_id="tx_1")], START, END)

        assert comparison.accuracy == 1.0
        assert comparison.tracked_count == 1
        assert comparison.actual_count == 1
        assert comparison.analysis.accuracy_level == AccuracyLevel.GOOD
        assert comparison.analysis.issues == []

    def test_critical_with_missing(self, store):
        bookings = [ActualBooking(id=f"BK-{i}", transaction_id=f"tx_{i}") for i in range(4)]
        tracked = [store.create("purchase", {"transaction_id": "tx_0"})]

        comparison = compare_conversions(tracked, bookings, START, END)

        assert comparison.accuracy == 0.25
        assert comparison.analysis.accuracy_level == AccuracyLevel.CRITICAL
        assert "3 conversions not tracked" in comparison.analysis.issues

    def test_to_dict(self, store):
        tracked = store.create("purchase", {"transaction_id": "tx_1"})
        comparison = compare_conversions([tracked], [], START, END)

        data = comparison.to_dict()

        assert data["accuracy"] == 0.0
        assert data["extra"] == [tracked.id]
        assert data["start"] == START.isoformat()
        assert data["analysis"]["accuracy_level"] == "critical"


class TestAnalyzeAccuracy:
    """Test accuracy bands."""

    @pytest.mark.parametrize(
        "accuracy,level",
        [
            (1.0, AccuracyLevel.GOOD),
            (0.9, AccuracyLevel.GOOD),
            (0.85, AccuracyLevel.WARNING),
            (0.79, AccuracyLevel.CRITICAL),
        ],
    )
    def test_levels(self, accuracy, level):
        comparison = compare_conversions([], [], START, END)
        comparison.accuracy = accuracy

        assert analyze_accuracy(comparison).accuracy_level == level
