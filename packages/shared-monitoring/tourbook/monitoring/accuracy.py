"""
Accuracy - compare tracked conversions with actual bookings.

A validated purchase attempt matches an actual booking when they share a
key. Tracked side keys, in order of preference: transaction_id, booking_id,
attempt ID. Booking side keys: transaction_id, booking ID.

Accuracy = matched / actual bookings. Discrepancies are expected (ad
blockers, consent refusals) so the result only drives alerts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from tourbook.monitoring.store import ConversionAttempt

WARNING_ACCURACY = 0.9
CRITICAL_ACCURACY = 0.8


class AccuracyLevel(str, Enum):
    """Qualitative accuracy band."""

    GOOD = "good"
    WARNING = "warning"  # Below 90%
    CRITICAL = "critical"  # Below 80%


@dataclass
class ActualBooking:
    """A completed booking from the system of record."""

    id: str
    transaction_id: str | None = None
    timestamp: datetime | None = None
    value: float = 0.0
    tour_id: str | None = None

    @property
    def match_key(self) -> str:
        return self.transaction_id or self.id

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "value": self.value,
            "tour_id": self.tour_id,
        }


@dataclass
class MatchedConversion:
    """A booking paired with the conversion that tracked it."""

    booking: ActualBooking
    conversion: ConversionAttempt


@dataclass
class AccuracyAnalysis:
    """Human-readable reading of an accuracy comparison."""

    accuracy_level: AccuracyLevel = AccuracyLevel.GOOD
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass
class AccuracyComparison:
    """Result of comparing tracked conversions with actual bookings."""

    start: datetime
    end: datetime
    tracked_count: int = 0
    actual_count: int = 0
    accuracy: float = 0.0
    matched: list[MatchedConversion] = field(default_factory=list)
    missing: list[ActualBooking] = field(default_factory=list)
    extra: list[ConversionAttempt] = field(default_factory=list)
    analysis: AccuracyAnalysis = field(default_factory=AccuracyAnalysis)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "tracked_count": self.tracked_count,
            "actual_count": self.actual_count,
            "accuracy": self.accuracy,
            "matched": [
                {"booking": m.booking.to_dict(), "conversion_id": m.conversion.id}
                for m in self.matched
            ],
            "missing": [booking.to_dict() for booking in self.missing],
            "extra": [attempt.id for attempt in self.extra],
            "analysis": {
                "accuracy_level": self.analysis.accuracy_level.value,
                "issues": list(self.analysis.issues),
                "recommendations": list(self.analysis.recommendations),
            },
        }


def conversion_match_key(attempt: ConversionAttempt) -> str:
    """Key used to pair a tracked conversion with a booking."""
    return attempt.data.get("transaction_id") or attempt.data.get("booking_id") or attempt.id


def match_conversions_with_bookings(
    conversions: list[ConversionAttempt],
    bookings: list[ActualBooking],
) -> tuple[list[MatchedConversion], list[ActualBooking], list[ConversionAttempt]]:
    """
    Pair tracked conversions with actual bookings by key.

    Args:
        conversions: Validated attempts in the comparison window
        bookings: Actual bookings in the same window

    Returns:
        (matched, missing bookings, extra conversions)
    """
    conversion_map: dict[str, ConversionAttempt] = {}
    for conversion in conversions:
        conversion_map[conversion_match_key(conversion)] = conversion

    booking_map: dict[str, ActualBooking] = {}
    for booking in bookings:
        booking_map[booking.match_key] = booking

    matched = []
    missing = []
    for key, booking in booking_map.items():
        conversion = conversion_map.pop(key, None)
        if conversion is None:
            missing.append(booking)
        else:
            matched.append(MatchedConversion(booking=booking, conversion=conversion))

    extra = list(conversion_map.values())
    return matched, missing, extra


def calculate_accuracy(matched_count: int, actual_count: int, tracked_count: int) -> float:
    """Matched over actual; with no actual bookings, 1.0 only if nothing was tracked."""
    if actual_count > 0:
        return matched_count / actual_count
    return 1.0 if tracked_count == 0 else 0.0


def analyze_accuracy(comparison: AccuracyComparison) -> AccuracyAnalysis:
    """Classify accuracy and list issues with recommendations."""
    analysis = AccuracyAnalysis()

    if comparison.accuracy < CRITICAL_ACCURACY:
        analysis.accuracy_level = AccuracyLevel.CRITICAL
        analysis.issues.append("Conversion accuracy is critically low")
        analysis.recommendations.append("Immediate investigation required")
    elif comparison.accuracy < WARNING_ACCURACY:
        analysis.accuracy_level = AccuracyLevel.WARNING
        analysis.issues.append("Conversion accuracy is below optimal level")
        analysis.recommendations.append("Review conversion tracking implementation")

    if comparison.missing:
        analysis.issues.append(f"{len(comparison.missing)} conversions not tracked")
        analysis.recommendations.append("Check GTM tag firing and validation")

    if comparison.extra:
        analysis.issues.append(f"{len(comparison.extra)} extra conversions tracked")
        analysis.recommendations.append("Review conversion deduplication logic")

    return analysis


def compare_conversions(
    conversions: list[ConversionAttempt],
    bookings: list[ActualBooking],
    start: datetime,
    end: datetime,
) -> AccuracyComparison:
    """Build a full comparison for one window."""
    matched, missing, extra = match_conversions_with_bookings(conversions, bookings)

    comparison = AccuracyComparison(
        start=start,
        end=end,
        tracked_count=len(conversions),
        actual_count=len(bookings),
        accuracy=calculate_accuracy(len(matched), len(bookings), len(conversions)),
        matched=matched,
        missing=missing,
        extra=extra,
    )
    comparison.analysis = analyze_accuracy(comparison)
    return comparison
