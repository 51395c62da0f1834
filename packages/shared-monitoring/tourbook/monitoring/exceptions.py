"""Custom exceptions for conversion monitoring."""

from __future__ import annotations


class MonitoringError(Exception):
    """Base exception for conversion monitoring errors."""

    pass


class ConversionDataError(MonitoringError, ValueError):
    """Raised when conversion data cannot be parsed into a known event.

    ``errors`` holds every message found; ``str()`` joins them.
    """

    def __init__(self, *errors: str):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class InvalidTransitionError(MonitoringError):
    """Raised when an attempt is moved to a status its state does not allow."""

    pass


class BookingSourceError(MonitoringError):
    """Raised when actual bookings cannot be fetched for comparison."""

    pass
