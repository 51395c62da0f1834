"""Interfaces of the services the monitor depends on.

The tag manager, enhanced conversion service and booking flow live in the
host application. The monitor only needs the methods below. Any method may
be implemented as a coroutine; callers go through ``maybe_await``.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol, TypeVar

T = TypeVar("T")

BookingFlowListener = Callable[[str, dict[str, Any]], None]

# Consent posture assumed when the monitor prepares enhanced conversions.
# Consent is settled upstream before the booking flow emits a purchase.
DEFAULT_CONSENT: dict[str, bool] = {"analytics": True, "ad_storage": True}


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Return ``value``, awaiting it first if it is awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


class TagDeliveryService(Protocol):
    """Tag manager that fires conversion tags."""

    def get_status(self) -> Mapping[str, Any]:
        """Return status with at least ``is_initialized``."""
        ...

    def track_conversion(self, event: str, data: dict[str, Any]) -> Any:
        """Fire a conversion tag. Truthy on success."""
        ...

    def validate_tag_firing(self, tag_name: str) -> bool | Awaitable[bool]:
        """Return True if the named tag was observed firing."""
        ...


class EnhancedConversionService(Protocol):
    """Privacy-checked purchase conversions with hashed customer data."""

    def get_status(self) -> Mapping[str, Any]:
        """Return status with at least ``is_enabled``."""
        ...

    def prepare_enhanced_conversion(
        self,
        data: dict[str, Any],
        user_data: dict[str, Any],
        consent: dict[str, bool],
    ) -> dict[str, Any] | None:
        """Build the enhanced payload, or None if it cannot be sent."""
        ...

    def track_enhanced_conversion(self, payload: dict[str, Any]) -> Any:
        """Send an enhanced conversion. Truthy on success."""
        ...

    def validate_privacy_compliance(
        self,
        user_data: dict[str, Any],
        consent: dict[str, bool],
    ) -> Mapping[str, Any]:
        """Return ``{"is_compliant": bool, "errors": [...]}``."""
        ...


class BookingFlow(Protocol):
    """Booking flow state and lifecycle events."""

    def add_listener(self, listener: BookingFlowListener) -> None: ...

    def remove_listener(self, listener: BookingFlowListener) -> None: ...

    def get_current_booking_state(self) -> Mapping[str, Any] | None:
        """Return the active booking state, or None."""
        ...

    def get_current_step(self) -> str | None: ...

    def is_conversion_tracked(self, event: str) -> bool:
        """Return True if the booking flow recorded this conversion."""
        ...
