"""
ConversionValidator - post-fire confirmation that a conversion was recorded.

Runs three independent checks and combines them with logical AND:
- Tag firing: the tag manager saw ``<event>_conversion`` fire
- Booking flow state: the booking flow recorded the conversion
- Enhanced conversion: hashed customer data passes privacy compliance
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tourbook.monitoring.collaborators import DEFAULT_CONSENT, maybe_await
from tourbook.monitoring.schema import ConversionEventType, UserData

if TYPE_CHECKING:
    from tourbook.monitoring.collaborators import (
        BookingFlow,
        EnhancedConversionService,
        TagDeliveryService,
    )
    from tourbook.monitoring.store import ConversionAttempt

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Outcome of a single validation check."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    note: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"is_valid": self.is_valid, "errors": list(self.errors)}
        if self.note:
            result["note"] = self.note
        if self.details:
            result["details"] = dict(self.details)
        return result


@dataclass
class ValidationResult:
    """Combined result of validating one conversion attempt."""

    is_valid: bool
    conversion_id: str
    gtm_validation: CheckResult
    booking_validation: CheckResult
    enhanced_validation: CheckResult
    overall_errors: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def combine(
        cls,
        conversion_id: str,
        gtm_validation: CheckResult,
        booking_validation: CheckResult,
        enhanced_validation: CheckResult,
    ) -> ValidationResult:
        """Combine the three checks; overall errors are the union of failed checks."""
        overall_errors: list[str] = []
        for check in (gtm_validation, booking_validation, enhanced_validation):
            if not check.is_valid:
                overall_errors.extend(check.errors)

        return cls(
            is_valid=gtm_validation.is_valid and booking_validation.is_valid and enhanced_validation.is_valid,
            conversion_id=conversion_id,
            gtm_validation=gtm_validation,
            booking_validation=booking_validation,
            enhanced_validation=enhanced_validation,
            overall_errors=overall_errors,
        )

    @classmethod
    def failed(cls, conversion_id: str, message: str) -> ValidationResult:
        """Build an all-invalid result carrying a single message."""
        return cls(
            is_valid=False,
            conversion_id=conversion_id,
            gtm_validation=CheckResult(is_valid=False, errors=[message]),
            booking_validation=CheckResult(is_valid=False, errors=[message]),
            enhanced_validation=CheckResult(is_valid=False, errors=[message]),
            overall_errors=[message],
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_valid": self.is_valid,
            "conversion_id": self.conversion_id,
            "timestamp": self.timestamp.isoformat(),
            "gtm_validation": self.gtm_validation.to_dict(),
            "booking_validation": self.booking_validation.to_dict(),
            "enhanced_validation": self.enhanced_validation.to_dict(),
            "overall_errors": list(self.overall_errors),
        }


class ConversionValidator:
    """
    Validates fired conversions against the tag manager, the booking flow
    and the enhanced conversion service.

    Each check converts its own exceptions into an invalid CheckResult so
    one failing collaborator does not hide the others.

    Example:
        validator = ConversionValidator(tag_delivery, booking_flow, enhanced)
        result = await validator.validate(attempt)
    """

    def __init__(
        self,
        tag_delivery: TagDeliveryService,
        booking_flow: BookingFlow | None = None,
        enhanced_conversions: EnhancedConversionService | None = None,
    ):
        self.tag_delivery = tag_delivery
        self.booking_flow = booking_flow
        self.enhanced_conversions = enhanced_conversions

    async def validate(self, attempt: ConversionAttempt) -> ValidationResult:
        """Run all checks for an attempt."""
        gtm_validation = await self.validate_tag_firing(attempt.event)
        booking_validation = await self.validate_booking_flow_state(attempt.event)
        enhanced_validation = await self.validate_enhanced_conversion(attempt.event, attempt.data)

        return ValidationResult.combine(
            attempt.id,
            gtm_validation,
            booking_validation,
            enhanced_validation,
        )

    async def validate_tag_firing(self, event: str) -> CheckResult:
        """Ask the tag manager whether ``<event>_conversion`` fired."""
        try:
            gtm_status = dict(await maybe_await(self.tag_delivery.get_status()))
            if not gtm_status.get("is_initialized"):
                return CheckResult(is_valid=False, errors=["GTM not initialized"])

            fired = bool(await maybe_await(self.tag_delivery.validate_tag_firing(f"{event}_conversion")))
            return CheckResult(
                is_valid=fired,
                errors=[] if fired else ["GTM tag firing validation failed"],
                details={"gtm_status": gtm_status},
            )
        except Exception as e:
            logger.warning(f"Tag firing check failed for {event}: {e}")
            return CheckResult(is_valid=False, errors=[str(e)])

    async def validate_booking_flow_state(self, event: str) -> CheckResult:
        """Check the booking flow recorded the conversion.

        view_item is exempt: a page view is not tracked state in the booking flow.
        """
        try:
            booking_state = None
            if self.booking_flow is not None:
                booking_state = await maybe_await(self.booking_flow.get_current_booking_state())
            if not booking_state:
                return CheckResult(is_valid=False, errors=["No active booking state"])

            is_tracked = await maybe_await(self.booking_flow.is_conversion_tracked(event))
            if not is_tracked and event != ConversionEventType.VIEW_ITEM.value:
                return CheckResult(
                    is_valid=False,
                    errors=[f"Conversion {event} not tracked in booking flow"],
                )

            return CheckResult(
                is_valid=True,
                details={
                    "booking_id": booking_state.get("booking_id"),
                    "current_step": booking_state.get("current_step"),
                    "conversion_tracking": booking_state.get("conversion_tracking"),
                },
            )
        except Exception as e:
            logger.warning(f"Booking flow check failed for {event}: {e}")
            return CheckResult(is_valid=False, errors=[str(e)])

    async def validate_enhanced_conversion(self, event: str, data: dict[str, Any]) -> CheckResult:
        """Check privacy compliance of enhanced purchase conversions."""
        try:
            user_data = data.get("user_data")
            if isinstance(user_data, UserData):
                user_data = user_data.to_dict()
            if event != ConversionEventType.PURCHASE.value or not user_data:
                return CheckResult(is_valid=True, note="Enhanced conversion validation not applicable")

            if self.enhanced_conversions is None:
                return CheckResult(is_valid=True, note="Enhanced conversions not configured")

            enhanced_status = dict(await maybe_await(self.enhanced_conversions.get_status()))
            if not enhanced_status.get("is_enabled"):
                return CheckResult(is_valid=True, note="Enhanced conversions disabled")

            compliance = dict(
                await maybe_await(
                    self.enhanced_conversions.validate_privacy_compliance(user_data, dict(DEFAULT_CONSENT))
                )
            )
            return CheckResult(
                is_valid=bool(compliance.get("is_compliant")),
                errors=list(compliance.get("errors") or []),
                details={"enhanced_status": enhanced_status, "compliance": compliance},
            )
        except Exception as e:
            logger.warning(f"Enhanced conversion check failed for {event}: {e}")
            return CheckResult(is_valid=False, errors=[str(e)])
