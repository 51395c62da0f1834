"""
Tourbook Monitoring - reliable tracking of advertising conversions.

Provides:
- Typed conversion events (view_item, begin_checkout, add_payment_info, purchase)
- ConversionMonitor: pre-validation, firing with retry, post-fire validation
- Accuracy comparison of tracked conversions against actual bookings
- Alert callbacks for accuracy drops

Every booking flow step the ads platforms care about is fired through the
monitor, which records an attempt, retries transient tag failures, and then
confirms with the tag manager, the booking flow and the enhanced conversion
service that the conversion was really recorded.

Usage:
    from tourbook.monitoring import ConversionMonitor, MonitorConfig, Purchase

    monitor = ConversionMonitor(tag_delivery=gtm, booking_flow=booking_flow)
    async with monitor:
        result = await monitor.track_conversion_attempt(
            Purchase(transaction_id="ch_3Nx...", value=13000)
        )
"""

from tourbook.monitoring.accuracy import (
    AccuracyAnalysis,
    AccuracyComparison,
    AccuracyLevel,
    ActualBooking,
    MatchedConversion,
    match_conversions_with_bookings,
)
from tourbook.monitoring.alerts import Alert, AlertCallback, AlertDispatcher, AlertSeverity
from tourbook.monitoring.bookings import (
    BookingFlowBookingSource,
    BookingSource,
    SupabaseBookingSource,
)
from tourbook.monitoring.config import MonitorConfig, SupabaseConfig
from tourbook.monitoring.exceptions import (
    BookingSourceError,
    ConversionDataError,
    InvalidTransitionError,
    MonitoringError,
)
from tourbook.monitoring.monitor import (
    ConversionMonitor,
    FiringResult,
    MonitoringStatus,
    TrackingResult,
)
from tourbook.monitoring.schema import (
    AddPaymentInfo,
    BeginCheckout,
    ConversionData,
    ConversionEventType,
    ConversionStatus,
    Item,
    Purchase,
    UserData,
    ViewItem,
    validate_conversion_data,
)
from tourbook.monitoring.store import (
    AccuracyMetrics,
    ConversionAttempt,
    ConversionAttemptStore,
    ValidationStore,
)
from tourbook.monitoring.validation import CheckResult, ConversionValidator, ValidationResult

__all__ = [
    # Schema
    "ConversionEventType",
    "ConversionStatus",
    "ConversionData",
    "ViewItem",
    "BeginCheckout",
    "AddPaymentInfo",
    "Purchase",
    "Item",
    "UserData",
    "validate_conversion_data",
    # Monitor
    "ConversionMonitor",
    "MonitorConfig",
    "MonitoringStatus",
    "TrackingResult",
    "FiringResult",
    # Stores
    "ConversionAttempt",
    "ConversionAttemptStore",
    "ValidationStore",
    "AccuracyMetrics",
    # Validation
    "ConversionValidator",
    "ValidationResult",
    "CheckResult",
    # Accuracy
    "AccuracyAnalysis",
    "AccuracyComparison",
    "AccuracyLevel",
    "ActualBooking",
    "MatchedConversion",
    "match_conversions_with_bookings",
    # Bookings
    "BookingSource",
    "BookingFlowBookingSource",
    "SupabaseBookingSource",
    "SupabaseConfig",
    # Alerts
    "Alert",
    "AlertCallback",
    "AlertDispatcher",
    "AlertSeverity",
    # Exceptions
    "MonitoringError",
    "ConversionDataError",
    "InvalidTransitionError",
    "BookingSourceError",
]
