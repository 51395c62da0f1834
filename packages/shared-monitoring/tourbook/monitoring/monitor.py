"""Conversion monitor.

Tracks every advertising conversion the booking flow emits: pre-validates
the data, fires it with retry, confirms it asynchronously after firing,
and keeps accuracy counters that drive alerts.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Coroutine, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from tourbook.monitoring.accuracy import AccuracyComparison, compare_conversions
from tourbook.monitoring.alerts import Alert, AlertCallback, AlertDispatcher, AlertSeverity
from tourbook.monitoring.bookings import BookingFlowBookingSource
from tourbook.monitoring.collaborators import DEFAULT_CONSENT, maybe_await
from tourbook.monitoring.config import MonitorConfig
from tourbook.monitoring.exceptions import BookingSourceError, ConversionDataError
from tourbook.monitoring.schema import (
    ConversionData,
    ConversionEventType,
    ConversionStatus,
    Purchase,
    validate_conversion_data,
)
from tourbook.monitoring.store import (
    AccuracyMetrics,
    ConversionAttempt,
    ConversionAttemptStore,
    ValidationStore,
)
from tourbook.monitoring.validation import ConversionValidator, ValidationResult

if TYPE_CHECKING:
    from tourbook.monitoring.bookings import BookingSource
    from tourbook.monitoring.collaborators import (
        BookingFlow,
        EnhancedConversionService,
        TagDeliveryService,
    )


logger = logging.getLogger(__name__)

BOOKING_FLOW_SOURCE = "booking_flow"
TRACKED_SUFFIX = "_tracked"
VALIDATION_TIMEOUT_ERROR = "Validation timeout exceeded"

_CONVERSION_KINDS = frozenset(event.value for event in ConversionEventType)


@dataclass
class TrackingResult:
    """Result returned to the caller of track_conversion_attempt."""

    success: bool
    attempt_id: str
    errors: list[str] = field(default_factory=list)
    firing_result: Any = None


@dataclass
class FiringResult:
    """Result of the retrying fire loop."""

    success: bool
    retry: int | None = None
    firing_result: Any = None
    errors: list[str] = field(default_factory=list)


@dataclass
class MonitoringStatus:
    """Read-only snapshot of the monitor."""

    is_initialized: bool
    monitoring_enabled: bool
    accuracy_metrics: AccuracyMetrics
    active_attempts: int
    validation_results: int
    alert_callbacks: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_initialized": self.is_initialized,
            "monitoring_enabled": self.monitoring_enabled,
            "accuracy_metrics": self.accuracy_metrics.to_dict(),
            "active_attempts": self.active_attempts,
            "validation_results": self.validation_results,
            "alert_callbacks": self.alert_callbacks,
        }


class ConversionMonitor:
    """Reliable delivery and validation of advertising conversions.

    Attempt lifecycle:
        pending -> fired -> validated
        pending -> validation_failed      (bad input, never fired)
        pending -> firing_failed          (retry budget exhausted)
        fired -> validation_failed        (post-fire checks disagree)
        fired -> validation_timeout       (checks never completed)
        pending | fired -> error          (unexpected exception)

    The host application owns one instance and passes it where needed.
    ``start()`` subscribes to the booking flow and launches the hourly
    accuracy check; ``stop()`` cancels all background work.

    Example:
        >>> monitor = ConversionMonitor(
        ...     tag_delivery=gtm,
        ...     booking_flow=booking_flow,
        ...     enhanced_conversions=enhanced,
        ... )
        >>> async with monitor:
        ...     result = await monitor.track_conversion_attempt({
        ...         "event": "purchase",
        ...         "transaction_id": "ch_3Nx...",
        ...         "value": 13000,
        ...     })
        ...     if not result.success:
        ...         print(result.errors)
    """

    def __init__(
        self,
        tag_delivery: TagDeliveryService,
        booking_flow: BookingFlow | None = None,
        enhanced_conversions: EnhancedConversionService | None = None,
        booking_source: BookingSource | None = None,
        config: MonitorConfig | None = None,
    ):
        """Initialize the monitor.

        Args:
            tag_delivery: Tag manager used to fire and confirm conversions.
            booking_flow: Booking flow emitting lifecycle events and holding state.
            enhanced_conversions: Service for hashed-user-data purchase conversions.
            booking_source: Actual bookings for accuracy checks. Defaults to the
                booking flow's current state when a booking flow is given.
            config: Monitor configuration. Defaults to MonitorConfig().
        """
        self.config = config or MonitorConfig()
        self.tag_delivery = tag_delivery
        self.booking_flow = booking_flow
        self.enhanced_conversions = enhanced_conversions
        if booking_source is None and booking_flow is not None:
            booking_source = BookingFlowBookingSource(booking_flow)
        self.booking_source = booking_source

        self.monitoring_enabled = self.config.monitoring_enabled

        self._validations = ValidationStore()
        self._attempts = ConversionAttemptStore(
            validations=self._validations,
            max_attempts=self.config.max_retained_attempts,
        )
        self._metrics = AccuracyMetrics()
        self._alerts = AlertDispatcher()
        self._validator = ConversionValidator(tag_delivery, booking_flow, enhanced_conversions)

        self._initialized = False
        self._listener = self.handle_booking_flow_event
        self._tasks: set[asyncio.Task[Any]] = set()
        self._periodic_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> ConversionMonitor:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    @property
    def is_initialized(self) -> bool:
        """Return True once subscribed to the booking flow."""
        return self._initialized

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Subscribe to booking flow events. Safe to call more than once."""
        if self._initialized:
            return

        try:
            if self.booking_flow is not None:
                self.booking_flow.add_listener(self._listener)
            self._initialized = True
            logger.info("ConversionMonitor initialized")
        except Exception:
            logger.exception("ConversionMonitor initialization failed")

    async def start(self) -> None:
        """Initialize and launch the periodic accuracy check."""
        self.initialize()
        if self._periodic_task is None:
            self._periodic_task = asyncio.create_task(self._periodic_accuracy_check())
            logger.info(
                f"Accuracy check scheduled every {self.config.accuracy_check_interval:.0f}s"
            )

    async def stop(self) -> None:
        """Unsubscribe and cancel pending validations, timeouts and the periodic check."""
        if self._initialized and self.booking_flow is not None:
            try:
                self.booking_flow.remove_listener(self._listener)
            except Exception:
                logger.exception("Failed to remove booking flow listener")

        tasks = list(self._tasks)
        if self._periodic_task is not None:
            tasks.append(self._periodic_task)
            self._periodic_task = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._tasks.clear()
        self._initialized = False
        logger.info(f"ConversionMonitor stopped ({len(tasks)} background tasks cancelled)")

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    async def track_conversion_attempt(
        self,
        conversion_data: ConversionData | Mapping[str, Any],
    ) -> TrackingResult:
        """Track one conversion: pre-validate, fire with retry, schedule validation.

        Returns as soon as firing completes; validation runs in the background.
        Never raises for tracking failures.

        Args:
            conversion_data: A ConversionData variant or a raw dictionary.

        Returns:
            TrackingResult with the attempt ID and any errors.
        """
        if isinstance(conversion_data, ConversionData):
            raw = conversion_data.to_dict()
        else:
            raw = dict(conversion_data or {})

        event = raw.get("event")
        event_name = event.value if isinstance(event, ConversionEventType) else str(event or "")
        attempt = self._attempts.create(event_name, raw)
        self._metrics.total_attempts += 1

        try:
            try:
                data = (
                    conversion_data
                    if isinstance(conversion_data, ConversionData)
                    else ConversionData.from_dict(raw)
                )
            except ConversionDataError as e:
                return self._reject(attempt, e.errors)

            errors = validate_conversion_data(data)
            if errors:
                return self._reject(attempt, errors)

            firing = await self.fire_conversion_with_retry(data, attempt.id)

            if firing.success:
                attempt.transition(ConversionStatus.FIRED)
                self._schedule_validation(attempt.id)
                logger.debug(f"Fired {attempt.event} conversion {attempt.id} (retry {firing.retry})")
                return TrackingResult(
                    success=True,
                    attempt_id=attempt.id,
                    firing_result=firing.firing_result,
                )

            attempt.transition(ConversionStatus.FIRING_FAILED)
            attempt.add_errors(firing.errors or ["Unknown firing error"])
            self._metrics.failed_firings += 1
            logger.warning(f"Firing failed for {attempt.event} conversion {attempt.id}: {attempt.errors}")
            return TrackingResult(success=False, attempt_id=attempt.id, errors=list(attempt.errors))

        except Exception as e:
            if not attempt.status.is_terminal:
                attempt.transition(ConversionStatus.ERROR)
            attempt.add_errors([str(e)])
            self._metrics.failed_firings += 1
            logger.exception(f"Conversion attempt {attempt.id} failed")
            return TrackingResult(success=False, attempt_id=attempt.id, errors=[str(e)])

    def _reject(self, attempt: ConversionAttempt, errors: list[str]) -> TrackingResult:
        attempt.transition(ConversionStatus.VALIDATION_FAILED)
        attempt.add_errors(errors)
        self._metrics.validation_errors += 1
        logger.warning(f"Pre-validation failed for attempt {attempt.id}: {errors}")
        return TrackingResult(success=False, attempt_id=attempt.id, errors=list(errors))

    async def fire_conversion_with_retry(
        self,
        data: ConversionData,
        attempt_id: str,
    ) -> FiringResult:
        """Fire a conversion, retrying with linear backoff.

        Waits ``retry_delay * (retry + 1)`` between attempts, not after the last.
        The first truthy firing result wins.

        Args:
            data: Pre-validated conversion data.
            attempt_id: Attempt whose retry_count is updated.

        Returns:
            FiringResult; errors hold the last exception message or
            'All retry attempts failed'.
        """
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            return FiringResult(success=False, errors=["Attempt not found"])

        retry_attempts = self.config.retry_attempts
        for retry in range(retry_attempts):
            attempt.retry_count = retry
            try:
                firing_result = await self._fire(data)
                if firing_result:
                    return FiringResult(success=True, retry=retry, firing_result=firing_result)
                logger.warning(
                    f"Firing attempt {retry + 1}/{retry_attempts} for {attempt_id} returned no result"
                )
            except Exception as e:
                logger.error(f"Firing attempt {retry + 1}/{retry_attempts} for {attempt_id} failed: {e}")
                if retry == retry_attempts - 1:
                    return FiringResult(success=False, retry=retry, errors=[str(e)])

            if retry < retry_attempts - 1:
                await asyncio.sleep(self.config.retry_delay * (retry + 1))

        return FiringResult(success=False, retry=retry_attempts, errors=["All retry attempts failed"])

    async def _fire(self, data: ConversionData) -> Any:
        """Send one conversion, preferring the enhanced path for purchases with user data."""
        payload = data.to_dict()

        if (
            isinstance(data, Purchase)
            and data.user_data is not None
            and self.enhanced_conversions is not None
        ):
            enhanced_payload = await maybe_await(
                self.enhanced_conversions.prepare_enhanced_conversion(
                    payload,
                    data.user_data.to_dict(),
                    dict(DEFAULT_CONSENT),
                )
            )
            if enhanced_payload:
                return await maybe_await(self.enhanced_conversions.track_enhanced_conversion(enhanced_payload))

        return await maybe_await(self.tag_delivery.track_conversion(data.event.value, payload))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _schedule_validation(self, attempt_id: str) -> None:
        self._spawn(self._validate_after_delay(attempt_id))
        self._spawn(self._flag_validation_timeout(attempt_id))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _validate_after_delay(self, attempt_id: str) -> None:
        await asyncio.sleep(self.config.validation_delay)
        try:
            await self.validate_conversion_firing(attempt_id)
        except Exception:
            logger.exception(f"Scheduled validation failed for {attempt_id}")

    async def _flag_validation_timeout(self, attempt_id: str) -> None:
        await asyncio.sleep(self.config.validation_timeout)
        # Status is read now, not when the timer was scheduled
        attempt = self._attempts.get(attempt_id)
        if attempt is not None and attempt.status == ConversionStatus.FIRED:
            attempt.transition(ConversionStatus.VALIDATION_TIMEOUT)
            attempt.add_errors([VALIDATION_TIMEOUT_ERROR])
            logger.warning(f"Validation timeout for attempt {attempt_id}")

    async def validate_conversion_firing(self, attempt_id: str) -> ValidationResult:
        """Confirm a fired conversion against the tag manager, booking flow and
        enhanced conversion service.

        A result is recorded at most once per attempt; later calls return it.
        Never raises: failures become an all-invalid result.

        Args:
            attempt_id: ID returned by track_conversion_attempt.

        Returns:
            The ValidationResult.
        """
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            return ValidationResult.failed(attempt_id, "Conversion attempt not found")

        if attempt.validation_result is not None:
            return attempt.validation_result

        try:
            result = await self._validator.validate(attempt)
        except Exception as e:
            logger.exception(f"Validation failed for {attempt_id}")
            result = ValidationResult.failed(attempt_id, str(e))

        return self._record_validation(attempt, result)

    def _record_validation(self, attempt: ConversionAttempt, result: ValidationResult) -> ValidationResult:
        # A concurrent validation of the same attempt may have finished first
        if attempt.validation_result is not None:
            return attempt.validation_result

        attempt.validation_result = result
        self._validations.set(attempt.id, result)

        if not result.is_valid:
            attempt.add_errors(result.overall_errors)

        if attempt.status != ConversionStatus.FIRED:
            logger.info(
                f"Validation for {attempt.id} completed in status {attempt.status.value}; status unchanged"
            )
        elif result.is_valid:
            attempt.transition(ConversionStatus.VALIDATED)
            self._metrics.successful_firings += 1
        else:
            attempt.transition(ConversionStatus.VALIDATION_FAILED)
            logger.warning(f"Validation failed for {attempt.id}: {result.overall_errors}")

        return result

    # ------------------------------------------------------------------
    # Booking flow events
    # ------------------------------------------------------------------

    def handle_booking_flow_event(self, event_name: str, data: dict[str, Any] | None) -> None:
        """Booking flow listener: ``<kind>_tracked`` events start an attempt."""
        if not self.monitoring_enabled:
            return

        try:
            if not event_name.endswith(TRACKED_SUFFIX):
                return
            kind = event_name[: -len(TRACKED_SUFFIX)]
            if kind not in _CONVERSION_KINDS:
                return

            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(f"No running event loop; dropping booking flow event {event_name}")
                return

            payload = {**(data or {}), "event": kind, "source": BOOKING_FLOW_SOURCE}
            self._spawn(self._auto_track(payload))
        except Exception:
            logger.exception(f"Booking flow event handling failed for {event_name}")

    async def _auto_track(self, payload: dict[str, Any]) -> None:
        result = await self.track_conversion_attempt(payload)
        if not result.success:
            logger.warning(f"Auto-tracking of {payload['event']} failed: {result.errors}")

    # ------------------------------------------------------------------
    # Accuracy
    # ------------------------------------------------------------------

    async def _periodic_accuracy_check(self) -> None:
        while True:
            await asyncio.sleep(self.config.accuracy_check_interval)
            try:
                await self.run_accuracy_check()
            except Exception:
                logger.exception("Periodic accuracy check failed")

    async def run_accuracy_check(self) -> AccuracyComparison | None:
        """Compare the most recent ``accuracy_window`` against actual bookings.

        Returns:
            The comparison, or None when no booking source is configured.
        """
        if self.booking_source is None:
            logger.debug("No booking source configured; skipping accuracy check")
            return None

        end = datetime.now(UTC)
        start = end - timedelta(seconds=self.config.accuracy_window)
        comparison = await self.compare_actual_vs_tracked(start, end)
        logger.info(
            f"Accuracy check: {comparison.accuracy:.1%} "
            f"({comparison.tracked_count} tracked / {comparison.actual_count} actual)"
        )
        return comparison

    async def compare_actual_vs_tracked(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AccuracyComparison:
        """Compare validated purchase conversions with actual bookings.

        Only validated purchase attempts count as tracked conversions; funnel
        events such as view_item have no booking to match against.

        Updates current_accuracy and last_accuracy_check, and alerts when
        accuracy falls below the alert threshold.

        Args:
            start: Window start. Defaults to 24 hours before end.
            end: Window end. Defaults to now.

        Returns:
            AccuracyComparison for the window.

        Raises:
            BookingSourceError: If actual bookings cannot be fetched.
        """
        end = end or datetime.now(UTC)
        start = start or end - timedelta(hours=24)

        if self.booking_source is None:
            raise BookingSourceError("No booking source configured")

        tracked = [
            attempt.snapshot()
            for attempt in self._attempts.in_range(start, end, ConversionStatus.VALIDATED)
            if attempt.event == ConversionEventType.PURCHASE.value
        ]

        try:
            bookings = await self.booking_source.get_completed_bookings(start, end)
        except BookingSourceError:
            logger.exception("Accuracy comparison failed")
            raise
        except Exception as e:
            logger.exception("Accuracy comparison failed")
            raise BookingSourceError(f"Failed to fetch actual bookings: {e}") from e

        comparison = compare_conversions(tracked, bookings, start, end)

        self._metrics.current_accuracy = comparison.accuracy
        self._metrics.last_accuracy_check = datetime.now(UTC)

        if comparison.accuracy < self.config.alert_threshold:
            self._trigger_accuracy_alert(comparison)

        return comparison

    def _trigger_accuracy_alert(self, comparison: AccuracyComparison) -> None:
        severity = (
            AlertSeverity.CRITICAL
            if comparison.accuracy < self.config.critical_threshold
            else AlertSeverity.WARNING
        )
        alert = Alert(
            type="accuracy_alert",
            severity=severity,
            message=f"Conversion accuracy dropped to {comparison.accuracy * 100:.1f}%",
            data=comparison,
        )
        logger.warning(f"Accuracy alert ({severity.value}): {alert.message}")
        self._alerts.dispatch(alert)

    # ------------------------------------------------------------------
    # Alerts and status
    # ------------------------------------------------------------------

    def add_alert_callback(self, callback: AlertCallback) -> None:
        """Register a callback invoked with every Alert."""
        self._alerts.add(callback)

    def remove_alert_callback(self, callback: AlertCallback) -> None:
        """Unregister a callback."""
        self._alerts.remove(callback)

    def get_monitoring_status(self) -> MonitoringStatus:
        """Return a snapshot; mutating it does not affect the monitor."""
        return MonitoringStatus(
            is_initialized=self._initialized,
            monitoring_enabled=self.monitoring_enabled,
            accuracy_metrics=self._metrics.snapshot(),
            active_attempts=len(self._attempts),
            validation_results=len(self._validations),
            alert_callbacks=len(self._alerts),
        )

    def get_attempt(self, attempt_id: str) -> ConversionAttempt | None:
        """Return a copy of one attempt, or None."""
        attempt = self._attempts.get(attempt_id)
        return attempt.snapshot() if attempt is not None else None

    def iter_attempts(self) -> list[ConversionAttempt]:
        """Return copies of all retained attempts in creation order."""
        return [attempt.snapshot() for attempt in self._attempts.values()]

    def iter_validations(self) -> list[ValidationResult]:
        """Return copies of all stored validation results."""
        return [copy.deepcopy(result) for result in self._validations.values()]
