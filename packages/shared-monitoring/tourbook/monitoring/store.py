"""In-memory ledgers of conversion attempts, validation results and accuracy."""

from __future__ import annotations

import copy
import logging
import time
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tourbook.monitoring.exceptions import InvalidTransitionError
from tourbook.monitoring.schema import ALLOWED_TRANSITIONS, ConversionStatus

if TYPE_CHECKING:
    from tourbook.monitoring.validation import ValidationResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10_000


@dataclass
class ConversionAttempt:
    """
    One tracked instance of firing and confirming a conversion.

    ``id``, ``event``, ``data`` and ``timestamp`` are fixed at creation.
    ``status`` only moves forward through ALLOWED_TRANSITIONS and
    ``errors`` only grows.
    """

    id: str
    event: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    status: ConversionStatus = ConversionStatus.PENDING
    validation_result: ValidationResult | None = None
    retry_count: int = 0
    errors: list[str] = field(default_factory=list)

    def transition(self, status: ConversionStatus) -> None:
        """Move to a new status.

        Raises:
            InvalidTransitionError: If the state machine does not allow the move.
        """
        allowed = ALLOWED_TRANSITIONS.get(self.status, frozenset())
        if status not in allowed:
            raise InvalidTransitionError(
                f"Attempt {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def add_errors(self, errors: list[str]) -> None:
        """Append error messages."""
        self.errors.extend(errors)

    def snapshot(self) -> ConversionAttempt:
        """Return a detached copy safe to hand to callers."""
        return replace(
            self,
            data=copy.deepcopy(self.data),
            validation_result=copy.deepcopy(self.validation_result),
            errors=list(self.errors),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "event": self.event,
            "data": copy.deepcopy(self.data),
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "validation_result": self.validation_result.to_dict() if self.validation_result else None,
            "retry_count": self.retry_count,
            "errors": list(self.errors),
        }


@dataclass
class AccuracyMetrics:
    """Running counters for the monitor's lifetime."""

    total_attempts: int = 0
    successful_firings: int = 0
    failed_firings: int = 0
    validation_errors: int = 0
    last_accuracy_check: datetime | None = None
    current_accuracy: float = 1.0

    def snapshot(self) -> AccuracyMetrics:
        """Return a copy."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_attempts": self.total_attempts,
            "successful_firings": self.successful_firings,
            "failed_firings": self.failed_firings,
            "validation_errors": self.validation_errors,
            "last_accuracy_check": self.last_accuracy_check.isoformat() if self.last_accuracy_check else None,
            "current_accuracy": self.current_accuracy,
        }


def generate_attempt_id() -> str:
    """Return ``attempt_<epoch millis>_<random suffix>``."""
    return f"attempt_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ValidationStore:
    """Validation results keyed by attempt ID."""

    def __init__(self):
        self._results: dict[str, ValidationResult] = {}

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, attempt_id: object) -> bool:
        return attempt_id in self._results

    def get(self, attempt_id: str) -> ValidationResult | None:
        return self._results.get(attempt_id)

    def set(self, attempt_id: str, result: ValidationResult) -> None:
        self._results[attempt_id] = result

    def discard(self, attempt_id: str) -> None:
        self._results.pop(attempt_id, None)

    def values(self) -> list[ValidationResult]:
        """Return a list copy of stored results in insertion order."""
        return list(self._results.values())


class ConversionAttemptStore:
    """
    Ledger of in-flight and completed attempts, keyed by attempt ID.

    Retention is bounded: when adding an attempt would exceed ``max_attempts``,
    the oldest terminal attempt is evicted along with its validation result.
    Attempts still pending or fired are never evicted.

    Example:
        store = ConversionAttemptStore(validations=ValidationStore())
        attempt = store.create("purchase", {"transaction_id": "tx_1"})
    """

    def __init__(
        self,
        validations: ValidationStore | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.validations = validations if validations is not None else ValidationStore()
        self.max_attempts = max_attempts
        self._attempts: dict[str, ConversionAttempt] = {}
        self._evicted = 0

    def __len__(self) -> int:
        return len(self._attempts)

    def __contains__(self, attempt_id: object) -> bool:
        return attempt_id in self._attempts

    def __iter__(self) -> Iterator[ConversionAttempt]:
        return iter(self.values())

    @property
    def evicted_count(self) -> int:
        """Number of attempts dropped by the retention limit."""
        return self._evicted

    def create(self, event: str, data: dict[str, Any]) -> ConversionAttempt:
        """Register a new pending attempt with a unique ID.

        Args:
            event: Raw event name as received.
            data: Conversion data; stored as a deep copy.

        Returns:
            The stored attempt.
        """
        attempt_id = generate_attempt_id()
        while attempt_id in self._attempts:
            attempt_id = generate_attempt_id()

        attempt = ConversionAttempt(
            id=attempt_id,
            event=event,
            data=copy.deepcopy(data),
        )
        self._enforce_retention()
        self._attempts[attempt_id] = attempt
        return attempt

    def get(self, attempt_id: str) -> ConversionAttempt | None:
        return self._attempts.get(attempt_id)

    def values(self) -> list[ConversionAttempt]:
        """Return a list copy of stored attempts in creation order."""
        return list(self._attempts.values())

    def in_range(
        self,
        start: datetime,
        end: datetime,
        status: ConversionStatus | None = None,
    ) -> list[ConversionAttempt]:
        """Return attempts created within [start, end], optionally filtered by status."""
        return [
            attempt
            for attempt in self._attempts.values()
            if start <= attempt.timestamp <= end and (status is None or attempt.status == status)
        ]

    def _enforce_retention(self) -> None:
        if len(self._attempts) < self.max_attempts:
            return

        for attempt_id, attempt in self._attempts.items():
            if attempt.status.is_terminal:
                del self._attempts[attempt_id]
                self.validations.discard(attempt_id)
                self._evicted += 1
                logger.debug(f"Evicted attempt {attempt_id} (retention limit {self.max_attempts})")
                return

        logger.warning(
            f"Attempt store over retention limit ({len(self._attempts)}/{self.max_attempts}) "
            "with no terminal attempts to evict"
        )
