"""Alert records and callback dispatch."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class AlertSeverity(str, Enum):
    """Severity of a monitoring alert."""

    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class Alert:
    """A monitoring alert delivered to registered callbacks."""

    type: str
    severity: AlertSeverity
    message: str
    data: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


AlertCallback = Callable[[Alert], None]


class AlertDispatcher:
    """Ordered set of alert callbacks.

    A callback that raises is logged and skipped; the remaining callbacks
    still run.
    """

    def __init__(self):
        self._callbacks: list[AlertCallback] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, callback: AlertCallback) -> None:
        """Register a callback. Non-callables are ignored."""
        if not callable(callback):
            logger.warning(f"Ignoring non-callable alert callback: {callback!r}")
            return
        self._callbacks.append(callback)

    def remove(self, callback: AlertCallback) -> None:
        """Unregister every occurrence of a callback."""
        self._callbacks = [cb for cb in self._callbacks if cb is not callback]

    def dispatch(self, alert: Alert) -> int:
        """Invoke every callback with the alert.

        Returns:
            Number of callbacks that completed without raising.
        """
        delivered = 0
        for callback in list(self._callbacks):
            try:
                callback(alert)
                delivered += 1
            except Exception:
                logger.exception(f"Alert callback failed for {alert.type}")
        return delivered
