"""Configuration models for conversion monitoring."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class MonitorConfig(BaseModel):
    """Configuration for ConversionMonitor.

    All durations are in seconds.
    """

    monitoring_enabled: bool = True

    # Firing
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=2.0, ge=0)  # Linear backoff base

    # Post-fire validation
    validation_delay: float = Field(default=2.0, ge=0)
    validation_timeout: float = Field(default=30.0, ge=0)

    # Accuracy monitoring
    accuracy_check_interval: float = Field(default=3600.0, gt=0)  # 1 hour
    accuracy_window: float = Field(default=3600.0, gt=0)
    alert_threshold: float = Field(default=0.95, ge=0, le=1)
    critical_threshold: float = Field(default=0.8, ge=0, le=1)

    # Retention
    max_retained_attempts: int = Field(default=10_000, ge=1)

    @classmethod
    def from_env(cls) -> MonitorConfig:
        """Load configuration from environment variables."""
        return cls(
            monitoring_enabled=_env_bool("TOURBOOK_MONITORING_ENABLED", True),
            retry_attempts=int(os.getenv("TOURBOOK_CONVERSION_RETRY_ATTEMPTS", "3")),
            retry_delay=float(os.getenv("TOURBOOK_CONVERSION_RETRY_DELAY", "2.0")),
            validation_delay=float(os.getenv("TOURBOOK_CONVERSION_VALIDATION_DELAY", "2.0")),
            validation_timeout=float(os.getenv("TOURBOOK_CONVERSION_VALIDATION_TIMEOUT", "30.0")),
            accuracy_check_interval=float(os.getenv("TOURBOOK_ACCURACY_CHECK_INTERVAL", "3600")),
            accuracy_window=float(os.getenv("TOURBOOK_ACCURACY_WINDOW", "3600")),
            alert_threshold=float(os.getenv("TOURBOOK_ACCURACY_ALERT_THRESHOLD", "0.95")),
            critical_threshold=float(os.getenv("TOURBOOK_ACCURACY_CRITICAL_THRESHOLD", "0.8")),
            max_retained_attempts=int(os.getenv("TOURBOOK_MAX_RETAINED_ATTEMPTS", "10000")),
        )


class SupabaseConfig(BaseModel):
    """Connection settings for the Supabase bookings table."""

    url: str | None = None
    api_key: str | None = Field(default=None, repr=False)
    table: str = "bookings"
    status: str = "CONFIRMED"  # Only confirmed bookings count as actual conversions
    timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        """Return True if URL and key are both set."""
        return bool(self.url and self.api_key)

    @classmethod
    def from_env(cls) -> SupabaseConfig:
        """Load configuration from environment variables."""
        return cls(
            url=os.getenv("SUPABASE_URL"),
            api_key=os.getenv("SUPABASE_ANON_KEY"),
            table=os.getenv("TOURBOOK_BOOKINGS_TABLE", "bookings"),
        )
