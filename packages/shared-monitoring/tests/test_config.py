"""Tests for monitoring configuration."""

import os

import pytest
from pydantic import ValidationError
from tourbook.monitoring import MonitorConfig, SupabaseConfig


class TestMonitorConfig:
    """Test MonitorConfig model."""

    def test_defaults(self):
        config = MonitorConfig()

        assert config.monitoring_enabled is True
        assert config.retry_attempts == 3
        assert config.retry_delay == 2.0
        assert config.validation_delay == 2.0
        assert config.validation_timeout == 30.0
        assert config.accuracy_check_interval == 3600
        assert config.alert_threshold == 0.95
        assert config.critical_threshold == 0.8
        assert config.max_retained_attempts == 10_000

    def test_rejects_zero_retry_attempts(self):
        with pytest.raises(ValidationError):
            MonitorConfig(retry_attempts=0)

    def test_rejects_negative_delay(self):
        with pytest.raises(ValidationError):
            MonitorConfig(retry_delay=-1)

    def test_rejects_threshold_above_one(self):
        with pytest.raises(ValidationError):
            MonitorConfig(alert_threshold=1.5)

    def test_from_env_defaults(self, monkeypatch):
        for name in list(os.environ):
            if name.startswith("TOURBOOK_"):
                monkeypatch.delenv(name)

        assert MonitorConfig.from_env() == MonitorConfig()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TOURBOOK_MONITORING_ENABLED", "false")
        monkeypatch.setenv("TOURBOOK_CONVERSION_RETRY_ATTEMPTS", "5")
        monkeypatch.setenv("TOURBOOK_CONVERSION_VALIDATION_TIMEOUT", "10")
        monkeypatch.setenv("TOURBOOK_ACCURACY_ALERT_THRESHOLD", "0.9")
        monkeypatch.setenv("TOURBOOK_ACCURACY_CRITICAL_THRESHOLD", "0.7")

        config = MonitorConfig.from_env()

        assert config.monitoring_enabled is False
        assert config.retry_attempts == 5
        assert config.validation_timeout == 10.0
        assert config.alert_threshold == 0.9
        assert config.critical_threshold == 0.7

    @pytest.mark.parametrize("raw", ["1", "true", "YES", " on "])
    def test_from_env_truthy_flags(self, monkeypatch, raw):
        monkeypatch.setenv("TOURBOOK_MONITORING_ENABLED", raw)

        assert MonitorConfig.from_env().monitoring_enabled is True


class TestSupabaseConfig:
    """Test SupabaseConfig model."""

    def test_not_configured_by_default(self):
        assert SupabaseConfig().is_configured is False

    def test_configured(self):
        config = SupabaseConfig(url="https://example.supabase.co", api_key="anon-key")

        assert config.is_configured is True
        assert config.table == "bookings"
        assert config.status == "CONFIRMED"

    def test_api_key_hidden_from_repr(self):
        config = SupabaseConfig(url="https://example.supabase.co", api_key="secret-anon-key")

        assert "secret-anon-key" not in repr(config)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
        monkeypatch.setenv("TOURBOOK_BOOKINGS_TABLE", "tour_bookings")

        config = SupabaseConfig.from_env()

        assert config.url == "https://example.supabase.co"
        assert config.api_key == "anon-key"
        assert config.table == "tour_bookings"
