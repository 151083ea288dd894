"""Tests for configuration settings."""

import structlog

from billdesk.config import configure_logging, get_settings


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.ledger_username == "test@example.com"
    assert settings.ledger_password.get_secret_value() == "testpassword"
    assert settings.ledger_api_key.get_secret_value() == "anon-test-key"
    assert settings.edit_yield_seconds == 0


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    get_settings.cache_clear()
    settings = get_settings()

    assert settings.ledger_api_url == "http://localhost:54321"
    assert settings.ledger_timeout == 30.0
    assert settings.ledger_max_retries == 3
    assert settings.payment_revalidate is True
    assert settings.payment_sync_to_quickbooks is False
    assert settings.default_payment_method == "ACH"
    assert settings.ws_port == 8765


def test_settings_override(monkeypatch):
    monkeypatch.setenv("PAYMENT_SYNC_TO_QUICKBOOKS", "true")
    monkeypatch.setenv("LEDGER_MAX_RETRIES", "5")
    get_settings.cache_clear()

    try:
        settings = get_settings()
        assert settings.payment_sync_to_quickbooks is True
        assert settings.ledger_max_retries == 5
    finally:
        get_settings.cache_clear()


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    get_settings.cache_clear()

    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_configure_logging_json():
    configure_logging(level="DEBUG", format="json")

    assert structlog.is_configured()
    structlog.reset_defaults()
