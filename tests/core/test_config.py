"""Tests for configuration management."""

from decimal import Decimal

import pytest

from shopledger.core.config import Settings, get_settings


def test_settings_defaults(monkeypatch):
    """Fee model and ledger defaults apply when nothing is set."""
    for name in (
        "DATABASE_URL",
        "TRANSACTION_FEE_RATE",
        "PAYMENT_FEE_RATE",
        "AD_FEE_RATE",
        "PAYMENT_FEE_FIXED",
        "COST_UPDATE_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)

    s = Settings(_env_file=None)
    assert s.transaction_fee_rate == Decimal("0.065")
    assert s.payment_fee_rate == Decimal("0.04")
    assert s.payment_fee_fixed == Decimal("0.20")
    assert s.ad_fee_rate == Decimal("0.15")
    assert s.fee_rates_sum == Decimal("0.255")
    assert s.cost_update_max_attempts == 3
    assert s.database_url.startswith("sqlite:///")


def test_settings_loads_from_env(monkeypatch):
    """Environment variables override defaults (case-insensitive)."""
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./test.db")
    monkeypatch.setenv("ad_fee_rate", "0.12")
    monkeypatch.setenv("MARGIN_WARNING_THRESHOLD", "25")

    s = get_settings()
    assert s.database_url == "sqlite:///./test.db"
    assert s.ad_fee_rate == Decimal("0.12")
    assert s.margin_warning_threshold == Decimal("25")


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_invalid_env_raises_runtime_error(monkeypatch):
    """A value that fails validation is reported by variable name."""
    monkeypatch.setenv("COST_UPDATE_MAX_ATTEMPTS", "lots")

    with pytest.raises(RuntimeError) as exc_info:
        get_settings()

    assert "COST_UPDATE_MAX_ATTEMPTS" in str(exc_info.value)
