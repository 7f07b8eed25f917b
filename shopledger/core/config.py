"""Configuration management with pydantic-settings.

Provides type-safe configuration with environment variable validation.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Database ===
    database_url: str = Field(
        "sqlite:///./shopledger.db",
        description="Database URL (SQLite embedded store, Postgres supported)",
    )
    database_echo: bool = Field(False, description="Echo SQL statements (debug)")

    # === Logging ===
    log_level: str = Field("INFO", description="Root log level")
    log_to_stdout: bool = Field(True, description="Emit JSON logs to stdout")
    log_file: str | None = Field(None, description="JSON log file path (None disables)")

    # === Platform fee model ===
    transaction_fee_rate: Decimal = Field(Decimal("0.065"), description="Transaction fee rate")
    payment_fee_rate: Decimal = Field(Decimal("0.04"), description="Payment processing rate")
    payment_fee_fixed: Decimal = Field(Decimal("0.20"), description="Fixed fee per order")
    ad_fee_rate: Decimal = Field(Decimal("0.15"), description="Promoted listing ad fee rate")

    # === Pricing ===
    margin_warning_threshold: Decimal = Field(
        Decimal("20"), description="Margin % below which a quote is flagged as warning"
    )

    # === Cost ledger ===
    cost_update_max_attempts: int = Field(
        3, description="Attempts for a cost update that loses a same-subject race"
    )
    cost_change_window_days: int = Field(30, description="Default cost trend window (days)")

    # === Statement import ===
    statement_import_source: str = Field(
        "etsy_statement", description="Source key used for period locks"
    )
    import_error_report_limit: int = Field(
        20, description="Maximum row errors echoed back per import batch"
    )

    @property
    def fee_rates_sum(self) -> Decimal:
        """Sum of all percentage-based platform fee rates."""
        return self.transaction_fee_rate + self.payment_fee_rate + self.ad_fee_rate


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises:
        RuntimeError: If environment variables fail validation.

    """
    try:
        return Settings()
    except ValidationError as e:
        bad_fields = [str(error["loc"][0]).upper() for error in e.errors() if error["loc"]]
        error_msg = (
            f"Configuration error: invalid environment variables: "
            f"{', '.join(bad_fields)}\n"
            f"Please fix them in .env file or the process environment."
        )
        raise RuntimeError(error_msg) from e


__all__ = ["Settings", "get_settings"]
