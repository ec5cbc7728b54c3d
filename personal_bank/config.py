"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import Dict, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .currency import DEFAULT_EXCHANGE_RATES, REFERENCE_CURRENCY, ExchangeRateTable


class BankConfig(BaseSettings):
    """Personal bank configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BANK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    storage_backend: Literal["json", "memory"] = "json"
    data_file: str = "accounts.json"

    # Currency configuration
    reference_currency: Literal["GBP"] = REFERENCE_CURRENCY
    exchange_rates: Dict[str, Decimal] = Field(
        default_factory=lambda: dict(DEFAULT_EXCHANGE_RATES)
    )

    # Login lockout
    max_failed_login_attempts: int = Field(default=3, ge=1)
    lockout_seconds: float = Field(default=60.0, ge=0)

    # Logging configuration
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @field_validator("exchange_rates")
    @classmethod
    def _check_rates(cls, rates: Dict[str, Decimal]) -> Dict[str, Decimal]:
        # Same checks the rate table applies; fail at startup, not on first deposit
        ExchangeRateTable(rates)
        return rates

    def rate_table(self) -> ExchangeRateTable:
        """Build the read-only exchange rate table from settings"""
        return ExchangeRateTable(self.exchange_rates, self.reference_currency)


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
