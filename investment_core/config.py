"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict

from .currency import Currency


class InvestmentConfig(BaseSettings):
    """Investment engine configuration"""

    model_config = SettingsConfigDict(
        env_prefix="INVEST_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    database_path: str = "investment_core.db"  # ":memory:" selects in-memory storage
    database_timeout: float = 5.0  # Seconds to wait for the SQLite write lock

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    default_currency: str = "USDT"
    minimum_withdrawal: str = "10.00"
    withdrawal_fee: str = "0.00"
    payout_multiplier: str = "2"  # finalValueCap = principal * multiplier
    referral_bonus_rate: str = "0.05"  # Share of each referred investment

    # Scheduler configuration (UTC)
    scheduler_enabled: bool = True
    accrual_cron_hour: int = 0
    accrual_cron_minute: int = 5

    # Concurrency
    conflict_retries: int = 1

    @property
    def currency(self) -> Currency:
        return Currency.from_code(self.default_currency)

    @property
    def minimum_withdrawal_amount(self) -> Decimal:
        return Decimal(self.minimum_withdrawal)

    @property
    def withdrawal_fee_amount(self) -> Decimal:
        return Decimal(self.withdrawal_fee)

    @property
    def payout_multiplier_value(self) -> Decimal:
        return Decimal(self.payout_multiplier)

    @property
    def referral_bonus_rate_value(self) -> Decimal:
        return Decimal(self.referral_bonus_rate)


# Global configuration instance
config = InvestmentConfig()


def get_config() -> InvestmentConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> InvestmentConfig:
    """Reload configuration from environment"""
    global config
    config = InvestmentConfig()
    return config
