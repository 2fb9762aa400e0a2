"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class EmiLedgerConfig(BaseSettings):
    """EMI ledger service configuration"""

    model_config = SettingsConfigDict(
        env_prefix="EMI_LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = "sqlite:///emi_ledger.db"  # or memory:// for tests

    # Loan engine configuration
    default_currency: str = "INR"
    schedule_safety_limit_months: int = 1200  # Upper bound on schedule rows

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Feature flags
    enable_audit_logging: bool = True


# Global configuration instance
config = EmiLedgerConfig()


def get_config() -> EmiLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> EmiLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = EmiLedgerConfig()
    return config
