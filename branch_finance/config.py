"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class BranchFinanceConfig(BaseSettings):
    """Branch finance engine configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    sqlite_path: str = "branch_finance.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    default_currency: str = "ARS"
    default_payment_origin: str = "bank_transfer"

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "BRANCH_FINANCE_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BranchFinanceConfig()


def get_config() -> BranchFinanceConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BranchFinanceConfig:
    """Reload configuration from environment"""
    global config
    config = BranchFinanceConfig()
    return config
