"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class BackofficeConfig(BaseSettings):
    """Back-office console configuration"""

    # Database configuration
    database_url: str = "sqlite:///backoffice.db"  # memory://, sqlite:///path or postgresql://...

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8095
    api_workers: int = 1

    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 8
    jwt_algorithm: str = "HS256"
    auth_enabled: bool = True
    password_min_length: int = 8

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Listing configuration
    default_page_size: int = 15
    max_page_size: int = 100

    # Export caps
    export_default_limit: int = 500
    export_max_limit: int = 1000

    # Presentation
    date_display_format: str = "%d/%m/%Y %H:%M"

    # KYC attributes that must be non-empty for a record to count as complete
    kyc_required_attributes: List[str] = ["first_name", "last_name", "date_of_birth", "id_number"]

    class Config:
        env_prefix = "BACKOFFICE_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BackofficeConfig()


def get_config() -> BackofficeConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BackofficeConfig:
    """Reload configuration from environment"""
    global config
    config = BackofficeConfig()
    return config
