"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class LendingConfig(BaseSettings):
    """RT lending application configuration"""

    model_config = SettingsConfigDict(
        env_prefix="RT_LENDING_",
        env_file=".env",
        case_sensitive=False,
    )

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Spreadsheet sync configuration
    sync_url: str = ""  # Empty = disabled
    sync_timeout: float = 10.0
    sync_api_key: str = ""
    sync_queue_size: int = 1000
    bootstrap_remote_load: bool = True

    # Business rules configuration
    seed_demo_data: bool = True
    strict_transitions: bool = True
    currency_code: str = "IDR"

    @property
    def sync_enabled(self) -> bool:
        return bool(self.sync_url)


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
