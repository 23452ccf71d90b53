"""
Shared Configuration - Relay Settings and Environment Management
Centralized configuration management for the dispute webhook relay.

This module provides:
- Environment-based configuration
- Type-safe settings with validation
- Chain selection
- Poller and webhook delivery tuning
- Logging configuration
"""
from functools import lru_cache
from typing import Annotated, Optional, List, Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from enum import Enum


CHAIN_IDS = {
    "base": 8453,
    "base-sepolia": 84532,
}


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ChainSettings(BaseSettings):
    """Chain the tracked disputes live on."""

    name: Literal["base", "base-sepolia"] = Field("base-sepolia")
    chain_id: Optional[int] = Field(None, description="Overrides the id derived from name")

    model_config = SettingsConfigDict(env_prefix="RELAY_CHAIN_", env_file=".env", extra="ignore")

    @property
    def resolved_chain_id(self) -> int:
        """Chain id stamped on every emitted event."""
        if self.chain_id is not None:
            return self.chain_id
        return CHAIN_IDS[self.name]


class PollerSettings(BaseSettings):
    """Polling loop configuration."""

    interval_seconds: float = Field(30.0)
    fetch_timeout_seconds: float = Field(10.0)
    max_concurrent_polls: int = Field(5)
    entity_ids: Annotated[List[int], NoDecode] = Field(default_factory=list)

    model_config = SettingsConfigDict(env_prefix="RELAY_POLLER_", env_file=".env", extra="ignore")

    @field_validator("interval_seconds", "fetch_timeout_seconds")
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Intervals and timeouts must be positive")
        return v

    @field_validator("max_concurrent_polls")
    @classmethod
    def validate_concurrency(cls, v):
        if v < 1:
            raise ValueError("At least one concurrent poll is required")
        return v

    @field_validator("entity_ids", mode="before")
    @classmethod
    def parse_entity_ids(cls, v):
        if isinstance(v, str):
            return [int(item.strip()) for item in v.split(",") if item.strip()]
        if isinstance(v, int):
            return [v]
        return v


class DeliverySettings(BaseSettings):
    """Webhook delivery configuration."""

    max_retries: int = Field(3, description="Total HTTP attempts per delivery")
    retry_delay_seconds: float = Field(1.0, description="Initial backoff, doubled per attempt")
    timeout_seconds: float = Field(10.0, description="Per-attempt request timeout")
    max_concurrent_deliveries: int = Field(10)
    store_history: bool = Field(True)
    max_history_entries: int = Field(1000)
    user_agent: str = Field("Dispute-Webhook-Relay/1.0")

    model_config = SettingsConfigDict(env_prefix="RELAY_DELIVERY_", env_file=".env", extra="ignore")

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v):
        if not 1 <= v <= 10:
            raise ValueError("Max retries must be between 1 and 10")
        return v

    @field_validator("retry_delay_seconds")
    @classmethod
    def validate_retry_delay(cls, v):
        if v < 0:
            raise ValueError("Retry delay cannot be negative")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if not 0 < v <= 300:
            raise ValueError("Timeout must be between 0 and 300 seconds")
        return v

    @field_validator("max_concurrent_deliveries", "max_history_entries")
    @classmethod
    def validate_at_least_one(cls, v):
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v


class MonitoringSettings(BaseSettings):
    """Monitoring and logging configuration settings."""

    log_level: LogLevel = Field(LogLevel.INFO)
    log_format: Literal["json", "colored", "standard"] = Field("json")
    log_file: Optional[str] = Field(None)

    model_config = SettingsConfigDict(env_prefix="RELAY_", env_file=".env", extra="ignore")


class Settings(BaseSettings):
    """Main relay settings."""

    app_name: str = Field("Dispute Webhook Relay")
    app_version: str = Field("1.0.0")

    chain: ChainSettings = Field(default_factory=ChainSettings)
    poller: PollerSettings = Field(default_factory=PollerSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    model_config = SettingsConfigDict(env_prefix="RELAY_", env_file=".env", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Get relay settings, loaded once per process."""
    return Settings()


def get_config_summary(settings: Optional[Settings] = None) -> dict:
    """
    Get a summary of the current configuration (without sensitive data).

    Returns:
        Dictionary with configuration summary
    """
    settings = settings or get_settings()
    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "chain": {
            "name": settings.chain.name,
            "chain_id": settings.chain.resolved_chain_id,
        },
        "poller": {
            "interval_seconds": settings.poller.interval_seconds,
            "tracked_entities": len(settings.poller.entity_ids),
        },
        "delivery": {
            "max_retries": settings.delivery.max_retries,
            "retry_delay_seconds": settings.delivery.retry_delay_seconds,
            "timeout_seconds": settings.delivery.timeout_seconds,
            "store_history": settings.delivery.store_history,
        },
        "monitoring": {
            "log_level": settings.monitoring.log_level,
            "log_format": settings.monitoring.log_format,
        },
    }
