# checkcx/core/config.py
import os
from typing import Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from checkcx.core.constants import (
    DEFAULT_RETENTION_DAYS,
    DEGRADED_THRESHOLD_MS,
    MIN_RETENTION_DAYS,
    MAX_RETENTION_DAYS,
)

load_dotenv()


class Settings(BaseSettings):
    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_service_key: str = os.getenv("SUPABASE_SERVICE_KEY", "")
    db_schema: str = os.getenv("DB_SCHEMA", "public")

    # API Configuration
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    debug: bool = os.getenv("DEBUG", "False").lower() == "true"

    # Project Configuration
    project_name: str = "check-cx"
    project_version: str = "0.1.0"

    # Poller Configuration
    poller_enabled: bool = os.getenv("POLLER_ENABLED", "True").lower() == "true"
    check_poll_interval_seconds: int = int(os.getenv("CHECK_POLL_INTERVAL_SECONDS", "60"))
    history_retention_days: int = int(os.getenv("HISTORY_RETENTION_DAYS", str(DEFAULT_RETENTION_DAYS)))

    # Probe Configuration
    degraded_threshold_ms: int = int(os.getenv("DEGRADED_THRESHOLD_MS", str(DEGRADED_THRESHOLD_MS)))
    ping_timeout_seconds: float = float(os.getenv("PING_TIMEOUT_SECONDS", "5"))
    check_user_agent: str = os.getenv("CHECK_USER_AGENT", "check-cx/0.1.0")

    # Monitoring Configuration
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Redis Configuration (dashboard payload cache)
    redis_enabled: bool = os.getenv("REDIS_ENABLED", "False").lower() == "true"
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: Optional[str] = os.getenv("REDIS_PASSWORD")
    redis_max_connections: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "10"))
    cache_ttl_dashboard: int = int(os.getenv("CACHE_TTL_DASHBOARD", "15"))  # seconds

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("check_poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v):
        if v < 15 or v > 600:
            raise ValueError("CHECK_POLL_INTERVAL_SECONDS must be between 15 and 600 seconds")
        return v

    @field_validator("history_retention_days")
    @classmethod
    def clamp_retention_days(cls, v):
        return max(MIN_RETENTION_DAYS, min(MAX_RETENTION_DAYS, v))

    @field_validator("degraded_threshold_ms")
    @classmethod
    def validate_degraded_threshold(cls, v):
        if v < 0:
            raise ValueError("DEGRADED_THRESHOLD_MS cannot be negative")
        return v

    @field_validator("redis_max_connections")
    @classmethod
    def validate_redis_max_connections(cls, v):
        if v < 1 or v > 100:
            raise ValueError("REDIS_MAX_CONNECTIONS must be between 1 and 100")
        return v


settings = Settings()
