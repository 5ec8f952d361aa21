"""
Configuration management for the analytics engine
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Agency Analytics Engine"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4

    # Database
    database_url: str = "sqlite:///./analytics_engine.db"

    # Remote platform functions (one isolated function per platform)
    functions_base_url: str = "http://localhost:54321/functions/v1"
    functions_service_key: str = ""
    adapter_timeout_seconds: float = 15.0

    # Identity collaborator (bearer token validation)
    identity_url: str = "http://localhost:54321"
    identity_anon_key: str = ""
    identity_timeout_seconds: float = 10.0

    # Analytics cache
    cache_freshness_minutes: int = 15
    default_date_range_days: int = 30

    # Integration sync
    sync_batch_size: int = 5
    sync_batch_delay_seconds: float = 0.1
    sync_default_frequency: str = "daily"  # hourly, daily, weekly
    sync_schedule_cron: str = "0 3 * * *"

    # Health monitor
    health_check_timeout_seconds: float = 5.0
    health_degraded_latency_ms: int = 3000
    continuous_failure_minutes: int = 5
    alert_cooldown_minutes: int = 15
    health_retention_days: int = 30
    health_poll_interval_minutes: int = 1

    # Alerts
    alert_email_from: Optional[str] = None
    alert_email_to: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    slack_webhook_url: Optional[str] = None
    status_page_url: str = "http://localhost:8000/monitor/status"

    # Feature Flags
    enable_scheduler: bool = True
    enable_health_alerts: bool = True
    enable_scheduled_sync: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
