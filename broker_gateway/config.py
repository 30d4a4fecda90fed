"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./broker_gateway.db"

    # Service
    service_name: str = "broker-gateway"
    log_level: str = "INFO"

    # Credit check provider (simulated)
    provider_name: str = "Mock Provider"
    provider_min_delay_ms: int = 300
    provider_max_delay_ms: int = 900
    provider_completed_probability: float = 0.80
    provider_pending_probability: float = 0.15  # remainder fails
    provider_clean_probability: float = 0.30

    # Pending requests older than this are failed by the expiry sweep (None = never)
    pending_timeout_seconds: float | None = None
    pending_sweep_interval_seconds: float = 30.0

    # Risk analysis
    default_nominal_limit: float = 25_000.0

    # Notifications
    notification_window: int = 50
    replay_window_seconds: float = 1.0


settings = Settings()
