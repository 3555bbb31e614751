"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service
    service_name: str = "sandbox-bank"
    log_level: str = "INFO"

    # State
    snapshot_path: str | None = None  # Imported on startup, exported on shutdown
    seed_defaults: bool = True
    confirm_similar_transfers: bool = False

    # HTTP Client
    http_timeout_seconds: float = 5.0
    client_max_retries: int = 3
    client_backoff_base: float = 0.2
    client_backoff_multiplier: float = 2.0
    client_backoff_max: float = 5.0
    client_backoff_jitter: float = 0.1


settings = Settings()
