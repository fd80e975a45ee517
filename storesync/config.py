from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sqlite_path: str = "data/store.db"
    log_path: str = "logs/storesync.log"
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cloud_api_url: str = "https://api.example.com"
    cloud_api_key: str = ""
    cloud_timeout_sec: float = 30.0
    cloud_health_timeout_sec: float = 5.0
    cloud_heartbeat_timeout_sec: float = 10.0
    cloud_max_retries: int = 3
    cloud_retry_base_delay_sec: float = 1.0
    client_version: str = "0.1.0"
    sync_enabled: bool = True
    sync_interval_sec: int = 60
    sync_batch_size: int = 100
    sync_max_attempts: int = 5
    sync_retry_base_delay_sec: float = 1.0
    sync_retry_max_delay_sec: float = 60.0
    sync_retry_jitter: float = 0.3
    stuck_backoff_minutes: int = 2
    heartbeat_interval_sec: int = 300
    stale_run_minutes: int = 30
    day_close_expire_minutes: int = 60


settings = Settings()
