from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "invoices"
    db_username: str = "invoices"
    db_password: str = "secret"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    worker_poll_interval_seconds: int = 5
    worker_batch_size: int = 10

    storage_engine: str = "local"
    storage_root: str = "/app/files"
    storage_bucket: str = "invoices"

    extraction_provider: str = "openai"
    extraction_openai_api_key: str = ""
    extraction_openai_base_url: str = ""
    extraction_model_name: str = "gpt-4o-mini"
    recognition_model_name: str = "gpt-4o-mini"
    extraction_timeout_seconds: int = 30
    extraction_temperature: float = 0.0
    extraction_max_attempts: int = 3

    notification_provider: str = "log"
    notification_webhook_url: str = ""
    notification_timeout_seconds: int = 10

    payment_tolerance: float = 0.01
    default_currency: str = "EUR"
