"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./bunq_gateway.db"
    log_level: str = "INFO"
    public_base_url: str = "http://localhost:8000"  # Used for callback and return URLs

    provider: str = "mock"  # "mock" or "bunq"
    bunq_sandbox_url: str = "https://public-api.sandbox.bunq.com/v1"
    bunq_production_url: str = "https://api.bunq.com/v1"
    bunq_http_timeout: float = 30.0
    bunq_device_description: str = "bunq checkout gateway"
    bunq_client_public_key: str = ""  # PEM, sent once during installation

    mock_latency_ms: int = 0
    mock_failure_rate: float = 0.0
    mock_hosted_page_url: str = "https://bunq.me/t"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
