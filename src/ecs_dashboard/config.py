"""Configuration module using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_CLUSTERS = [
    "kairos-pay-cluster-ecs-iac",
    "kairos-his-cluster-ecs-iac",
    "kairos-pas-cluster-ecs-iac",
    "kairos-fe-cluster-ecs-iac",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # AWS
    aws_region: str = "ap-southeast-3"
    aws_access_key_id: str | None = None  # Falls back to the default boto3 chain
    aws_secret_access_key: str | None = None
    aws_session_token: str | None = None

    # Clusters the dashboard may touch
    allowed_clusters: list[str] = DEFAULT_ALLOWED_CLUSTERS

    # Rate limiting: metrics queries are expensive, listing is cheap
    metrics_rate_limit_requests: int = 10
    metrics_rate_limit_window_seconds: float = 60.0
    metrics_rate_limit_block_seconds: float = 300.0
    metrics_rate_limit_max_violations: int = 3

    services_rate_limit_requests: int = 20
    services_rate_limit_window_seconds: float = 60.0
    services_rate_limit_block_seconds: float = 180.0
    services_rate_limit_max_violations: int = 3

    rate_limit_sweep_interval: int = 5  # minutes

    # Fan-out against the ECS API
    ecs_list_page_size: int = 100  # ListServices maximum
    ecs_describe_batch_size: int = 10  # DescribeServices maximum
    fanout_batch_delay: float = 0.1  # seconds between describe batches
    fanout_stagger_delay: float = 0.2  # seconds per cluster index
    enrichment_max_concurrency: int = 5
    enrichment_min_interval: float = 0.1
    aggregate_timeout_seconds: float | None = 30.0

    # Retry on AWS throttling
    remote_max_attempts: int = 4
    remote_retry_base_delay: float = 0.5
    remote_retry_max_delay: float = 8.0
    remote_retry_jitter: float = 0.25

    # Logging
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["*"]

    # Security
    api_key: str | None = None  # Optional API authentication


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function for quick access
settings = get_settings()
