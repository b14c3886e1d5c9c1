"""
FieldSync Configuration Module
Centralized settings management using Pydantic
"""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")

    # Storage Configuration
    data_dir: str = Field(default="./data", description="Directory holding work order documents")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    audit_log_path: str = Field(
        default="./logs/reconciliation_log.jsonl",
        description="Reconciliation attempt trail"
    )

    # Auth Configuration
    jwt_secret_key: str = Field(default="fieldsync-dev-secret", description="Bearer token signing key")
    jwt_algorithm: str = Field(default="HS256", description="Bearer token algorithm")

    # Reconciliation Configuration (workflow-automation webhook)
    reconciliation_webhook_url: Optional[str] = Field(default=None, description="System of record webhook URL")
    reconciliation_webhook_secret: Optional[str] = Field(default=None, description="Shared secret header value")
    reconciliation_timeout_seconds: float = Field(default=10.0, description="Per-request HTTP timeout in seconds")
    reconciliation_deadline_seconds: float = Field(default=30.0, description="Upper bound on one delivery attempt")

    # Retry policy for unreconciled work orders
    retry_max_attempts: int = Field(default=3, ge=1, description="Delivery attempts per work order per sweep")
    retry_base_delay_seconds: float = Field(default=1.0, description="Base backoff delay in seconds")

    # Scheduling feed
    use_mock_schedule: bool = Field(default=False, description="Serve the built-in mock schedule")
    schedule_feed_path: Optional[str] = Field(default=None, description="JSON export of the scheduling feed")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
