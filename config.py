"""
Configuration module for the telehealth coordination services.
Loads settings from environment variables (and an optional .env file).
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_host: str = Field(
        default="0.0.0.0",
        alias="APP_HOST",
        description="Host to bind the application"
    )
    app_port: int = Field(
        default=8000,
        alias="APP_PORT",
        description="Port to bind the application"
    )
    service_name: str = Field(
        default="telehealth-coordination",
        alias="SERVICE_NAME",
        description="Source name stamped on every published event"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    # Backends
    storage_backend: str = Field(
        default="memory",
        alias="STORAGE_BACKEND",
        description="Entity storage: 'memory' or 'cosmos'"
    )
    event_bus_backend: str = Field(
        default="memory",
        alias="EVENT_BUS_BACKEND",
        description="Event bus: 'memory' or 'redis'"
    )

    # Data Store Configuration
    cosmos_endpoint: str = Field(
        default="",
        alias="COSMOS_ENDPOINT",
        description="Azure Cosmos DB endpoint URL"
    )
    cosmos_database: str = Field(
        default="telehealth",
        alias="COSMOS_DATABASE",
        description="Azure Cosmos DB database name"
    )

    # Event Bus Configuration
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        alias="REDIS_URL",
        description="Redis URL used for the stream-based event bus"
    )
    max_delivery_attempts: int = Field(
        default=5,
        alias="MAX_DELIVERY_ATTEMPTS",
        description="Deliveries of one message before it is dead-lettered"
    )
    redelivery_idle_ms: int = Field(
        default=30000,
        alias="REDELIVERY_IDLE_MS",
        description="Idle time after which an unacknowledged message may be claimed by another consumer"
    )
    consumer_block_ms: int = Field(
        default=5000,
        alias="CONSUMER_BLOCK_MS",
        description="Blocking read timeout for stream consumers"
    )
    consumer_name: str = Field(
        default="",
        alias="CONSUMER_NAME",
        description="Stable consumer name within each group; defaults to SERVICE_NAME so a restart reclaims its own pending messages"
    )
    start_consumers: bool = Field(
        default=True,
        alias="START_CONSUMERS",
        description="Start event consumer tasks with the application"
    )

    # Business Rules
    eligibility_window_days: int = Field(
        default=3,
        alias="ELIGIBILITY_WINDOW_DAYS",
        description="Days after registration during which a patient may book"
    )
    session_url_base: str = Field(
        default="https://telemedicine.example.com/session/",
        alias="SESSION_URL_BASE",
        description="Prefix of the opaque session locator handed to participants"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


# Global settings instance
settings = Settings()
