"""
config.py – Centralised, validated application settings.

Uses pydantic-settings so every environment variable is:
  • Type-coerced (str, int, float, bool)
  • Range-checkable via Field/validator
  • Reported clearly on misconfiguration instead of failing deep in the pipeline

Usage
-----
>>> from flockwatch.common.config import settings
>>> print(settings.kafka_topic_raw)
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    All runtime configuration is pulled from environment variables (or .env).

    Sections
    --------
    kafka_*         – Kafka broker, topics, consumer group and delivery sizing
    postgres_*      – PostgreSQL connection parameters
    db_pool_*       – psycopg connection-pool sizing
    default_bird_*  – Fallbacks for houses with incomplete lifecycle data
    sim_*           – Synthetic telemetry simulation knobs
    log_level       – Root Python logging level (DEBUG / INFO / WARNING / ERROR)
    prometheus_port – Port on which each process exposes /metrics
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,      # KAFKA_TOPIC_RAW == kafka_topic_raw
        extra="ignore",
    )

    # Kafka
    kafka_bootstrap_servers: str = Field(
        default="localhost:19092",
        description="Comma-separated list of Kafka broker host:port pairs.",
    )
    kafka_topic_raw: str = Field(
        default="farm.telemetry.raw.v1",
        description="Topic on which house gateways publish sensor event batches.",
    )
    kafka_topic_invalid: str = Field(
        default="farm.telemetry.invalid.v1",
        description="Quarantine topic for messages that could not be parsed.",
    )
    kafka_consumer_group: str = Field(
        default="cg.flockwatch-ingest.v1",
        description="Consumer group used by the ingestion consumer.",
    )
    kafka_max_delivery_size: int = Field(
        default=100,
        ge=1,
        description="Maximum number of messages handed to the coordinator as one delivery.",
    )
    kafka_poll_timeout_s: float = Field(
        default=1.0,
        gt=0.0,
        description="Seconds consume() waits to fill a delivery before returning.",
    )

    # PostgreSQL
    postgres_host: str = Field(default="localhost")
    postgres_port: int = Field(default=55432, ge=1, le=65535)
    postgres_db: str = Field(default="flockwatch")
    postgres_user: str = Field(default="flockwatch_user")
    postgres_password: str = Field(default="flockwatch_pass")

    # Connection pool
    db_pool_min: int = Field(
        default=1,
        ge=1,
        description="Minimum number of idle connections kept alive in the pool.",
    )
    db_pool_max: int = Field(
        default=5,
        ge=1,
        description="Maximum number of connections the pool will open simultaneously.",
    )
    db_pool_timeout_s: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds to wait for a pooled connection before giving up.",
    )

    # House lifecycle fallbacks
    default_bird_age_days: int = Field(
        default=21,
        ge=0,
        description="Bird age used for threshold lookups when a house has no recorded age.",
    )

    # Simulation
    sim_house_count: int = Field(
        default=24,
        ge=1,
        description="Number of simulated poultry houses publishing telemetry.",
    )
    sim_messages_per_second: int = Field(
        default=20,
        ge=1,
        description="Target number of gateway messages published per second.",
    )
    sim_sleep_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Sleep between producer batch iterations (seconds).",
    )
    sim_violation_ratio: float = Field(
        default=0.05,
        ge=0.0,
        le=1.0,
        description="Fraction of simulated readings pushed outside comfortable ranges.",
    )
    sim_malformed_ratio: float = Field(
        default=0.01,
        ge=0.0,
        le=1.0,
        description="Fraction of simulated messages sent as unparseable bodies.",
    )

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Root Python logging level. One of: DEBUG, INFO, WARNING, ERROR, CRITICAL.",
    )
    prometheus_port: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="HTTP port on which each process exposes /metrics for Prometheus scraping.",
    )


# Module-level singleton – import this everywhere instead of instantiating Settings again.
settings = Settings()
