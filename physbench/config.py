"""
Configuration settings for physbench.

Uses Pydantic Settings to load environment variables for the database backend,
logging, data generation, retry policy and benchmark defaults.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("physbench", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(8, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Generation
    generation_batch_size: int = Field(10_000, alias="GENERATION_BATCH_SIZE", gt=0)
    generation_workers: int = Field(4, alias="GENERATION_WORKERS", gt=0)
    generation_seed: int = Field(42, alias="GENERATION_SEED")
    generation_scale: float = Field(0.01, alias="GENERATION_SCALE", gt=0)

    # Retry policy for transient backend failures
    retry_attempts: int = Field(5, alias="RETRY_ATTEMPTS", ge=1)
    retry_backoff_seconds: float = Field(0.5, alias="RETRY_BACKOFF_SECONDS", ge=0)
    retry_backoff_max_seconds: float = Field(10.0, alias="RETRY_BACKOFF_MAX_SECONDS", ge=0)

    # Timeouts
    statement_timeout_ms: int = Field(600_000, alias="STATEMENT_TIMEOUT_MS", ge=0)
    query_timeout_ms: int = Field(120_000, alias="QUERY_TIMEOUT_MS", ge=0)
    reservation_timeout_seconds: float = Field(300.0, alias="RESERVATION_TIMEOUT_SECONDS", gt=0)
    variant_lock_timeout_seconds: float = Field(60.0, alias="VARIANT_LOCK_TIMEOUT_SECONDS", gt=0)

    # Benchmark defaults
    benchmark_warmup: bool = Field(False, alias="BENCHMARK_WARMUP")
    benchmark_repetitions: int = Field(1, alias="BENCHMARK_REPETITIONS", ge=1)
    results_dir: str = Field("results", alias="RESULTS_DIR")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
