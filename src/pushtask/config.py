from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PUSHTASK_", env_file=".env", extra="ignore", frozen=True
    )

    app_name: str = "pushtask"

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Processing endpoint the delivery backend pushes tasks to
    processor_url: str = "http://localhost:8080/pushtask/run"
    secret: str | None = None

    # Jobs
    default_queue: str = "default"
    max_retries: int = 25
    dispatch_deadline: int = 600  # 10 minutes

    # Unique jobs
    lock_ttl: int = 600  # 10 minutes
    lock_provisional_ttl: int = 3
    default_conflict_strategy: str = "reject"
    reschedule_delay: int = 5

    # Job arguments larger than this many kilobytes are kept in the store
    # and referenced from the payload (None keeps every payload inline)
    payload_storage_threshold: int | None = None

    # Store mutex
    store_lock_duration: int = 2
    store_lock_wait: float = 0.03
    store_lock_timeout: float | None = 10.0  # None waits forever

    # Observability
    log_level: str = "INFO"
    log_json: bool = True


settings = Settings()
