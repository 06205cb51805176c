from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://localhost:5432/goaltracker"
    api_key: str | None = None
    log_level: str = "INFO"

    db_pool_size: int = 5
    db_echo: bool = False

    # Versioned writes: attempts before a ConcurrentModification is surfaced
    goal_save_max_attempts: int = 3

    # Goal-start weight seeding, run by the rq worker (python -m app.worker)
    redis_url: str = "redis://localhost:6379/0"
    seed_queue_name: str = "goal-seeding"
    seed_max_retries: int = 3
    seed_retry_interval: int = 30  # seconds
    seed_job_timeout: int = 60
    seed_note: str = "Auto-created for goal start"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
