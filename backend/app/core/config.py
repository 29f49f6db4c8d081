from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str

    # CORS origins, comma-separated list
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    LOG_LEVEL: str = "INFO"

    # Redis / Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # Recurring invoice generation trigger
    RECURRING_CRON_SCHEDULE: str = "0 9 * * *"  # daily at 09:00
    CRON_TIMEZONE: str = "Asia/Kolkata"
    CRON_SECRET: str = ""  # empty disables the X-Cron-Secret check

    # Scheduled task runner
    TASK_LEASE_SECONDS: int = 900
    TASK_MAX_RETRIES: int = 3
    TASK_RETRY_DELAY_SECONDS: float = 1.0
    TASK_RETRY_BACKOFF: float = 2.0


settings = Settings()  # type: ignore[call-arg]
