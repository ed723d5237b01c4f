from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class ReminderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REMINDER_", env_file=".env", extra="ignore")

    # Celery configuration
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_QUEUE: str = "reminders"
    WORKER_CONCURRENCY: int = 1

    # Scheduling
    SCHEDULER_SCAN_INTERVAL_SECONDS: int = 60
    SCHEDULER_BATCH_SIZE: int = 500
    # Must exceed the worst-case time to deliver one reminder
    CLAIM_LEASE_SECONDS: int = 300

    # Twilio (SMS / WhatsApp). Unset credentials put the channel in mock mode.
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_SMS_FROM: Optional[str] = None
    TWILIO_WHATSAPP_FROM: Optional[str] = None
    SEND_TIMEOUT_SECONDS: float = 10.0

    # Metrics
    METRICS_ENABLED: bool = True


settings = ReminderSettings()
