from celery import Celery
from .config import settings


celery_app = Celery(
    "reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or None,
)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    task_default_queue=settings.CELERY_QUEUE,
    timezone="UTC",
    enable_utc=True,
    include=["teleconsult.reminders.tasks"],
)

# Celery Beat schedule for the due-reminder poller
celery_app.conf.beat_schedule = {
    "process-due-reminders": {
        "task": "reminders.process_due",
        "schedule": settings.SCHEDULER_SCAN_INTERVAL_SECONDS,
        # A tick that has not started before the next one is due is dropped
        "options": {"expires": settings.SCHEDULER_SCAN_INTERVAL_SECONDS},
    },
}
