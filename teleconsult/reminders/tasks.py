from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from teleconsult.db.session import SessionLocal
from .celery_app import celery_app
from .poller import poll_due_reminders

logger = get_task_logger(__name__)


@celery_app.task(name="reminders.process_due", ignore_result=True)
def process_due_reminders_task() -> dict:
    """Celery beat entry point for the due-reminder poller. Returns the tick summary."""
    db: Session = SessionLocal()
    try:
        summary = poll_due_reminders(db)
    finally:
        db.close()
    logger.info(f"process_due summary: {summary.model_dump()}")
    return summary.model_dump()
