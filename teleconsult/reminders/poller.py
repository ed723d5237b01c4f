import logging
import os
import socket
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from teleconsult.utils.timezone import utcnow
from .config import settings
from .constants import ReminderStatus
from .metrics import poller_errors_total, poller_ticks_total, reminders_claimed_total
from .processor import ReminderProcessor
from .repository import claim_due_reminders, update_reminder_status
from .schemas import PollSummary

logger = logging.getLogger(__name__)


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def poll_due_reminders(
    db: Session,
    processor: Optional[ReminderProcessor] = None,
    now: Optional[datetime] = None,
    worker_id: Optional[str] = None,
    batch_size: Optional[int] = None,
    lease_seconds: Optional[int] = None,
) -> PollSummary:
    """
    One poller tick: claim due reminders and process them one at a time.
    Never raises; a failing reminder is logged and the batch continues.
    A reminder whose lease was lost to another worker is skipped, not sent.
    """
    summary = PollSummary()
    now = now or utcnow()
    worker_id = worker_id or default_worker_id()
    lease_seconds = lease_seconds or settings.CLAIM_LEASE_SECONDS
    processor = processor or ReminderProcessor(db, lease_seconds=lease_seconds)
    poller_ticks_total.inc()
    logger.debug("Processing due reminders")

    try:
        due = claim_due_reminders(
            db,
            now,
            worker_id=worker_id,
            lease_seconds=lease_seconds,
            limit=batch_size or settings.SCHEDULER_BATCH_SIZE,
        )
    except Exception as e:
        db.rollback()
        poller_errors_total.inc()
        logger.error(f"Error querying due reminders: {e!r}")
        return summary

    summary.claimed = len(due)
    reminders_claimed_total.inc(len(due))
    logger.info(f"Found {len(due)} due reminders")

    for reminder in due:
        reminder_id = reminder.id
        try:
            status = processor.process_reminder(reminder)
        except Exception as e:
            db.rollback()
            summary.errors += 1
            poller_errors_total.inc()
            logger.exception(f"Unhandled error processing reminder {reminder_id}: {e!r}")
            _mark_failed_quietly(db, reminder_id, worker_id)
            continue
        if status is None:
            summary.skipped += 1
        elif status == ReminderStatus.SENT:
            summary.sent += 1
        elif status == ReminderStatus.FAILED:
            summary.failed += 1
        elif status == ReminderStatus.CANCELLED:
            summary.cancelled += 1

    logger.info(
        f"Reminder tick done | claimed={summary.claimed} sent={summary.sent} failed={summary.failed} "
        f"cancelled={summary.cancelled} skipped={summary.skipped} errors={summary.errors}"
    )
    return summary


def _mark_failed_quietly(db: Session, reminder_id: int, worker_id: str) -> None:
    """Settle a reminder whose processing blew up; if even that fails the lease runs out and it is reclaimed."""
    try:
        update_reminder_status(db, reminder_id, ReminderStatus.FAILED, worker_id=worker_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Could not mark reminder {reminder_id} as FAILED: {e!r}")
