import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from teleconsult.models.consultation import ConsultationStatus
from teleconsult.utils.timezone import utcnow
from .config import settings
from .constants import ReminderStatus
from .delivery import DeliveryAdapter, summarize_failures
from .metrics import reminders_processed_total, reminders_skipped_total
from .models import ConsultationReminder
from .repository import record_reminder_sent, renew_claim, update_reminder_status

logger = logging.getLogger(__name__)


class ReminderProcessor:
    """
    Per-reminder state machine: revalidate, deliver, record.

    PENDING/IN_PROGRESS -> CANCELLED  consultation no longer SCHEDULED or has no date
                        -> SENT       delivery returned (recipient failures included)
                        -> FAILED     delivery raised

    A claimed reminder is only delivered while its worker still holds the
    lease; otherwise process_reminder returns None and leaves the row alone.
    """

    def __init__(
        self,
        db: Session,
        adapter: Optional[DeliveryAdapter] = None,
        clock: Callable[[], datetime] = utcnow,
        lease_seconds: Optional[int] = None,
    ):
        self.db = db
        self.adapter = adapter or DeliveryAdapter(db)
        self.clock = clock
        self.lease_seconds = lease_seconds or settings.CLAIM_LEASE_SECONDS

    def process_reminder(self, reminder: ConsultationReminder) -> Optional[ReminderStatus]:
        logger.info(
            f"Processing reminder {reminder.id} of type {reminder.type} for consultation {reminder.consultation_id}"
        )
        worker_id = reminder.claimed_by
        if not self._hold_claim(reminder, worker_id):
            logger.warning(f"Reminder {reminder.id} is no longer claimed by {worker_id}, skipping")
            reminders_skipped_total.inc()
            return None

        consultation = reminder.consultation

        if consultation is None or consultation.status != ConsultationStatus.SCHEDULED.value:
            logger.info(f"Consultation {reminder.consultation_id} is no longer scheduled, cancelling reminder")
            return self._finish(reminder, ReminderStatus.CANCELLED, worker_id=worker_id)

        if not consultation.scheduled_date:
            logger.info(f"Consultation {reminder.consultation_id} has no scheduled date, cancelling reminder")
            return self._finish(reminder, ReminderStatus.CANCELLED, worker_id=worker_id)

        try:
            outcome = self.adapter.send_reminder(reminder, reminder_id=reminder.id)
        except Exception as e:
            logger.error(f"Error processing reminder {reminder.id}: {e!r}")
            return self._finish(reminder, ReminderStatus.FAILED, worker_id=worker_id)

        if outcome.failed_recipients:
            logger.warning(
                f"Reminder {reminder.id} sent with failed recipients: {', '.join(summarize_failures(outcome))}"
            )

        sent_at = self.clock()
        status = self._finish(reminder, ReminderStatus.SENT, sent_at=sent_at, worker_id=worker_id)
        if status == ReminderStatus.SENT:
            if not record_reminder_sent(self.db, reminder.consultation_id, reminder.type, sent_at):
                logger.error(
                    f"Consultation {reminder.consultation_id} not found while updating reminders_sent "
                    f"for reminder {reminder.id}"
                )
        return status

    def _hold_claim(self, reminder: ConsultationReminder, worker_id: Optional[str]) -> bool:
        if worker_id is None:
            # Unclaimed rows are processed directly while still PENDING
            return reminder.status == ReminderStatus.PENDING.value
        return renew_claim(self.db, reminder.id, worker_id, now=self.clock(), lease_seconds=self.lease_seconds)

    def _finish(
        self,
        reminder: ConsultationReminder,
        status: ReminderStatus,
        sent_at: Optional[datetime] = None,
        worker_id: Optional[str] = None,
    ) -> ReminderStatus:
        if not update_reminder_status(self.db, reminder.id, status, sent_at=sent_at, worker_id=worker_id):
            # Another worker or a cancellation already settled this reminder
            logger.warning(f"Reminder {reminder.id} was no longer open, {status.value} not recorded")
            return ReminderStatus(self._current_status(reminder))
        reminders_processed_total.labels(outcome=status.value).inc()
        return status

    def _current_status(self, reminder: ConsultationReminder) -> str:
        self.db.refresh(reminder)
        return reminder.status
