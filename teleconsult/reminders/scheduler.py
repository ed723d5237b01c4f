import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teleconsult.utils.timezone import to_utc_aware, utcnow
from .constants import DEFAULT_REMINDER_TYPES, REMINDER_TIMING, ReminderType
from .exceptions import SchedulingError
from .metrics import reminders_cancelled_total, reminders_scheduled_total
from .models import ConsultationReminder
from .repository import cancel_pending, create_reminder, list_consultation_reminders, reminders_sent_ledger
from .schemas import ConsultationReminders, ReminderConfig, ReminderRead

logger = logging.getLogger(__name__)


class ReminderService:
    """Scheduling entry points called by the consultation booking workflow."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def schedule_reminders(
        self,
        consultation_id: int,
        scheduled_date: datetime,
        reminder_types: Optional[Iterable[ReminderType]] = None,
    ) -> List[ConsultationReminder]:
        """
        Replace the consultation's pending reminders with one per type whose
        fire-time (scheduled_date minus the type's offset) is still ahead.
        Safe to call on every create and reschedule.
        """
        requested = reminder_types if reminder_types is not None else DEFAULT_REMINDER_TYPES
        # At most one pending reminder per type
        types = list(dict.fromkeys(ReminderType(t) for t in requested))
        logger.info(f"Scheduling reminders for consultation {consultation_id}")

        self.cancel_reminders(consultation_id)

        scheduled_date = to_utc_aware(scheduled_date)
        now = self.clock()
        if scheduled_date is None or scheduled_date <= now:
            logger.info(f"Consultation {consultation_id} date is in the past, not scheduling reminders")
            return []

        created: List[ConsultationReminder] = []
        try:
            for reminder_type in types:
                reminder_time = scheduled_date - REMINDER_TIMING[reminder_type]
                if reminder_time <= now:
                    logger.info(f"Reminder time for {reminder_type.value} is in the past, skipping")
                    continue
                reminder = create_reminder(self.db, consultation_id, reminder_type, reminder_time)
                reminders_scheduled_total.inc()
                created.append(reminder)
                logger.info(
                    f"Scheduled {reminder_type.value} reminder for consultation {consultation_id} "
                    f"at {reminder_time.isoformat()}"
                )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error scheduling reminders for consultation {consultation_id}: {e}")
            raise SchedulingError(consultation_id, "failed to create reminders") from e
        return created

    def cancel_reminders(self, consultation_id: int) -> int:
        """Cancel every PENDING reminder of the consultation. Idempotent."""
        logger.info(f"Cancelling reminders for consultation {consultation_id}")
        try:
            cancelled = cancel_pending(self.db, consultation_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error cancelling reminders for consultation {consultation_id}: {e}")
            raise SchedulingError(consultation_id, "failed to cancel reminders") from e
        if cancelled:
            reminders_cancelled_total.inc(cancelled)
        return cancelled

    def apply_reminder_config(
        self, consultation_id: int, scheduled_date: Optional[datetime], config: ReminderConfig
    ) -> List[ConsultationReminder]:
        if not config.enabled or scheduled_date is None:
            self.cancel_reminders(consultation_id)
            return []
        return self.schedule_reminders(consultation_id, scheduled_date, config.types)

    def get_consultation_reminders(self, consultation_id: int) -> ConsultationReminders:
        reminders = list_consultation_reminders(self.db, consultation_id)
        return ConsultationReminders(
            consultation_id=consultation_id,
            reminders=[ReminderRead.model_validate(r) for r in reminders],
            reminders_sent=reminders_sent_ledger(self.db, consultation_id),
        )
