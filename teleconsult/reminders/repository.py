from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy import select, update, and_, or_

from teleconsult.models.consultation import Consultation, Participant
from teleconsult.utils.timezone import to_utc_aware, utcnow
from .constants import ReminderStatus, ReminderType
from .models import ConsultationReminder
from .schemas import SentReminderFact


# Statuses a reminder may still leave; everything else is terminal
_OPEN_STATUSES = (ReminderStatus.PENDING.value, ReminderStatus.IN_PROGRESS.value)


def _with_consultation_graph(stmt):
    return stmt.options(
        joinedload(ConsultationReminder.consultation).joinedload(Consultation.owner),
        joinedload(ConsultationReminder.consultation)
        .selectinload(Consultation.participants)
        .joinedload(Participant.user),
    )


def create_reminder(
    db: Session, consultation_id: int, reminder_type: ReminderType, scheduled_for: datetime
) -> ConsultationReminder:
    reminder = ConsultationReminder(
        consultation_id=consultation_id,
        type=ReminderType(reminder_type).value,
        scheduled_for=to_utc_aware(scheduled_for),
        status=ReminderStatus.PENDING.value,
    )
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


def cancel_pending(db: Session, consultation_id: int) -> int:
    """Bulk PENDING -> CANCELLED for one consultation. Returns rows affected."""
    result = db.execute(
        update(ConsultationReminder)
        .where(ConsultationReminder.consultation_id == consultation_id)
        .where(ConsultationReminder.status == ReminderStatus.PENDING.value)
        .values(status=ReminderStatus.CANCELLED.value, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    db.commit()
    return result.rowcount or 0


def get_reminder(db: Session, reminder_id: int) -> Optional[ConsultationReminder]:
    return db.get(ConsultationReminder, reminder_id)


def list_consultation_reminders(db: Session, consultation_id: int) -> List[ConsultationReminder]:
    stmt = (
        select(ConsultationReminder)
        .where(ConsultationReminder.consultation_id == consultation_id)
        .order_by(ConsultationReminder.scheduled_for.asc(), ConsultationReminder.id.asc())
    )
    return list(db.execute(stmt).scalars())


def find_due_pending(db: Session, now: datetime, limit: int = 1000) -> List[ConsultationReminder]:
    """PENDING reminders whose fire-time has arrived, with consultation, owner and participants loaded."""
    stmt = _with_consultation_graph(
        select(ConsultationReminder)
        .where(ConsultationReminder.status == ReminderStatus.PENDING.value)
        .where(ConsultationReminder.scheduled_for <= to_utc_aware(now))
        .order_by(ConsultationReminder.scheduled_for.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).unique().scalars())


def _claimable(now: datetime):
    return or_(
        and_(
            ConsultationReminder.status == ReminderStatus.PENDING.value,
            ConsultationReminder.scheduled_for <= now,
        ),
        # Lease of a crashed or stalled worker has run out
        and_(
            ConsultationReminder.status == ReminderStatus.IN_PROGRESS.value,
            ConsultationReminder.lease_expires_at <= now,
        ),
    )


def claim_due_reminders(
    db: Session, now: datetime, worker_id: str, lease_seconds: int, limit: int = 1000
) -> List[ConsultationReminder]:
    """
    Claim due reminders for this worker with one conditional UPDATE per row.
    A row is only returned if this worker's update moved it to IN_PROGRESS,
    so two pollers never process the same reminder while the lease holds.
    """
    now = to_utc_aware(now)
    candidate_ids = list(
        db.execute(
            select(ConsultationReminder.id)
            .where(_claimable(now))
            .order_by(ConsultationReminder.scheduled_for.asc())
            .limit(limit)
        ).scalars()
    )
    lease_expires_at = now + timedelta(seconds=lease_seconds)
    claimed_ids: List[int] = []
    for reminder_id in candidate_ids:
        result = db.execute(
            update(ConsultationReminder)
            .where(ConsultationReminder.id == reminder_id)
            .where(_claimable(now))
            .values(
                status=ReminderStatus.IN_PROGRESS.value,
                claimed_by=worker_id,
                lease_expires_at=lease_expires_at,
                updated_at=now,
            )
            .execution_options(synchronize_session="fetch")
        )
        db.commit()
        if result.rowcount == 1:
            claimed_ids.append(reminder_id)
    if not claimed_ids:
        return []
    stmt = _with_consultation_graph(
        select(ConsultationReminder)
        .where(ConsultationReminder.id.in_(claimed_ids))
        .order_by(ConsultationReminder.scheduled_for.asc())
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).unique().scalars())


def renew_claim(
    db: Session, reminder_id: int, worker_id: str, now: datetime, lease_seconds: int
) -> bool:
    """
    Extend this worker's lease right before delivery. Fails when the lease
    has run out or another worker has reclaimed or settled the reminder.
    """
    now = to_utc_aware(now)
    result = db.execute(
        update(ConsultationReminder)
        .where(ConsultationReminder.id == reminder_id)
        .where(ConsultationReminder.status == ReminderStatus.IN_PROGRESS.value)
        .where(ConsultationReminder.claimed_by == worker_id)
        .where(ConsultationReminder.lease_expires_at > now)
        .values(lease_expires_at=now + timedelta(seconds=lease_seconds), updated_at=now)
        .execution_options(synchronize_session="fetch")
    )
    db.commit()
    return result.rowcount == 1


def update_reminder_status(
    db: Session,
    reminder_id: int,
    status: ReminderStatus,
    sent_at: Optional[datetime] = None,
    worker_id: Optional[str] = None,
) -> bool:
    """
    Move a reminder to `status`. Only PENDING / IN_PROGRESS rows are touched,
    which keeps terminal states immutable. With `worker_id`, an IN_PROGRESS
    row is only touched while that worker still holds the claim.
    Returns False if nothing changed.
    """
    status = ReminderStatus(status)
    values = {
        "status": status.value,
        "claimed_by": None,
        "lease_expires_at": None,
        "updated_at": utcnow(),
    }
    if status == ReminderStatus.SENT:
        values["sent_at"] = to_utc_aware(sent_at) if sent_at else utcnow()
    if worker_id is None:
        still_open = ConsultationReminder.status.in_(_OPEN_STATUSES)
    else:
        still_open = or_(
            ConsultationReminder.status == ReminderStatus.PENDING.value,
            and_(
                ConsultationReminder.status == ReminderStatus.IN_PROGRESS.value,
                ConsultationReminder.claimed_by == worker_id,
            ),
        )
    result = db.execute(
        update(ConsultationReminder)
        .where(ConsultationReminder.id == reminder_id)
        .where(still_open)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    db.commit()
    return result.rowcount == 1


def update_reminder_delivery_meta(
    db: Session,
    reminder_id: int,
    template_key: Optional[str],
    template_sid: Optional[str],
    send_status: Optional[str],
) -> None:
    db.execute(
        update(ConsultationReminder)
        .where(ConsultationReminder.id == reminder_id)
        .values(
            template_key=template_key,
            template_sid=template_sid,
            send_status=send_status,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session="fetch")
    )
    db.commit()


# --- Consultation ledger ---

def get_reminders_sent(db: Session, consultation_id: int) -> Optional[Dict[str, str]]:
    """Returns None when the consultation does not exist."""
    row = db.execute(
        select(Consultation.reminders_sent).where(Consultation.id == consultation_id)
    ).first()
    if row is None:
        return None
    return dict(row[0] or {})


def set_reminders_sent(db: Session, consultation_id: int, reminders_sent: Dict[str, str]) -> None:
    db.execute(
        update(Consultation)
        .where(Consultation.id == consultation_id)
        .values(reminders_sent=dict(reminders_sent))
        .execution_options(synchronize_session="fetch")
    )
    db.commit()


def record_reminder_sent(
    db: Session, consultation_id: int, reminder_type: ReminderType, sent_at: datetime
) -> bool:
    """
    Set reminders_sent[type] = sent_at under a row lock so concurrent
    processors for the same consultation do not overwrite each other.
    Returns False if the consultation no longer exists.
    """
    consultation = db.execute(
        select(Consultation)
        .where(Consultation.id == consultation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if consultation is None:
        db.rollback()
        return False
    ledger = dict(consultation.reminders_sent or {})
    # Retired types are kept under their stored name
    ledger[getattr(reminder_type, "value", reminder_type)] = to_utc_aware(sent_at).isoformat()
    consultation.reminders_sent = ledger
    db.commit()
    return True


def reminders_sent_ledger(db: Session, consultation_id: int) -> List[SentReminderFact]:
    """Typed ledger derived from SENT reminder rows (latest send per type)."""
    rows: Sequence[ConsultationReminder] = db.execute(
        select(ConsultationReminder)
        .where(ConsultationReminder.consultation_id == consultation_id)
        .where(ConsultationReminder.status == ReminderStatus.SENT.value)
        .where(ConsultationReminder.sent_at.isnot(None))
        .order_by(ConsultationReminder.sent_at.asc())
    ).scalars().all()
    latest: Dict[str, datetime] = {}
    for r in rows:
        latest[r.type] = to_utc_aware(r.sent_at)
    facts = []
    for type_value, sent_at in latest.items():
        try:
            facts.append(SentReminderFact(type=ReminderType(type_value), sent_at=sent_at))
        except ValueError:
            # Retired reminder type still present in history
            continue
    return facts
