from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from teleconsult.db.session import get_db
from teleconsult.models.consultation import Consultation
from .exceptions import SchedulingError
from .scheduler import ReminderService
from .schemas import CancelResult, ConsultationReminders, ScheduleRequest


router = APIRouter()


def _get_consultation_or_404(db: Session, consultation_id: int) -> Consultation:
    consultation = db.get(Consultation, consultation_id)
    if consultation is None:
        raise HTTPException(status_code=404, detail="Consultation not found")
    return consultation


@router.post("/consultations/{consultation_id}/schedule", response_model=ConsultationReminders)
def schedule_consultation_reminders(consultation_id: int, payload: ScheduleRequest, db: Session = Depends(get_db)):
    """Called by the booking workflow on consultation create and reschedule."""
    _get_consultation_or_404(db, consultation_id)
    service = ReminderService(db)
    try:
        service.schedule_reminders(consultation_id, payload.scheduled_date, payload.types)
    except SchedulingError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return service.get_consultation_reminders(consultation_id)


@router.post("/consultations/{consultation_id}/cancel", response_model=CancelResult)
def cancel_consultation_reminders(consultation_id: int, db: Session = Depends(get_db)):
    """Called by the booking workflow when a consultation is cancelled or loses its date."""
    _get_consultation_or_404(db, consultation_id)
    try:
        cancelled = ReminderService(db).cancel_reminders(consultation_id)
    except SchedulingError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return CancelResult(consultation_id=consultation_id, cancelled=cancelled)


@router.get("/consultations/{consultation_id}", response_model=ConsultationReminders)
def get_consultation_reminders(consultation_id: int, db: Session = Depends(get_db)):
    _get_consultation_or_404(db, consultation_id)
    return ReminderService(db).get_consultation_reminders(consultation_id)
