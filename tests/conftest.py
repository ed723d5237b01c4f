"""
Shared pytest fixtures for the reminder engine tests.

Every test gets a fresh in-memory SQLite database with the full schema, plus
factories for consultations, templates and reminders.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

# Ensure test environment before any teleconsult import reads settings
os.environ["ENVIRONMENT"] = "test"
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ.pop("REMINDER_TWILIO_ACCOUNT_SID", None)
os.environ.pop("REMINDER_TWILIO_AUTH_TOKEN", None)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import teleconsult.models  # noqa: F401
from teleconsult.db.base import Base
from teleconsult.models import Consultation, ConsultationStatus, Participant, User, WhatsappTemplate
from teleconsult.reminders.constants import DEFAULT_TEMPLATE_KEY, TEMPLATE_KEYS, ReminderType
from teleconsult.reminders.repository import create_reminder


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# TIME FIXTURES
# ============================================================================


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# DOMAIN FACTORIES
# ============================================================================


@pytest.fixture
def make_consultation(db):
    def _make(
        scheduled_date: Optional[datetime] = None,
        status: str = ConsultationStatus.SCHEDULED.value,
        patient_phone: Optional[str] = "+9876543210",
        practitioner_phone: Optional[str] = "+1234567890",
        with_patient: bool = True,
        message_service: str = "WHATSAPP",
    ) -> Consultation:
        practitioner = User(first_name="Doctor", last_name="Smith", phone_number=practitioner_phone, role="PRACTITIONER")
        db.add(practitioner)
        db.flush()
        consultation = Consultation(
            owner_id=practitioner.id,
            status=status,
            scheduled_date=scheduled_date,
            message_service=message_service,
            reminders_sent={},
        )
        db.add(consultation)
        db.flush()
        if with_patient:
            patient = User(first_name="John", last_name="Doe", phone_number=patient_phone, role="PATIENT")
            db.add(patient)
            db.flush()
            db.add(Participant(consultation_id=consultation.id, user_id=patient.id, role="PATIENT"))
        db.commit()
        db.refresh(consultation)
        return consultation

    return _make


@pytest.fixture
def templates(db) -> Dict[str, WhatsappTemplate]:
    rows = {}
    for key in list(TEMPLATE_KEYS.values()) + [DEFAULT_TEMPLATE_KEY]:
        row = WhatsappTemplate(
            key=key,
            sid=f"HX{key}",
            body="Reminder: Your consultation with {{1}} is scheduled for {{2}} at {{3}}.",
            variables={"1": "name", "2": "date", "3": "time"},
            approval_status="approved",
        )
        db.add(row)
        rows[key] = row
    db.commit()
    return rows


@pytest.fixture
def make_due_reminder(db, now):
    def _make(consultation: Consultation, reminder_type: ReminderType = ReminderType.UPCOMING_APPOINTMENT_1H, minutes_ago: int = 1):
        return create_reminder(db, consultation.id, reminder_type, now - timedelta(minutes=minutes_ago))

    return _make


# ============================================================================
# COLLABORATOR FAKES
# ============================================================================


class FakeChannelProvider:
    """Records template sends; raises for numbers listed in `fail_for`."""

    def __init__(self, fail_for: Optional[List[str]] = None, status: str = "SENT"):
        self.fail_for = set(fail_for or [])
        self.status = status
        self.sent: List[dict] = []

    def send_template_message(self, to: str, template_sid: str, variables: dict) -> dict:
        if to in self.fail_for:
            raise RuntimeError(f"transport refused {to}")
        self.sent.append({"to": to, "template_sid": template_sid, "variables": dict(variables)})
        return {"status": self.status}


@pytest.fixture
def channel() -> FakeChannelProvider:
    return FakeChannelProvider()


@pytest.fixture
def provider_factory(channel):
    return lambda message_service: channel
