from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from teleconsult.models.consultation import ConsultationStatus
from teleconsult.reminders.constants import ReminderStatus, ReminderType
from teleconsult.reminders.delivery import DeliveryAdapter
from teleconsult.reminders.processor import ReminderProcessor
from teleconsult.reminders.repository import claim_due_reminders, get_reminders_sent, update_reminder_status
from teleconsult.utils.timezone import to_utc_aware

from .conftest import FakeChannelProvider


@pytest.fixture
def processor(db, provider_factory, templates, now):
    adapter = DeliveryAdapter(db, provider_factory=provider_factory)
    return ReminderProcessor(db, adapter=adapter, clock=lambda: now)


def _claim_one(db, now):
    claimed = claim_due_reminders(db, now, "test-worker", lease_seconds=300)
    assert len(claimed) == 1
    return claimed[0]


class TestEligibility:
    @pytest.mark.parametrize(
        "status",
        [ConsultationStatus.CANCELLED, ConsultationStatus.COMPLETED, ConsultationStatus.ACTIVE],
    )
    def test_non_scheduled_consultation_cancels_reminder(
        self, db, processor, channel, make_consultation, make_due_reminder, now, status
    ):
        consultation = make_consultation(scheduled_date=now + timedelta(hours=1), status=status.value)
        make_due_reminder(consultation)

        result = processor.process_reminder(_claim_one(db, now))

        assert result == ReminderStatus.CANCELLED
        reminder = consultation.reminders[0]
        db.refresh(reminder)
        assert reminder.status == ReminderStatus.CANCELLED.value
        assert reminder.sent_at is None
        assert get_reminders_sent(db, consultation.id) == {}
        assert channel.sent == []

    def test_missing_scheduled_date_cancels_reminder(self, db, processor, channel, make_consultation, make_due_reminder, now):
        consultation = make_consultation(scheduled_date=None)
        make_due_reminder(consultation)

        result = processor.process_reminder(_claim_one(db, now))

        assert result == ReminderStatus.CANCELLED
        assert channel.sent == []


class TestDelivery:
    def test_successful_delivery_marks_sent_and_updates_ledger(
        self, db, processor, channel, make_consultation, make_due_reminder, now
    ):
        consultation = make_consultation(scheduled_date=now + timedelta(hours=1))
        make_due_reminder(consultation, ReminderType.UPCOMING_APPOINTMENT_1H)

        reminder = _claim_one(db, now)
        result = processor.process_reminder(reminder)

        assert result == ReminderStatus.SENT
        db.refresh(reminder)
        assert reminder.status == ReminderStatus.SENT.value
        assert to_utc_aware(reminder.sent_at) == now
        assert reminder.template_key == "consultation_reminder_1h"
        assert reminder.template_sid == "HXconsultation_reminder_1h"
        assert reminder.send_status == "PATIENT:SENT,PRACTITIONER:SENT"
        assert get_reminders_sent(db, consultation.id) == {"UPCOMING_APPOINTMENT_1H": now.isoformat()}
        assert [m["to"] for m in channel.sent] == ["+9876543210", "+1234567890"]

    def test_adapter_exception_marks_failed(self, db, make_consultation, make_due_reminder, now):
        consultation = make_consultation(scheduled_date=now + timedelta(hours=1))
        make_due_reminder(consultation)
        adapter = MagicMock()
        adapter.send_reminder.side_effect = RuntimeError("provider exploded")
        processor = ReminderProcessor(db, adapter=adapter, clock=lambda: now)

        reminder = _claim_one(db, now)
        result = processor.process_reminder(reminder)

        assert result == ReminderStatus.FAILED
        db.refresh(reminder)
        assert reminder.status == ReminderStatus.FAILED.value
        assert reminder.sent_at is None
        assert get_reminders_sent(db, consultation.id) == {}

    def test_missing_template_marks_failed(self, db, provider_factory, channel, make_consultation, make_due_reminder, now):
        consultation = make_consultation(scheduled_date=now + timedelta(hours=1))
        make_due_reminder(consultation)
        catalog = MagicMock()
        catalog.get_processed_template.return_value = None
        adapter = DeliveryAdapter(db, catalog=catalog, provider_factory=provider_factory)

        result = ReminderProcessor(db, adapter=adapter, clock=lambda: now).process_reminder(_claim_one(db, now))

        assert result == ReminderStatus.FAILED
        assert channel.sent == []

    def test_missing_patient_marks_failed(self, db, processor, channel, make_consultation, make_due_reminder, now):
        consultation = make_consultation(scheduled_date=now + timedelta(hours=1), with_patient=False)
        make_due_reminder(consultation)

        assert processor.process_reminder(_claim_one(db, now)) == ReminderStatus.FAILED
        assert channel.sent == []

    def test_recipient_failure_still_marks_sent(self, db, templates, make_consultation, make_due_reminder, now):
        channel = FakeChannelProvider(fail_for=["+1234567890"])
        adapter = DeliveryAdapter(db, provider_factory=lambda service: channel)
        consultation = make_consultation(scheduled_date=now + timedelta(hours=1))
        make_due_reminder(consultation)

        reminder = _claim_one(db, now)
        result = ReminderProcessor(db, adapter=adapter, clock=lambda: now).process_reminder(reminder)

        assert result == ReminderStatus.SENT
        db.refresh(reminder)
        assert reminder.send_status == "PATIENT:SENT,PRACTITIONER:FAILED"
        assert "UPCOMING_APPOINTMENT_1H" in get_reminders_sent(db, consultation.id)

    def test_reminder_settled_elsewhere_is_not_delivered(self, db, processor, channel, make_consultation, make_due_reminder, now):
        consultation = make_consultation(scheduled_date=now + timedelta(hours=1))
        make_due_reminder(consultation)
        reminder = _claim_one(db, now)
        update_reminder_status(db, reminder.id, ReminderStatus.CANCELLED)

        result = processor.process_reminder(reminder)

        assert result is None
        assert channel.sent == []
        db.refresh(reminder)
        assert reminder.status == ReminderStatus.CANCELLED.value
        assert reminder.sent_at is None
        assert get_reminders_sent(db, consultation.id) == {}

    def test_nobody_reachable_is_sent_without_template(self, db, provider_factory, channel, make_consultation, make_due_reminder, now):
        consultation = make_consultation(
            scheduled_date=now + timedelta(hours=1), patient_phone=None, practitioner_phone=None
        )
        make_due_reminder(consultation)
        catalog = MagicMock()
        catalog.get_processed_template.return_value = None
        adapter = DeliveryAdapter(db, catalog=catalog, provider_factory=provider_factory)

        reminder = _claim_one(db, now)
        result = ReminderProcessor(db, adapter=adapter, clock=lambda: now).process_reminder(reminder)

        assert result == ReminderStatus.SENT
        catalog.get_processed_template.assert_not_called()
        assert channel.sent == []
        db.refresh(reminder)
        assert reminder.send_status == "PATIENT:SKIPPED,PRACTITIONER:SKIPPED"


class TestLostClaim:
    def test_stale_batch_is_not_delivered_twice(
        self, db, session_factory, provider_factory, templates, channel, make_consultation, make_due_reminder, now
    ):
        consultation = make_consultation(scheduled_date=now + timedelta(hours=1))
        make_due_reminder(consultation)
        stale = claim_due_reminders(db, now, "w1", lease_seconds=60)

        later = now + timedelta(seconds=61)
        other = session_factory()
        try:
            fresh = claim_due_reminders(other, later, "w2", lease_seconds=60)
            w2 = ReminderProcessor(other, adapter=DeliveryAdapter(other, provider_factory=provider_factory), clock=lambda: later)
            assert w2.process_reminder(fresh[0]) == ReminderStatus.SENT
        finally:
            other.close()

        w1 = ReminderProcessor(db, adapter=DeliveryAdapter(db, provider_factory=provider_factory), clock=lambda: later)
        assert w1.process_reminder(stale[0]) is None

        assert len(channel.sent) == 2
        assert get_reminders_sent(db, consultation.id) == {"UPCOMING_APPOINTMENT_1H": later.isoformat()}

    def test_reclaimed_while_in_flight_is_skipped(
        self, db, session_factory, processor, channel, make_consultation, make_due_reminder, now
    ):
        make_due_reminder(make_consultation(scheduled_date=now + timedelta(hours=1)))
        stale = claim_due_reminders(db, now, "w1", lease_seconds=60)
        other = session_factory()
        try:
            claim_due_reminders(other, now + timedelta(seconds=61), "w2", lease_seconds=60)
        finally:
            other.close()

        assert processor.process_reminder(stale[0]) is None

        assert channel.sent == []
        db.refresh(stale[0])
        assert stale[0].status == ReminderStatus.IN_PROGRESS.value
        assert stale[0].claimed_by == "w2"
