import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from teleconsult.models.user import User, UserRole
from teleconsult.utils.timezone import to_local
from .channels import get_channel_provider
from .constants import SendStatus, template_key_for
from .exceptions import NoPatientError, TemplateNotFoundError
from .metrics import recipient_sends_total
from .models import ConsultationReminder
from .repository import update_reminder_delivery_meta
from .schemas import DeliveryOutcome, ProcessedTemplate, RecipientOutcome
from .templates import TemplateCatalog, render_body

logger = logging.getLogger(__name__)

DATE_FORMAT = "%A, %B %d, %Y"
TIME_FORMAT = "%I:%M %p"


class DeliveryAdapter:
    """
    Turns a due reminder into template messages for the patient and the
    practitioner.

    Raises DeliveryFailure when the attempt cannot run at all (no patient,
    missing template). A failed send to one recipient is only recorded in
    that recipient's outcome and never raised.
    """

    def __init__(
        self,
        db: Session,
        catalog: Optional[TemplateCatalog] = None,
        provider_factory: Callable = get_channel_provider,
        tz_name: Optional[str] = None,
    ):
        self.db = db
        self.catalog = catalog or TemplateCatalog(db)
        self.provider_factory = provider_factory
        self.tz_name = tz_name

    def send_reminder(self, reminder: ConsultationReminder, reminder_id: Optional[int] = None) -> DeliveryOutcome:
        consultation = reminder.consultation
        practitioner: Optional[User] = consultation.owner
        patient: Optional[User] = consultation.patient
        if patient is None:
            raise NoPatientError(consultation.id)

        local_dt = to_local(consultation.scheduled_date, self.tz_name)
        formatted_date = local_dt.strftime(DATE_FORMAT)
        formatted_time = local_dt.strftime(TIME_FORMAT)

        practitioner_name = f"Dr. {practitioner.last_name}" if practitioner and practitioner.last_name else "your practitioner"
        recipients = [(UserRole.PATIENT.value, patient, practitioner_name)]
        if practitioner is not None:
            recipients.append((UserRole.PRACTITIONER.value, practitioner, patient.full_name or "your patient"))

        template_key = template_key_for(reminder.type)
        template: Optional[ProcessedTemplate] = None
        provider = None
        reachable = any(user.phone_number for _, user, _ in recipients)
        if reachable:
            template = self.catalog.get_processed_template(template_key)
            if template is None:
                raise TemplateNotFoundError(template_key)
            provider = self.provider_factory(consultation.message_service)
        else:
            logger.warning(f"No participant of consultation {consultation.id} has a phone number, nothing to send")

        outcome = DeliveryOutcome(reminder_id=reminder_id, attempted=reachable)
        for role, user, counterpart in recipients:
            variables = {"1": counterpart, "2": formatted_date, "3": formatted_time}
            outcome.recipients.append(self._send_to(provider, role, user, template_key, template, variables))

        if reminder_id is not None:
            update_reminder_delivery_meta(
                self.db,
                reminder_id,
                template_key=template_key,
                template_sid=template.sid if template else None,
                send_status=outcome.send_status,
            )
        return outcome

    def _send_to(
        self,
        provider,
        role: str,
        user: User,
        template_key: str,
        template: Optional[ProcessedTemplate],
        variables: Dict[str, str],
    ) -> RecipientOutcome:
        result = RecipientOutcome(
            role=role,
            user_id=user.id,
            to=user.phone_number,
            template_key=template_key,
            template_sid=template.sid if template else None,
            status=SendStatus.SKIPPED,
        )
        if not user.phone_number:
            logger.warning(f"User {user.id} has no phone number, cannot send reminder")
            recipient_sends_total.labels(status=result.status.value).inc()
            return result

        merged = {**template.variables, **variables}
        logger.info(f"Sending reminder message to {user.phone_number}: {render_body(template.body, merged)}")
        try:
            response = provider.send_template_message(
                to=user.phone_number, template_sid=template.sid, variables=merged
            )
            result.status = _coerce_status(response.get("status"))
        except Exception as e:
            logger.error(f"Error sending reminder message to {user.phone_number}: {e!r}")
            result.status = SendStatus.FAILED
            result.error = str(e)
        recipient_sends_total.labels(status=result.status.value).inc()
        return result


def summarize_failures(outcome: DeliveryOutcome) -> List[str]:
    return [f"{r.role}:{r.to}:{r.error or r.status.value}" for r in outcome.failed_recipients]


def _coerce_status(value) -> SendStatus:
    try:
        return SendStatus(value)
    except ValueError:
        # Provider-specific success states (queued, accepted, ...)
        return SendStatus.SENT
