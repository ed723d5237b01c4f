class ReminderError(Exception):
    """Base class for reminder engine errors."""


class SchedulingError(ReminderError):
    """Creating or cancelling reminder rows failed; the booking workflow must know."""

    def __init__(self, consultation_id, message: str):
        super().__init__(f"consultation {consultation_id}: {message}")
        self.consultation_id = consultation_id


class DeliveryFailure(ReminderError):
    """The delivery attempt itself could not run. Recorded as FAILED."""


class TemplateNotFoundError(DeliveryFailure):
    def __init__(self, template_key: str):
        super().__init__(f"No template found for key '{template_key}'")
        self.template_key = template_key


class NoPatientError(DeliveryFailure):
    def __init__(self, consultation_id):
        super().__init__(f"No patient found for consultation {consultation_id}")
        self.consultation_id = consultation_id
