import enum
from datetime import timedelta


class ReminderType(str, enum.Enum):
    UPCOMING_APPOINTMENT_24H = "UPCOMING_APPOINTMENT_24H"
    UPCOMING_APPOINTMENT_1H = "UPCOMING_APPOINTMENT_1H"


class ReminderStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"  # claimed by a poller, lease in lease_expires_at
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = (ReminderStatus.SENT, ReminderStatus.FAILED, ReminderStatus.CANCELLED)

REMINDER_TIMING = {
    ReminderType.UPCOMING_APPOINTMENT_24H: timedelta(hours=24),
    ReminderType.UPCOMING_APPOINTMENT_1H: timedelta(hours=1),
}

DEFAULT_REMINDER_TYPES = [
    ReminderType.UPCOMING_APPOINTMENT_24H,
    ReminderType.UPCOMING_APPOINTMENT_1H,
]

# Reminder type -> channel template key
TEMPLATE_KEYS = {
    ReminderType.UPCOMING_APPOINTMENT_24H: "consultation_reminder_24h",
    ReminderType.UPCOMING_APPOINTMENT_1H: "consultation_reminder_1h",
}
DEFAULT_TEMPLATE_KEY = "consultation_reminder"


class SendStatus(str, enum.Enum):
    SENT = "SENT"
    MOCKED = "MOCKED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"  # recipient has no phone number


def template_key_for(reminder_type) -> str:
    try:
        return TEMPLATE_KEYS[ReminderType(reminder_type)]
    except (KeyError, ValueError):
        return DEFAULT_TEMPLATE_KEY
