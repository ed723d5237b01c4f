from prometheus_client import Counter


reminders_scheduled_total = Counter(
    "consultation_reminders_scheduled_total",
    "Total reminders created by the scheduler",
)

reminders_cancelled_total = Counter(
    "consultation_reminders_cancelled_total",
    "Total pending reminders cancelled by the scheduler",
)

poller_ticks_total = Counter(
    "consultation_reminder_poller_ticks_total",
    "Total poller tick cycles",
)

poller_errors_total = Counter(
    "consultation_reminder_poller_errors_total",
    "Total poller errors (due-set query failures and per-reminder exceptions)",
)

reminders_claimed_total = Counter(
    "consultation_reminders_claimed_total",
    "Total reminders claimed by a poller",
)

reminders_processed_total = Counter(
    "consultation_reminders_processed_total",
    "Total reminders moved to a terminal state",
    ["outcome"],
)

recipient_sends_total = Counter(
    "consultation_reminder_recipient_sends_total",
    "Per-recipient send results",
    ["status"],
)

reminders_skipped_total = Counter(
    "consultation_reminders_skipped_total",
    "Claimed reminders dropped because the worker lost its lease",
)
