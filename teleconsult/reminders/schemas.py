"""
Schemas for reminder scheduling, delivery outcomes and the HTTP surface
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from .constants import ReminderType, SendStatus


class ProcessedTemplate(BaseModel):
    """Template resolved from the catalog, ready for variable substitution"""
    key: str
    sid: Optional[str] = None
    body: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)


class RecipientOutcome(BaseModel):
    """Result of one channel send to one recipient"""
    role: str
    user_id: Optional[int] = None
    to: Optional[str] = None
    template_key: str
    template_sid: Optional[str] = None
    status: SendStatus
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == SendStatus.FAILED


class DeliveryOutcome(BaseModel):
    """Adapter-level result: whether any recipient was reachable, plus each recipient's result"""
    reminder_id: Optional[int] = None
    attempted: bool = True
    recipients: List[RecipientOutcome] = Field(default_factory=list)

    @property
    def failed_recipients(self) -> List[RecipientOutcome]:
        return [r for r in self.recipients if r.failed]

    @property
    def send_status(self) -> Optional[str]:
        """Compact per-recipient summary persisted on the reminder row."""
        if not self.recipients:
            return None
        return ",".join(f"{r.role}:{r.status.value}" for r in self.recipients)


class SentReminderFact(BaseModel):
    type: ReminderType
    sent_at: datetime


class ReminderConfig(BaseModel):
    """Per-consultation reminder configuration"""
    enabled: bool = True
    types: Optional[List[ReminderType]] = None


class ScheduleRequest(BaseModel):
    scheduled_date: datetime
    types: Optional[List[ReminderType]] = None


class ReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    consultation_id: int
    type: str
    scheduled_for: datetime
    status: str
    sent_at: Optional[datetime] = None
    template_key: Optional[str] = None
    template_sid: Optional[str] = None
    send_status: Optional[str] = None


class ConsultationReminders(BaseModel):
    consultation_id: int
    reminders: List[ReminderRead]
    reminders_sent: List[SentReminderFact]


class CancelResult(BaseModel):
    consultation_id: int
    cancelled: int


class PollSummary(BaseModel):
    claimed: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    skipped: int = 0
    errors: int = 0
