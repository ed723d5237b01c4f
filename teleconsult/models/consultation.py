import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from teleconsult.db.base import Base


class ConsultationStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    WAITING = "WAITING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    TERMINATED_OPEN = "TERMINATED_OPEN"


class MessageService(str, enum.Enum):
    SMS = "SMS"
    WHATSAPP = "WHATSAPP"


class Consultation(Base):
    __tablename__ = "consultations"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String, nullable=False, default=ConsultationStatus.SCHEDULED.value)
    scheduled_date = Column(DateTime(timezone=True), nullable=True)
    message_service = Column(String, nullable=False, default=MessageService.WHATSAPP.value)

    # Denormalized projection of SENT reminders: {"<ReminderType>": "<ISO timestamp>"}
    reminders_sent = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id])
    participants = relationship("Participant", back_populates="consultation")
    reminders = relationship("ConsultationReminder", back_populates="consultation")

    @property
    def patient(self):
        for participant in self.participants or []:
            if participant.user is not None and participant.user.role == "PATIENT":
                return participant.user
        return None


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(String, nullable=False)
    joined_at = Column(DateTime, nullable=True)

    consultation = relationship("Consultation", back_populates="participants")
    user = relationship("User")
