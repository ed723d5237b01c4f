"""
Consultation reminder model - one row per (consultation, reminder type) attempt.
Rows are never deleted; they are the audit trail of every reminder.
"""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from teleconsult.db.base import Base
from .constants import ReminderStatus


class ConsultationReminder(Base):
    __tablename__ = "consultation_reminders"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default=ReminderStatus.PENDING.value)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    # Delivery bookkeeping
    template_key = Column(String, nullable=True)
    template_sid = Column(String, nullable=True)
    send_status = Column(String, nullable=True)

    # Claim / lease bookkeeping
    claimed_by = Column(String, nullable=True)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    consultation = relationship("Consultation", back_populates="reminders")

    __table_args__ = (
        Index("ix_consultation_reminders_status_time", "status", "scheduled_for"),
        # At most one PENDING reminder per consultation and type
        Index(
            "uq_consultation_reminders_pending_type",
            "consultation_id",
            "type",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<ConsultationReminder id={self.id} consultation={self.consultation_id} type={self.type} status={self.status}>"
