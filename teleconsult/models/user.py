import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from teleconsult.db.base import Base


class UserRole(str, enum.Enum):
    PATIENT = "PATIENT"
    PRACTITIONER = "PRACTITIONER"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)  # E.164, e.g. +15551234567
    role = Column(String, nullable=False, default=UserRole.PATIENT.value)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)
