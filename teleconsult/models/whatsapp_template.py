from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON
from teleconsult.db.base import Base


class WhatsappTemplate(Base):
    """Channel template catalog row; `sid` is the provider content identifier."""
    __tablename__ = "whatsapp_templates"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, nullable=False, index=True)
    sid = Column(String, nullable=True)
    friendly_name = Column(String, nullable=True)
    language = Column(String, nullable=False, default="en")
    body = Column(Text, nullable=True)
    variables = Column(JSON, nullable=True)
    approval_status = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
