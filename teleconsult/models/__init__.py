from .user import User, UserRole
from .consultation import Consultation, ConsultationStatus, MessageService, Participant
from .whatsapp_template import WhatsappTemplate
from teleconsult.reminders.models import ConsultationReminder
