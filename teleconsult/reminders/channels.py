import json
import logging
from typing import Any, Dict, Optional

from twilio.rest import Client
from twilio.http.http_client import TwilioHttpClient

from teleconsult.models.consultation import MessageService
from .config import settings
from .constants import SendStatus

logger = logging.getLogger(__name__)


class TwilioChannelProvider:
    """
    Outbound template messages over Twilio (SMS or WhatsApp).
    Without credentials the provider runs in mock mode and reports MOCKED.
    """

    def __init__(
        self,
        message_service: MessageService = MessageService.WHATSAPP,
        client: Optional[Client] = None,
    ):
        self.message_service = MessageService(message_service)
        if self.message_service == MessageService.WHATSAPP:
            self.from_number = settings.TWILIO_WHATSAPP_FROM
        else:
            self.from_number = settings.TWILIO_SMS_FROM
        self.client = client
        if self.client is None and settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN:
            self.client = Client(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN,
                http_client=TwilioHttpClient(timeout=settings.SEND_TIMEOUT_SECONDS),
            )
        self.is_configured = self.client is not None

    def _address(self, number: str) -> str:
        if self.message_service == MessageService.WHATSAPP and not number.startswith("whatsapp:"):
            return f"whatsapp:{number}"
        return number

    def send_template_message(self, to: str, template_sid: str, variables: Dict[str, Any]) -> Dict[str, str]:
        if not self.is_configured:
            logger.warning(
                f"📱 [MOCK] {self.message_service.value} message would be sent to {to} using template {template_sid}"
            )
            logger.debug(f"📱 [MOCK] Template variables: {json.dumps(variables, default=str)}")
            return {"status": SendStatus.MOCKED.value}

        logger.info(f"Sending {self.message_service.value} template message to {to} using template SID {template_sid}")
        params = {
            "to": self._address(to),
            "content_sid": template_sid,
            "content_variables": json.dumps({str(k): str(v) for k, v in variables.items()}),
        }
        if self.from_number:
            params["from_"] = self._address(self.from_number)
        message = self.client.messages.create(**params)
        status = getattr(message, "status", None)
        # Twilio reports queued/accepted/sent; anything but failed/undelivered is a send
        if status in ("failed", "undelivered"):
            return {"status": SendStatus.FAILED.value}
        return {"status": SendStatus.SENT.value}


def get_channel_provider(message_service: Optional[str]) -> TwilioChannelProvider:
    try:
        service = MessageService(message_service or MessageService.WHATSAPP.value)
    except ValueError:
        logger.warning(f"Unknown message service {message_service!r}, falling back to WhatsApp")
        service = MessageService.WHATSAPP
    return TwilioChannelProvider(service)
