"""
WhatsApp messaging gateway backed by Twilio.

The Twilio REST client is synchronous, so each send runs in a worker thread.
Twilio API and transport failures are reported in the SendResult;
only caller mistakes (invalid recipient, blank text) raise.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from config import Config
from services.errors import EmptyMessageError, InvalidRecipientError
from utils.data_sanitizer import mask_phone
from utils.input_validation import normalize_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    delivered: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class WhatsAppService:
    def __init__(
        self,
        account_sid: str = Config.TWILIO_ACCOUNT_SID,
        auth_token: str = Config.TWILIO_AUTH_TOKEN,
        from_number: str = Config.TWILIO_WHATSAPP_NUMBER,
        client: Optional[Client] = None,
    ):
        self.from_number = from_number
        if client is not None:
            self.client = client
        elif account_sid and auth_token:
            self.client = Client(account_sid, auth_token)
        else:
            self.client = None
            logger.warning("WhatsApp disabled - Twilio not configured")

    @staticmethod
    def _whatsapp_address(number: str) -> str:
        return number if number.startswith("whatsapp:") else f"whatsapp:{number}"

    async def send_message(self, user_id: str, text: str) -> SendResult:
        phone = normalize_phone(user_id)
        if phone is None:
            raise InvalidRecipientError(f"Invalid WhatsApp recipient: {user_id!r}")
        if not text or not text.strip():
            raise EmptyMessageError("Message text is empty")

        if self.client is None:
            logger.warning(f"⚠️ Message to {mask_phone(phone)} dropped - Twilio not configured")
            return SendResult(delivered=False, error="messaging not configured")

        try:
            message = await asyncio.to_thread(
                self.client.messages.create,
                body=text,
                from_=self._whatsapp_address(self.from_number),
                to=self._whatsapp_address(phone),
            )
        except TwilioRestException as e:
            logger.error(f"❌ WhatsApp send to {mask_phone(phone)} failed: {e.code} {e.msg}")
            return SendResult(delivered=False, error=str(e.msg))
        except Exception as e:
            logger.error(f"❌ WhatsApp transport error sending to {mask_phone(phone)}: {e}")
            return SendResult(delivered=False, error=str(e))

        logger.info(f"📱 WhatsApp message sent to {mask_phone(phone)} ({message.sid})")
        return SendResult(delivered=True, message_id=message.sid)
