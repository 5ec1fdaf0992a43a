# ============================================================================
# SpaceOps Messaging - Twilio SMS / WhatsApp Provider
# ============================================================================

from .base import BaseProvider, ProviderResult, MessagePayload
import re
import logging

from twilio.rest import Client

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"


class TwilioProvider(BaseProvider):
    """
    SMS and WhatsApp delivery via Twilio.

    Environment Variables:
    - TWILIO_ACCOUNT_SID: Twilio account SID
    - TWILIO_AUTH_TOKEN: Twilio auth token
    - TWILIO_FROM_NUMBER: number to send SMS from
    - TWILIO_WHATSAPP_FROM_NUMBER: WhatsApp-enabled sender number
    """

    channel = "sms"
    display_name = "Twilio SMS"

    def _load_config(self):
        """Load Twilio configuration."""
        self.account_sid = self._get_env("TWILIO_ACCOUNT_SID")
        self.auth_token = self._get_env("TWILIO_AUTH_TOKEN")
        self.phone_number = self._get_env("TWILIO_FROM_NUMBER")
        self.whatsapp_number = self._get_env("TWILIO_WHATSAPP_FROM_NUMBER")
        self._client = None

    def _get_client(self):
        """Lazily build the Twilio REST client."""
        if self._client is None and self.account_sid and self.auth_token:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def is_configured(self) -> bool:
        """Check if Twilio credentials are configured."""
        return bool(
            self.account_sid and
            self.auth_token and
            self.phone_number
        )

    def validate_address(self, address: str) -> bool:
        """Validate phone number format."""
        if not address:
            return False

        digits = re.sub(r'\D', '', address)

        # US numbers: 10 digits (or 11 with country code 1)
        if len(digits) == 10:
            return True
        if len(digits) == 11 and digits[0] == '1':
            return True
        # International: 7-15 digits
        return 7 <= len(digits) <= 15

    def _normalize_phone(self, phone: str) -> str:
        """Normalize phone number to E.164 format."""
        digits = re.sub(r'\D', '', phone)

        # Assume US if 10 digits
        if len(digits) == 10:
            return f"+1{digits}"

        return f"+{digits}"

    def send_sms(self, payload: MessagePayload) -> ProviderResult:
        """Send SMS via Twilio."""
        if not self.is_configured():
            return ProviderResult.fail("Twilio not configured")

        if not self.validate_address(payload.to):
            return ProviderResult.fail(f"Invalid phone number: {payload.to}")

        return self._create(
            to=self._normalize_phone(payload.to),
            from_=self.phone_number,
            body=payload.body,
        )

    def send_whatsapp(self, payload: MessagePayload) -> ProviderResult:
        """Send a WhatsApp message via Twilio. Both ends get the whatsapp: prefix."""
        if not (self.account_sid and self.auth_token and self.whatsapp_number):
            return ProviderResult.fail("Twilio WhatsApp not configured")

        to = payload.to
        if not to.startswith(WHATSAPP_PREFIX):
            if not self.validate_address(to):
                return ProviderResult.fail(f"Invalid phone number: {to}")
            to = WHATSAPP_PREFIX + self._normalize_phone(to)

        from_ = self.whatsapp_number
        if not from_.startswith(WHATSAPP_PREFIX):
            from_ = WHATSAPP_PREFIX + from_

        return self._create(to=to, from_=from_, body=payload.body)

    def _create(self, to: str, from_: str, body: str) -> ProviderResult:
        try:
            message = self._get_client().messages.create(to=to, from_=from_, body=body)
            return ProviderResult.ok(
                message_id=message.sid,
                external_status=message.status,
            )
        except Exception as e:
            logger.error(f"Twilio send failed: {e}")
            return ProviderResult.fail(str(e))
