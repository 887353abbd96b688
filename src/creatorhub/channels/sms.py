"""SMS delivery via the Twilio Messages REST API."""

import re
from typing import Optional

import httpx
import structlog

from creatorhub.config import settings

logger = structlog.get_logger()

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def format_phone_number(phone_number: str) -> str:
    """Normalize a phone number to E.164 for Twilio.

    10 bare digits are treated as a US number (+1). Numbers already
    starting with "+" are kept; anything else gets a "+" prefix.
    """
    phone_number = phone_number.strip()
    if phone_number.startswith("+"):
        return phone_number
    digits = re.sub(r"\D", "", phone_number)
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


class SmsChannel:
    name = "sms"

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = (
            settings.twilio_account_sid if account_sid is None else account_sid
        )
        self.auth_token = settings.twilio_auth_token if auth_token is None else auth_token
        self.from_number = (
            settings.twilio_phone_number if from_number is None else from_number
        )
        self._transport = transport

    @property
    def configured(self) -> bool:
        # Twilio account SIDs always start with "AC"
        return bool(
            self.account_sid.startswith("AC") and self.auth_token and self.from_number
        )

    async def send(self, to: str, body: str) -> tuple[bool, Optional[str]]:
        """Send one SMS.

        Returns:
            Tuple of (success, error_message)
        """
        if not self.configured:
            logger.warning("sms.not_configured", to=to)
            return False, "SMS not configured"
        if not to:
            return False, "No phone number provided"

        to_number = format_phone_number(to)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                response = await client.post(
                    TWILIO_MESSAGES_URL.format(sid=self.account_sid),
                    auth=(self.account_sid, self.auth_token),
                    data={"To": to_number, "From": self.from_number, "Body": body},
                )
        except httpx.HTTPError as e:
            logger.error("sms.failed", to=to_number, error=str(e))
            return False, str(e)

        if response.status_code in (200, 201):
            logger.info("sms.sent", to=to_number, sid=_twilio_sid(response))
            return True, None

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        message = error_data.get("message") or f"Twilio returned HTTP {response.status_code}"
        code = error_data.get("code")
        error = f"[{code}] {message}" if code else message
        logger.error("sms.rejected", to=to_number, error=error)
        return False, error


def _twilio_sid(response: httpx.Response) -> Optional[str]:
    try:
        return response.json().get("sid")
    except ValueError:
        return None
