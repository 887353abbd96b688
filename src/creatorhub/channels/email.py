"""Email delivery via the SendGrid v3 REST API."""

from typing import Optional

import httpx
import structlog

from creatorhub.config import settings

logger = structlog.get_logger()

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailChannel:
    name = "email"

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_address: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.sendgrid_api_key if api_key is None else api_key
        self.from_address = from_address or settings.email_from
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(
        self,
        to: str,
        subject: str,
        text: str,
        html: Optional[str] = None,
    ) -> tuple[bool, Optional[str]]:
        """Send one email.

        Returns:
            Tuple of (success, error_message)
        """
        if not self.configured:
            logger.warning("email.not_configured", to=to)
            return False, "Email not configured"
        if not to:
            return False, "No email address provided"

        content = [{"type": "text/plain", "value": text}]
        if html:
            content.append({"type": "text/html", "value": html})
        body = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_address},
            "subject": subject,
            "content": content,
        }

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                response = await client.post(
                    SENDGRID_URL,
                    json=body,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as e:
            logger.error("email.failed", to=to, error=str(e))
            return False, str(e)

        if response.status_code in (200, 202):
            logger.info("email.sent", to=to, subject=subject)
            return True, None

        error = _sendgrid_error(response)
        logger.error("email.rejected", to=to, status=response.status_code, error=error)
        return False, error


def _sendgrid_error(response: httpx.Response) -> str:
    try:
        errors = response.json().get("errors") or []
    except ValueError:
        errors = []
    if errors and errors[0].get("message"):
        return errors[0]["message"]
    return f"SendGrid returned HTTP {response.status_code}"
