"""Outbound side-channels — email (SendGrid) and SMS (Twilio).

Both talk to the provider's REST API over httpx and report failures as
(success, error) tuples instead of raising. Nothing is retried or queued:
a failed send is logged and recorded in communication history.
"""

from dataclasses import dataclass, field

from creatorhub.channels.email import EmailChannel
from creatorhub.channels.sms import SmsChannel, format_phone_number


@dataclass
class Channels:
    """The side-channels a service may use. Swapped for fakes in tests."""
    email: EmailChannel = field(default_factory=EmailChannel)
    sms: SmsChannel = field(default_factory=SmsChannel)


def get_channels() -> Channels:
    """FastAPI dependency — channels configured from settings."""
    return Channels()


__all__ = ["Channels", "EmailChannel", "SmsChannel", "format_phone_number", "get_channels"]
