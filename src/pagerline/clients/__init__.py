from pagerline.clients.base import (
    BaseHTTPClient,
    PermanentHTTPError,
    RetryableHTTPError,
)
from pagerline.clients.email import EmailClient
from pagerline.clients.slack import SlackNotifier
from pagerline.clients.twilio import TwilioClient

__all__ = [
    "BaseHTTPClient",
    "EmailClient",
    "PermanentHTTPError",
    "RetryableHTTPError",
    "SlackNotifier",
    "TwilioClient",
]
