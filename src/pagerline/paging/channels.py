"""
Channel dispatchers.

Each notification channel implements ``ChannelDispatcher.send`` and is picked
from a lookup table keyed on ``Channel``. Dispatchers report every failure as
a FAILED ``DispatchResult``; nothing raised by a transport escapes ``send``.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any, Awaitable, Protocol
from xml.sax.saxutils import escape

import structlog
from circuitbreaker import CircuitBreakerError

from pagerline.clients import (
    EmailClient,
    PermanentHTTPError,
    RetryableHTTPError,
    SlackNotifier,
    TwilioClient,
)
from pagerline.config import Settings
from pagerline.domain.models import AlertGroup, AttemptStatus, Channel, User

logger = structlog.get_logger()

BRAND = "Pagerline"

# Channels whose primary page carries an acknowledgement token.
ACK_TOKEN_CHANNELS = frozenset({Channel.SMS, Channel.VOICE})


def generate_ack_token() -> str:
    """Six upper-case hex characters, short enough to type back over SMS."""
    return secrets.token_hex(3).upper()


@dataclass(frozen=True, slots=True)
class PageMessage:
    alert: AlertGroup
    alert_url: str
    step_order: int
    ack_token: str | None = None
    shadow: bool = False

    @property
    def summary(self) -> str:
        alert = self.alert
        return f"{alert.title} ({alert.severity}) in {alert.environment}/{alert.project}."


@dataclass(frozen=True, slots=True)
class DispatchResult:
    status: AttemptStatus
    error_message: str | None = None
    ack_token: str | None = None

    @classmethod
    def sent(cls, ack_token: str | None = None) -> DispatchResult:
        return cls(status=AttemptStatus.SENT, ack_token=ack_token)

    @classmethod
    def failed(cls, error_message: str) -> DispatchResult:
        return cls(status=AttemptStatus.FAILED, error_message=error_message)


class ChannelDispatcher(Protocol):
    channel: Channel

    async def send(self, target: User, message: PageMessage) -> DispatchResult: ...


async def _deliver(
    channel: Channel, call: Awaitable[Any], *, ack_token: str | None = None
) -> DispatchResult:
    try:
        await call
    except (PermanentHTTPError, RetryableHTTPError, CircuitBreakerError) as exc:
        logger.warning("channel_dispatch_failed", channel=channel.value, error=str(exc))
        return DispatchResult.failed(str(exc))
    return DispatchResult.sent(ack_token)


class SlackDispatcher:
    channel = Channel.SLACK

    def __init__(self, client: SlackNotifier | None, default_channel: str | None) -> None:
        self._client = client
        self._default_channel = default_channel

    async def send(self, target: User, message: PageMessage) -> DispatchResult:
        if self._client is None or not self._client.configured or not self._default_channel:
            return DispatchResult.failed("Slack is not configured")
        who = target.display_name or target.email or target.id
        prefix = f"{BRAND} (shadow)" if message.shadow else BRAND
        text = f"{prefix}: paging {who}. {message.summary} {message.alert_url}"
        call = self._client.post_message(self._default_channel, text)
        return await _deliver(self.channel, call)


class EmailDispatcher:
    channel = Channel.EMAIL

    def __init__(self, client: EmailClient | None) -> None:
        self._client = client

    async def send(self, target: User, message: PageMessage) -> DispatchResult:
        if not target.email:
            return DispatchResult.failed("Target user email missing")
        if self._client is None:
            return DispatchResult.failed("Channel not configured")
        alert = message.alert
        subject = f"[{alert.severity}] {alert.title} (escalation step {message.step_order + 1})"
        body = f"{message.summary}\n\nView the alert: {message.alert_url}\n"
        if message.shadow:
            body = f"You are shadowing this page.\n\n{body}"
        return await _deliver(self.channel, self._client.send(target.email, subject, body))


class SmsDispatcher:
    channel = Channel.SMS

    def __init__(self, client: TwilioClient | None) -> None:
        self._client = client

    async def send(self, target: User, message: PageMessage) -> DispatchResult:
        if not target.phone_number:
            return DispatchResult.failed("Target user phone missing")
        if self._client is None:
            return DispatchResult.failed("Channel not configured")
        if message.shadow or not message.ack_token:
            text = f"{BRAND} (shadow): {message.summary} {message.alert_url}"
        else:
            text = (
                f"{BRAND}: {message.summary} Reply ACK {message.ack_token} to acknowledge. "
                f"{message.alert_url}"
            )
        return await _deliver(
            self.channel,
            self._client.send_sms(target.phone_number, text),
            ack_token=None if message.shadow else message.ack_token,
        )


class VoiceDispatcher:
    channel = Channel.VOICE

    def __init__(self, client: TwilioClient | None, api_public_url: str) -> None:
        self._client = client
        self._api_public_url = api_public_url.rstrip("/")

    async def send(self, target: User, message: PageMessage) -> DispatchResult:
        if not target.phone_number:
            return DispatchResult.failed("Target user phone missing")
        if self._client is None:
            return DispatchResult.failed("Channel not configured")
        if message.shadow or not message.ack_token:
            say = escape(f"{BRAND} shadow alert. {message.summary}")
            twiml = f"<Response><Say>{say}</Say></Response>"
            call = self._client.place_call(target.phone_number, twiml=twiml)
            return await _deliver(self.channel, call)
        url = f"{self._api_public_url}/api/v1/twilio/voice?token={message.ack_token}"
        call = self._client.place_call(target.phone_number, url=url)
        return await _deliver(self.channel, call, ack_token=message.ack_token)


def build_dispatchers(settings: Settings) -> dict[Channel, ChannelDispatcher]:
    """Build the channel lookup table; transports without credentials are left unset."""
    slack = (
        SlackNotifier(settings.slack_bot_token, timeout=settings.http_timeout)
        if settings.slack_bot_token
        else None
    )
    email = (
        EmailClient(
            settings.email_api_key,
            settings.email_from_address,
            base_url=settings.email_api_url,
            timeout=settings.http_timeout,
        )
        if settings.email_api_key
        else None
    )
    twilio = None
    if settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_from_number:
        twilio = TwilioClient(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_from_number,
            base_url=settings.twilio_base_url,
            timeout=settings.http_timeout,
        )

    return {
        Channel.SLACK: SlackDispatcher(slack, settings.slack_default_channel),
        Channel.EMAIL: EmailDispatcher(email),
        Channel.SMS: SmsDispatcher(twilio),
        Channel.VOICE: VoiceDispatcher(twilio, settings.api_public_url),
    }
