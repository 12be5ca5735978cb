from __future__ import annotations

from typing import Any

from pagerline.clients.base import BaseHTTPClient


class TwilioClient(BaseHTTPClient):
    """Twilio REST client for SMS and outbound voice calls.

    Twilio takes form-encoded bodies and HTTP basic auth with the account
    SID and auth token.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        base_url: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 30.0,
        circuit_failure_threshold: int = 5,
        circuit_recovery_timeout: int = 60,
    ) -> None:
        super().__init__(
            base_url,
            timeout=timeout,
            auth=(account_sid, auth_token),
            circuit_failure_threshold=circuit_failure_threshold,
            circuit_recovery_timeout=circuit_recovery_timeout,
        )
        self._account_sid = account_sid
        self._from_number = from_number

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def _account_path(self, resource: str) -> str:
        return f"/Accounts/{self._account_sid}/{resource}.json"

    async def send_sms(self, to: str, body: str) -> dict[str, Any]:
        return await self.post(
            self._account_path("Messages"),
            data={"To": to, "From": self._from_number, "Body": body},
        )

    async def place_call(
        self, to: str, *, url: str | None = None, twiml: str | None = None
    ) -> dict[str, Any]:
        """Start a call that fetches instructions from ``url`` or plays inline ``twiml``."""
        payload = {"To": to, "From": self._from_number}
        if url:
            payload["Url"] = url
        elif twiml:
            payload["Twiml"] = twiml
        else:
            raise ValueError("place_call needs a url or twiml")
        return await self.post(self._account_path("Calls"), data=payload)
