from __future__ import annotations

from typing import Any

from pagerline.clients.base import BaseHTTPClient


class EmailClient(BaseHTTPClient):
    """Transactional email over a SendGrid-compatible ``/mail/send`` API."""

    def __init__(
        self,
        api_key: str,
        from_address: str,
        *,
        base_url: str = "https://api.sendgrid.com/v3",
        timeout: float = 30.0,
        circuit_failure_threshold: int = 5,
        circuit_recovery_timeout: int = 60,
    ) -> None:
        super().__init__(
            base_url,
            timeout=timeout,
            circuit_failure_threshold=circuit_failure_threshold,
            circuit_recovery_timeout=circuit_recovery_timeout,
        )
        self._api_key = api_key
        self._from_address = from_address

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def send(self, to: str, subject: str, text: str) -> dict[str, Any]:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self._from_address},
            "subject": subject,
            "content": [{"type": "text/plain", "value": text}],
        }
        return await self.post("/mail/send", json=payload)
