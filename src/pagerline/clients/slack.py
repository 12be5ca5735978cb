from __future__ import annotations

from typing import Any

from pagerline.clients.base import BaseHTTPClient, PermanentHTTPError


class SlackNotifier(BaseHTTPClient):
    """Slack Web API client with retry logic and circuit breaker."""

    def __init__(
        self,
        token: str | None,
        *,
        base_url: str = "https://slack.com/api",
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
        self._token = token

    @property
    def configured(self) -> bool:
        return bool(self._token)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json; charset=utf-8"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def post_message(self, channel: str, text: str, **blocks: Any) -> dict[str, Any]:
        """Post to a channel or user id; Slack reports failures in the body, not the status."""
        payload = {"channel": channel, "text": text} | blocks
        body = await self.post("/chat.postMessage", json=payload)
        if not body.get("ok", False):
            raise PermanentHTTPError(f"Slack error: {body.get('error', 'unknown_error')}")
        return body
