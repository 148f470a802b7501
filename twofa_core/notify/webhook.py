"""
Webhook Notifier
================
Hands codes to an internal delivery service over HTTP.

The delivery service owns the address book and the actual email send;
this notifier only posts {user_id, code, expires_at}. Network errors and
5xx responses are retried with exponential backoff, 4xx are not.
"""

import logging
from datetime import datetime
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
import structlog

from ..errors import DeliveryError
from .base import DeliveryResult, Notifier

logger = structlog.get_logger(__name__)
retry_logger = logging.getLogger(__name__)


class _TransientDeliveryError(Exception):
    """Retryable failure (transport error or 5xx)."""


class WebhookNotifier(Notifier):
    """POSTs codes to a delivery endpoint."""

    channel = "email"

    def __init__(
        self,
        url: str,
        secret: Optional[str] = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            url: Delivery endpoint
            secret: Sent as X-Internal-Secret when set
            timeout: Per-request timeout in seconds
            max_attempts: Total attempts including the first
            backoff: Exponential backoff multiplier in seconds (0 disables waits)
            client: Pre-built client (tests inject one with a MockTransport)
        """
        self.url = url
        self.max_attempts = max_attempts
        self.backoff = backoff

        headers = {"Accept": "application/json"}
        if secret:
            headers["X-Internal-Secret"] = secret
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.headers = headers

    async def _post(self, payload: dict) -> httpx.Response:
        try:
            response = await self.client.post(self.url, json=payload, headers=self.headers)
        except httpx.TransportError as e:
            raise _TransientDeliveryError(f"transport error: {e}") from e
        if response.status_code >= 500:
            raise _TransientDeliveryError(f"delivery service returned {response.status_code}")
        return response

    async def send_code(self, user_id: str, code: str, expires_at: datetime) -> DeliveryResult:
        payload = {
            "user_id": user_id,
            "code": code,
            "expires_at": expires_at.isoformat(),
            "channel": self.channel,
        }

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_TransientDeliveryError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff, max=10),
            before_sleep=before_sleep_log(retry_logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._post(payload)
        except _TransientDeliveryError as e:
            raise DeliveryError(str(e), user_id=user_id) from e

        if response.status_code >= 400:
            raise DeliveryError(
                f"delivery service rejected code ({response.status_code})",
                user_id=user_id,
            )

        message_id = None
        if response.content:
            try:
                data = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict):
                message_id = data.get("message_id")

        logger.info("Verification code handed to webhook", user_id=user_id, message_id=message_id)
        return DeliveryResult(success=True, channel=self.channel, message_id=message_id)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
