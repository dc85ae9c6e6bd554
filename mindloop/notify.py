"""Notification channels for proactive messages."""

import logging
from typing import Optional

import httpx

from mindloop.types import ProactiveMessage, format_datetime

logger = logging.getLogger(__name__)


class LogNotifier:
    """Writes messages to the log. Always reports delivery."""

    async def send(self, message: ProactiveMessage) -> bool:
        logger.info(
            f"Proactive message ({message.urgency.value}, {message.reason}): {message.content}"
        )
        return True


class WebhookNotifier:
    """POSTs messages as JSON to a webhook. Any 2xx response counts as delivered."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._url = url
        self._timeout = timeout
        self._client = client

    async def send(self, message: ProactiveMessage) -> bool:
        payload = {
            "id": message.id,
            "content": message.content,
            "reason": message.reason,
            "urgency": message.urgency.value,
            "created_at": format_datetime(message.created_at),
        }
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Webhook delivery failed: {e}")
            return False

        if response.is_success:
            return True
        logger.warning(f"Webhook returned HTTP {response.status_code}")
        return False
