"""Generic HTTP webhook channel."""
import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import aiohttp
from loguru import logger

from .base import Channel, ChannelType, Robot
from ..scheduler.errors import DeliveryError, RateLimitedError
from ..scheduler.types import MessagePayload, Receipt

logger = logger.bind(module="channels.webhook")


def _retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header; HTTP-date values are ignored."""
    try:
        return float(value) if value else None
    except ValueError:
        return None


class HttpWebhookChannel(Channel):
    """Posts the payload as JSON to the robot's `url`.

    Robot options: url (required), method (POST or PUT), headers.
    A response status >= 400 is a delivery failure. The receipt id is the
    `id` field of a JSON response if there is one, else a generated id.
    """

    def __init__(self, timeout: float = 30):
        super().__init__()
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.WEBHOOK

    async def connect(self) -> bool:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        self._connected = True
        return True

    async def disconnect(self):
        if self._session:
            await self._session.close()
            self._session = None
        self._connected = False

    async def deliver(self, robot: Robot, payload: MessagePayload) -> Receipt:
        if self._session is None:
            raise DeliveryError("Webhook channel is not connected")

        url = robot.options.get("url")
        if not url:
            raise DeliveryError(f"No webhook URL configured for robot {robot.name}")

        method = str(robot.options.get("method", "POST")).upper()
        if method not in ("POST", "PUT"):
            raise DeliveryError(f"Unsupported HTTP method: {method}")

        body: dict[str, Any] = {
            "robot": robot.name,
            "content": payload.content,
            "embeds": [payload.embed] if payload.embed else [],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        headers = robot.options.get("headers") or {}

        try:
            async with self._session.request(method, url, json=body, headers=headers) as resp:
                if resp.status == 429:
                    raise RateLimitedError(
                        f"Webhook for robot {robot.name} is rate limited",
                        retry_after=_retry_after(resp.headers.get("Retry-After")),
                    )
                if resp.status >= 400:
                    text = await resp.text()
                    raise DeliveryError(
                        f"Webhook {method} failed with status {resp.status}: {text[:200]}"
                    )
                receipt_id = None
                if resp.content_type == "application/json":
                    data = await resp.json()
                    if isinstance(data, dict) and data.get("id") is not None:
                        receipt_id = str(data["id"])
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"Webhook {method} to {robot.name} failed: {e}") from e

        receipt_id = receipt_id or uuid4().hex
        logger.info(f"Robot {robot.name} webhook {method}: {resp.status} ({receipt_id})")
        return Receipt(id=receipt_id, channel=self.channel_type.value)
