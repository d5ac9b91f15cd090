"""Discord channel: posts through per-robot webhooks."""
import asyncio
from datetime import datetime, timezone
from typing import Any

import aiohttp
import discord
from loguru import logger

from .base import Channel, ChannelType, Robot
from ..scheduler.errors import DeliveryError, RateLimitedError
from ..scheduler.types import MessagePayload, Receipt

logger = logger.bind(module="channels.discord")

# Discord limit for message content
MAX_CONTENT_LENGTH = 2000

DEFAULT_EMBED_COLOR = 0x0099FF


def build_embed(data: dict[str, Any], robot: Robot) -> discord.Embed:
    """Build a discord.Embed from an embed dict.

    Recognised keys: title, description, url, color, image, thumbnail,
    footer, fields ([{name, value, inline}]).
    """
    embed = discord.Embed(
        title=data.get("title"),
        description=data.get("description"),
        url=data.get("url"),
        color=data.get("color", robot.options.get("color", DEFAULT_EMBED_COLOR)),
        timestamp=datetime.now(timezone.utc),
    )
    if data.get("image"):
        embed.set_image(url=data["image"])
    if data.get("thumbnail"):
        embed.set_thumbnail(url=data["thumbnail"])
    embed.set_footer(
        text=data.get("footer") or robot.options.get("username") or robot.name,
        icon_url=robot.options.get("avatar_url"),
    )
    for item in data.get("fields") or []:
        embed.add_field(
            name=item.get("name", "\u200b"),
            value=item.get("value", "\u200b"),
            inline=item.get("inline", False),
        )
    return embed


class DiscordWebhookChannel(Channel):
    """Discord channel

    Sends through webhooks with discord.py over a shared aiohttp session.
    """

    def __init__(self, timeout: float = 30):
        super().__init__()
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.DISCORD

    async def connect(self) -> bool:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        self._connected = True
        logger.info("Discord webhook channel connected")
        return True

    async def disconnect(self):
        if self._session:
            await self._session.close()
            self._session = None
        self._connected = False
        logger.info("Discord webhook channel disconnected")

    async def deliver(self, robot: Robot, payload: MessagePayload) -> Receipt:
        if self._session is None:
            raise DeliveryError("Discord channel is not connected")

        url = robot.options.get("webhook_url")
        if not url:
            raise DeliveryError(
                f"No webhook found for robot {robot.name}. Please initialize the robot first."
            )
        if not payload.content and not payload.embed:
            raise DeliveryError("Message has neither content nor embed")
        if payload.content and len(payload.content) > MAX_CONTENT_LENGTH:
            raise DeliveryError(
                f"Message content exceeds {MAX_CONTENT_LENGTH} characters"
            )

        kwargs: dict[str, Any] = {"wait": True}
        if payload.content:
            kwargs["content"] = payload.content
        if payload.embed:
            kwargs["embeds"] = [build_embed(payload.embed, robot)]
        if robot.options.get("username"):
            kwargs["username"] = robot.options["username"]
        if robot.options.get("avatar_url"):
            kwargs["avatar_url"] = robot.options["avatar_url"]

        try:
            webhook = discord.Webhook.from_url(url, session=self._session)
            message = await webhook.send(**kwargs)
        except ValueError as e:
            raise DeliveryError(f"Invalid webhook URL for robot {robot.name}: {e}") from e
        except discord.RateLimited as e:
            raise RateLimitedError(
                f"Discord rate limit reached for robot {robot.name}", retry_after=e.retry_after
            ) from e
        except discord.HTTPException as e:
            if e.status == 429:
                raise RateLimitedError(
                    f"Discord rate limit reached for robot {robot.name}"
                ) from e
            raise DeliveryError(
                f"Discord rejected message for robot {robot.name}: {e.status} {e.text}"
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"Failed to reach Discord for robot {robot.name}: {e}") from e

        logger.info(f"Robot {robot.name} sent message: {message.id}")
        return Receipt(id=str(message.id), channel=self.channel_type.value)
