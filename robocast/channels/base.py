"""Delivery channel base class."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..scheduler.types import MessagePayload, Receipt


class ChannelType(Enum):
    """Channel type"""
    DISCORD = "discord"
    WEBHOOK = "webhook"


@dataclass
class Robot:
    """A named delivery target.

    Attributes:
        name: Target key used by scheduled jobs
        channel: Channel that delivers for this robot
        options: Channel-specific settings (webhook_url, username, headers...)
    """
    name: str
    channel: ChannelType
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "Robot":
        data = dict(data or {})
        channel = ChannelType(data.pop("channel", ChannelType.DISCORD.value))
        return cls(name=name, channel=channel, options=data)

    def to_dict(self) -> dict[str, Any]:
        """Public view, without secrets such as webhook URLs or headers."""
        return {
            "name": self.name,
            "channel": self.channel.value,
            "username": self.options.get("username"),
        }


class Channel(ABC):
    """Channel abstract base class

    Every channel implementation subclasses this and implements the
    abstract methods.
    """

    def __init__(self):
        self._connected = False

    @property
    @abstractmethod
    def channel_type(self) -> ChannelType:
        """Channel type"""
        pass

    @property
    def is_connected(self) -> bool:
        return self._connected

    @abstractmethod
    async def connect(self) -> bool:
        """Open the channel's resources.

        Returns:
            Whether the channel is ready to deliver
        """
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    async def deliver(self, robot: Robot, payload: MessagePayload) -> Receipt:
        """Deliver a message on behalf of a robot.

        Args:
            robot: Target robot configuration
            payload: Message content

        Returns:
            Receipt with the id assigned by the remote side

        Raises:
            DeliveryError: the message could not be delivered
        """
        pass
