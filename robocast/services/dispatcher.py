"""Dispatcher: routes a job target to the channel that delivers for it."""
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from loguru import logger

from ..channels.base import Channel, ChannelType, Robot
from ..scheduler.errors import DeliveryError
from ..scheduler.types import MessagePayload, Receipt

logger = logger.bind(module="services.dispatcher")


def load_robots(path: Union[str, Path]) -> Dict[str, Robot]:
    """Load robot definitions from a YAML file.

    The file holds a top-level `robots` mapping of name to options; each
    entry needs a `channel` (discord or webhook) plus that channel's settings.
    A missing file yields no robots.

    Args:
        path: Path to robots.yaml

    Returns:
        Robots by name
    """
    path = Path(path).expanduser()
    if not path.exists():
        logger.warning(f"Robots file not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    robots = {}
    for name, options in (data.get("robots") or {}).items():
        robots[str(name)] = Robot.from_dict(str(name), options)

    logger.info(f"Loaded {len(robots)} robots from {path}")
    return robots


class Dispatcher:
    """Dispatcher

    Owns the delivery channels and the robot table, and delivers a payload
    for a target name.
    """

    def __init__(self, robots: Optional[Dict[str, Robot]] = None):
        self.channels: Dict[ChannelType, Channel] = {}
        self.robots: Dict[str, Robot] = {}
        for robot in (robots or {}).values():
            self.add_robot(robot)

    def register(self, channel: Channel):
        """Register a channel

        Args:
            channel: Channel instance
        """
        self.channels[channel.channel_type] = channel
        logger.info(f"Channel registered: {channel.channel_type.value}")

    def add_robot(self, robot: Robot):
        self.robots[robot.name] = robot

    async def connect_all(self):
        """Connect all channels"""
        for channel in self.channels.values():
            try:
                await channel.connect()
            except Exception as e:
                logger.error(f"Failed to connect {channel.channel_type.value}: {e}")

    async def disconnect_all(self):
        """Disconnect all channels"""
        for channel in self.channels.values():
            try:
                await channel.disconnect()
            except Exception as e:
                logger.error(f"Failed to disconnect {channel.channel_type.value}: {e}")

    async def deliver(self, target: str, payload: MessagePayload) -> Receipt:
        """Deliver a payload to the robot named `target`.

        Args:
            target: Robot name
            payload: Message content

        Returns:
            Delivery receipt

        Raises:
            DeliveryError: unknown robot, channel unavailable, or the channel
                failed to deliver
        """
        robot = self.robots.get(target)
        if robot is None:
            raise DeliveryError(f"Unknown target: {target}")

        channel = self.channels.get(robot.channel)
        if channel is None:
            raise DeliveryError(f"Channel not registered: {robot.channel.value}")

        if not channel.is_connected:
            raise DeliveryError(f"Channel not connected: {robot.channel.value}")

        return await channel.deliver(robot, payload)

    def has_target(self, target: str) -> bool:
        return target in self.robots

    def is_online(self, target: str) -> bool:
        """Whether the robot's channel is registered and connected."""
        robot = self.robots.get(target)
        if robot is None:
            return False
        channel = self.channels.get(robot.channel)
        return channel is not None and channel.is_connected

    def target_count(self) -> int:
        return len(self.robots)

    def list_targets(self) -> List[dict]:
        """List configured robots

        Returns:
            Robot descriptions without secrets
        """
        return [robot.to_dict() for robot in self.robots.values()]

    def get_status(self) -> Dict[str, dict]:
        """Connection status of every channel"""
        return {
            ct.value: {
                "connected": ch.is_connected,
            }
            for ct, ch in self.channels.items()
        }
