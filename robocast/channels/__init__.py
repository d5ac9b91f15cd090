"""Delivery channels"""
from .base import Channel, ChannelType, Robot
from .discord import DiscordWebhookChannel
from .webhook import HttpWebhookChannel

__all__ = [
    "Channel",
    "ChannelType",
    "Robot",
    "DiscordWebhookChannel",
    "HttpWebhookChannel",
]
