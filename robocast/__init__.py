"""robocast - scheduled message delivery for robot webhooks."""

__version__ = "0.1.0"
