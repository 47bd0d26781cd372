"""Error taxonomy shared by the relay, adapters and startup code."""

from __future__ import annotations


class HygieiaError(Exception):
    """Base class for every error raised by hygieia itself."""


class ConfigError(HygieiaError):
    """A required setting (usually a bot token) is missing at startup."""


class TransportError(HygieiaError):
    """A chat-platform call (send / edit / fetch) failed."""

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}" if message else f"{operation} failed")


class StreamError(HygieiaError):
    """The agent provider reported a failure in the middle of a turn."""


class FormatError(HygieiaError):
    """A tool result could not be serialized for display."""
