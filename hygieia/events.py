"""Event models — inbound chat messages and the typed agent stream events."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Colored log formatter
# ---------------------------------------------------------------------------

_COLORS = {
    "DEBUG":    "\033[36m",    # cyan
    "INFO":     "\033[34m",    # blue
    "WARNING":  "\033[33m",    # yellow
    "ERROR":    "\033[31m",    # red
    "CRITICAL": "\033[1;31m",  # bold red
}
_RESET = "\033[0m"


class ColorFormatter(logging.Formatter):
    """Compact colored formatter for terminal output."""

    def format(self, record: logging.LogRecord) -> str:
        color = _COLORS.get(record.levelname, "")
        ts = self.formatTime(record, "%H:%M:%S")
        line = f"{color}{ts} [{record.name}] {record.getMessage()}{_RESET}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def make_logger(name: str) -> logging.Logger:
    """Return a logger with the colored stream handler attached once."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(ColorFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
    return logger


# ---------------------------------------------------------------------------
# Inbound chat messages
# ---------------------------------------------------------------------------

class Platform(str, Enum):
    """Chat platforms hygieia can be reached on."""
    TELEGRAM = "telegram"
    DISCORD = "discord"


class InboundMessage(BaseModel):
    """One message a user sent to the bot, already stripped of SDK types."""
    platform: Platform
    chat_id: str
    sender_id: str
    sender_name: str = "unknown"
    text: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Agent stream events (closed tagged union)
# ---------------------------------------------------------------------------

class StreamEventKind(str, Enum):
    """The flavour of event produced by one agent turn."""
    TEXT = "text"              # narrative text fragment
    TOOL_CALL = "tool_call"    # agent invoked a tool
    TOOL_RESULT = "tool_result"
    REASONING = "reasoning"    # thinking / reasoning fragment
    ERROR = "error"            # provider failed mid-turn


class TextFragment(BaseModel):
    kind: Literal[StreamEventKind.TEXT] = StreamEventKind.TEXT
    text: str


class ToolCall(BaseModel):
    kind: Literal[StreamEventKind.TOOL_CALL] = StreamEventKind.TOOL_CALL
    name: str
    args: dict[str, Any] = {}


class ToolResult(BaseModel):
    kind: Literal[StreamEventKind.TOOL_RESULT] = StreamEventKind.TOOL_RESULT
    name: str
    result: Any = None


class Reasoning(BaseModel):
    kind: Literal[StreamEventKind.REASONING] = StreamEventKind.REASONING
    text: str


class ErrorEvent(BaseModel):
    """Terminal event: the turn's stream broke.  ``cause`` is for the log only."""
    kind: Literal[StreamEventKind.ERROR] = StreamEventKind.ERROR
    cause: str


StreamEvent = Annotated[
    Union[TextFragment, ToolCall, ToolResult, Reasoning, ErrorEvent],
    Field(discriminator="kind"),
]

STREAM_EVENT_TYPES = (TextFragment, ToolCall, ToolResult, Reasoning, ErrorEvent)
