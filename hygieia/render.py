"""Per-platform rendering of stream events into chat markup."""

from __future__ import annotations

import html
import json
import re
from typing import Any, Protocol

import discord
from pydantic_core import PydanticSerializationError, to_jsonable_python

from hygieia.errors import FormatError
from hygieia.events import (
    ErrorEvent,
    Reasoning,
    StreamEvent,
    TextFragment,
    ToolCall,
    ToolResult,
    make_logger,
)

log = make_logger("hygieia.render")

_TAG_RE = re.compile(r"<(/?)([a-zA-Z]+)[^>]*>")

TRUNCATED_SUFFIX = "... [truncated]"
STREAM_ERROR_TEXT = "Something went wrong while preparing this reply."


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len] + TRUNCATED_SUFFIX


def serialize_result(result: Any) -> str:
    """Pretty JSON for a tool result; raises FormatError when impossible."""
    if isinstance(result, str):
        return result
    try:
        return json.dumps(to_jsonable_python(result), indent=2, ensure_ascii=False)
    except (TypeError, ValueError, PydanticSerializationError) as exc:
        raise FormatError(f"cannot serialize {type(result).__name__}") from exc


def format_tool_result(result: Any, max_chars: int) -> str:
    """Serialized + truncated result, or a placeholder if it can't be shown."""
    try:
        return truncate(serialize_result(result), max_chars)
    except FormatError as exc:
        log.warning("tool result not displayable: %s", exc)
        return f"[Complex data structure - {type(result).__name__}]"


class Renderer(Protocol):
    """Turns one StreamEvent into the markup appended to the transcript."""

    placeholder: str
    truncation_marker: str
    empty_reply: str

    def render(self, event: StreamEvent) -> str: ...

    def cut_point(self, text: str, limit: int) -> int: ...


class TelegramRenderer:
    """Telegram HTML parse mode."""

    placeholder = "Thinking..."
    truncation_marker = "\n\n... [continued]"
    empty_reply = "Sorry, I don't have a reply for that. Could you rephrase?"

    def __init__(self, max_result_chars: int = 500) -> None:
        self.max_result_chars = max_result_chars

    def render(self, event: StreamEvent) -> str:
        if isinstance(event, TextFragment):
            return html.escape(event.text, quote=False)
        if isinstance(event, ToolCall):
            return f"\n🛠️ <b>Using tool:</b> {html.escape(event.name)}\n"
        if isinstance(event, ToolResult):
            body = html.escape(format_tool_result(event.result, self.max_result_chars))
            return f"✨ <b>Result:</b>\n<pre>{body}</pre>\n"
        if isinstance(event, Reasoning):
            return f"\n💭 {html.escape(event.text, quote=False)}\n"
        if isinstance(event, ErrorEvent):
            return f"\n❌ <b>Error:</b> {STREAM_ERROR_TEXT}\n"
        return ""

    def cut_point(self, text: str, limit: int) -> int:
        """Back ``limit`` off so it doesn't land inside a tag, an element or an entity.

        A cut inside an element moves to just before its opening tag, so each
        chunk is well-formed HTML on its own.  An element that starts at 0 and
        is longer than ``limit`` cannot be kept whole; it is split anyway.
        """
        if limit >= len(text):
            return len(text)
        cut = limit
        tag_open = text.rfind("<", 0, cut)
        if tag_open > text.rfind(">", 0, cut):
            cut = tag_open
        open_tags: list[tuple[str, int]] = []
        for match in _TAG_RE.finditer(text, 0, cut):
            closing, name = match.group(1), match.group(2).lower()
            if not closing:
                open_tags.append((name, match.start()))
            elif open_tags and open_tags[-1][0] == name:
                open_tags.pop()
        if open_tags and open_tags[0][1] > 0:
            cut = open_tags[0][1]
        amp = text.rfind("&", 0, cut)
        if amp != -1 and ";" not in text[amp:cut] and cut - amp <= 8:
            cut = amp
        # never back off to nothing, the chunker would stall
        return cut if cut > 0 else limit


class DiscordRenderer:
    """Discord Markdown.  Model text is passed through untouched."""

    placeholder = "Thinking…"
    truncation_marker = "\n… [continued]"
    empty_reply = "Sorry, I don't have a reply for that. Could you rephrase?"

    def __init__(self, max_result_chars: int = 500) -> None:
        self.max_result_chars = max_result_chars

    def render(self, event: StreamEvent) -> str:
        if isinstance(event, TextFragment):
            return event.text
        if isinstance(event, ToolCall):
            return f"\n🛠️ **Using tool:** {discord.utils.escape_markdown(event.name)}\n"
        if isinstance(event, ToolResult):
            body = format_tool_result(event.result, self.max_result_chars).replace("```", "`\u200b``")
            return f"\n✨ **Result:**\n```json\n{body}\n```\n"
        if isinstance(event, Reasoning):
            return f"\n💭 {event.text}\n"
        if isinstance(event, ErrorEvent):
            return f"\n❌ **Error:** {STREAM_ERROR_TEXT}\n"
        return ""

    def cut_point(self, text: str, limit: int) -> int:
        return min(limit, len(text))
