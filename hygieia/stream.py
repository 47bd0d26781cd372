"""Event stream adapter — normalizes pydantic-ai stream events into StreamEvents.

The agent yields a heterogeneous mix of part starts, part deltas and tool
events.  ``adapt_stream`` maps the kinds the relay understands onto the closed
``StreamEvent`` union and drops everything else, so a new provider event kind
is ignored instead of breaking the turn.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from pydantic_ai.messages import (
    FunctionToolCallEvent,
    FunctionToolResultEvent,
    PartDeltaEvent,
    PartStartEvent,
    TextPart,
    TextPartDelta,
    ThinkingPart,
    ThinkingPartDelta,
)

from hygieia.events import (
    STREAM_EVENT_TYPES,
    ErrorEvent,
    Reasoning,
    StreamEvent,
    TextFragment,
    ToolCall,
    ToolResult,
    make_logger,
)

log = make_logger("hygieia.stream")


def normalize_chunk(chunk: Any) -> StreamEvent | None:
    """Map one provider chunk to a StreamEvent, or None when it is not relayed."""
    if isinstance(chunk, STREAM_EVENT_TYPES):
        return chunk

    if isinstance(chunk, PartStartEvent):
        part = chunk.part
        if isinstance(part, TextPart) and part.content:
            return TextFragment(text=part.content)
        if isinstance(part, ThinkingPart) and part.content:
            return Reasoning(text=part.content)
        return None

    if isinstance(chunk, PartDeltaEvent):
        delta = chunk.delta
        if isinstance(delta, TextPartDelta) and delta.content_delta:
            return TextFragment(text=delta.content_delta)
        if isinstance(delta, ThinkingPartDelta) and delta.content_delta:
            return Reasoning(text=delta.content_delta)
        return None

    if isinstance(chunk, FunctionToolCallEvent):
        return ToolCall(name=chunk.part.tool_name, args=chunk.part.args_as_dict())

    if isinstance(chunk, FunctionToolResultEvent):
        result = chunk.result
        return ToolResult(name=result.tool_name or "unknown", result=result.content)

    return None


async def adapt_stream(chunks: AsyncIterable[Any]) -> AsyncIterator[StreamEvent]:
    """Yield StreamEvents for ``chunks`` in order, one at a time.

    A failure raised by the underlying stream ends the sequence with a single
    ErrorEvent.  Nothing is retried.  Closing this generator closes
    ``chunks`` too.
    """
    try:
        async for chunk in chunks:
            event = normalize_chunk(chunk)
            if event is None:
                log.debug("dropping stream chunk %s", type(chunk).__name__)
                continue
            yield event
    except Exception as exc:
        log.error("agent stream failed: %s", exc, exc_info=exc)
        yield ErrorEvent(cause=f"{type(exc).__name__}: {exc}")
    finally:
        # close the source even when the consumer stops early
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
