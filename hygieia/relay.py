"""Message reconciler — maps one streamed agent turn onto chat messages.

A turn starts with a placeholder message that is edited in place as text
arrives.  Two constraints shape every write:

  * a message never exceeds the platform's ``max_length``;
  * consecutive edits of one message are at least ``update_interval`` apart.

While streaming, content that no longer fits is held back; the final flush
(always performed, whatever the throttle says) splits it across as many
messages as needed, marking each continued one with the renderer's
truncation marker.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Protocol

from pydantic import BaseModel

from hygieia.config import RelayConfig
from hygieia.errors import TransportError
from hygieia.events import StreamEvent, StreamEventKind, make_logger
from hygieia.render import Renderer

log = make_logger("hygieia.relay")


class ChatTransport(Protocol):
    """The three platform primitives the relay needs.

    ``send`` and ``edit`` raise TransportError on failure.
    """

    async def send(self, chat_id: str, text: str) -> str: ...

    async def edit(self, chat_id: str, message_id: str, text: str) -> None: ...

    def typing(self, chat_id: str) -> AbstractAsyncContextManager[None]: ...


class RelaySettings(BaseModel):
    max_length: int
    update_interval: float = 0.5      # seconds
    show_tool_results: bool = False

    @classmethod
    def from_config(cls, relay: RelayConfig, max_length: int) -> RelaySettings:
        return cls(
            max_length=max_length,
            update_interval=relay.update_interval_ms / 1000,
            show_tool_results=relay.show_tool_results,
        )


class OutboundMessage(BaseModel):
    """A platform message this turn owns, with what it currently shows."""
    message_id: str
    text: str
    last_edit_at: float

    @property
    def length(self) -> int:
        return len(self.text)


class ReconcilerState(str, Enum):
    IDLE = "idle"               # nothing sent yet
    STREAMING = "streaming"     # placeholder out, events arriving
    FINALIZING = "finalizing"   # final flush done or in progress, no more events


def split_chunks(
    text: str,
    max_length: int,
    marker: str,
    cut_point: Callable[[str, int], int] | None = None,
) -> list[str]:
    """Split ``text`` into message-sized chunks.

    Text that fits is returned whole.  Otherwise every chunk carries at most
    ``max_length - len(marker)`` characters of content; all but the last end
    with ``marker``.
    """
    if len(text) <= max_length:
        return [text]
    capacity = max_length - len(marker)
    if capacity <= 0:
        raise ValueError(f"max_length {max_length} leaves no room next to the truncation marker")

    chunks: list[str] = []
    rest = text
    while len(rest) > capacity:
        cut = cut_point(rest, capacity) if cut_point else capacity
        chunks.append(rest[:cut] + marker)
        rest = rest[cut:]
    if rest:
        chunks.append(rest)
    return chunks


class MessageReconciler:
    """Owns the render buffer and outbound messages of a single turn."""

    def __init__(
        self,
        transport: ChatTransport,
        chat_id: str,
        renderer: Renderer,
        settings: RelaySettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.chat_id = chat_id
        self.renderer = renderer
        self.settings = settings
        self.clock = clock
        self.state = ReconcilerState.IDLE
        self.messages: list[OutboundMessage] = []
        self._segments: list[str] = []
        self._deferred = False

    @property
    def transcript(self) -> str:
        return "".join(self._segments)

    def _require(self, state: ReconcilerState) -> None:
        if self.state is not state:
            raise RuntimeError(f"reconciler is {self.state.value}, expected {state.value}")

    def _updates_immediately(self, event: StreamEvent) -> bool:
        if event.kind == StreamEventKind.TOOL_RESULT:
            return self.settings.show_tool_results
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def begin(self) -> None:
        """Send the placeholder message.  Raises TransportError if that fails."""
        self._require(ReconcilerState.IDLE)
        placeholder = self.renderer.placeholder
        message_id = await self.transport.send(self.chat_id, placeholder)
        self.messages.append(
            OutboundMessage(message_id=message_id, text=placeholder, last_edit_at=self.clock())
        )
        self.state = ReconcilerState.STREAMING
        log.debug("turn started in chat %s (placeholder %s)", self.chat_id, message_id)

    async def feed(self, event: StreamEvent) -> None:
        """Append one event and edit the live message if allowed."""
        self._require(ReconcilerState.STREAMING)
        segment = self.renderer.render(event)
        if not segment:
            return
        self._segments.append(segment)

        if not self._updates_immediately(event):
            return
        current = self.messages[-1]
        if self.clock() - current.last_edit_at < self.settings.update_interval:
            return

        text = self.transcript
        if not text.strip():
            return
        if len(text) > self.settings.max_length:
            if not self._deferred:
                log.debug(
                    "chat %s: %d chars exceed %d, holding edits until the final flush",
                    self.chat_id, len(text), self.settings.max_length,
                )
                self._deferred = True
            return
        await self._write(len(self.messages) - 1, text)

    async def finish(self) -> list[OutboundMessage]:
        """Mandatory final flush; ignores the throttle.  Returns the messages."""
        self._require(ReconcilerState.STREAMING)
        self.state = ReconcilerState.FINALIZING

        text = self.transcript
        if not text.strip():
            text = self.renderer.empty_reply
        chunks = split_chunks(
            text,
            self.settings.max_length,
            self.renderer.truncation_marker,
            self.renderer.cut_point,
        )
        for index, chunk in enumerate(chunks):
            await self._write(index, chunk)

        log.info(
            "turn done in chat %s  chars=%d  messages=%d",
            self.chat_id, len(text), len(self.messages),
        )
        return self.messages

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _write(self, index: int, text: str) -> None:
        """Make message ``index`` show ``text``: edit, or send if it's new.

        A failed edit falls back to sending a fresh message in that slot.
        A failed send propagates.
        """
        if index >= len(self.messages):
            message_id = await self.transport.send(self.chat_id, text)
            self.messages.append(
                OutboundMessage(message_id=message_id, text=text, last_edit_at=self.clock())
            )
            return

        current = self.messages[index]
        if current.text == text:
            return
        try:
            await self.transport.edit(self.chat_id, current.message_id, text)
        except TransportError as exc:
            log.warning(
                "chat %s: editing message %s failed (%s), sending a new one",
                self.chat_id, current.message_id, exc,
            )
            message_id = await self.transport.send(self.chat_id, text)
            self.messages[index] = OutboundMessage(
                message_id=message_id, text=text, last_edit_at=self.clock()
            )
            return
        current.text = text
        current.last_edit_at = self.clock()
