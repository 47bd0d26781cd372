"""Command dispatcher — fixed slash commands, everything else goes to the agent."""

from __future__ import annotations

import time
from collections.abc import AsyncIterable, Callable
from contextlib import aclosing
from typing import Any, Protocol

from hygieia.errors import TransportError
from hygieia.events import InboundMessage, Platform, make_logger
from hygieia.relay import ChatTransport, MessageReconciler, RelaySettings
from hygieia.reminders import ReminderScheduler
from hygieia.render import Renderer
from hygieia.stream import adapt_stream
from hygieia.templates import COMMANDS, ReplyCopy
from hygieia.tracing import get_tracer

log = make_logger("hygieia.commands")
tracer = get_tracer("hygieia.commands")


class TurnOpener(Protocol):
    """Anything that can stream one agent turn (see SymptomTrackerAgent)."""

    def open_turn(
        self,
        text: str,
        *,
        thread_id: str,
        resource_id: str,
        context: dict[str, str],
    ) -> AsyncIterable[Any]: ...


def parse_command(text: str) -> str | None:
    """Return the command name if ``text`` is one of ours, else None.

    Matching is case-insensitive and ignores a Telegram ``@botname`` suffix.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    head = stripped.split(maxsplit=1)[0][1:]
    name = head.split("@", 1)[0].lower()
    return name if name in COMMANDS else None


def turn_context(message: InboundMessage) -> dict[str, str]:
    """Metadata attached to every agent turn: who is talking and when."""
    local = message.timestamp.astimezone()
    return {
        "user": message.sender_name,
        "date": local.strftime("%Y-%m-%d"),
        "time": local.strftime("%H:%M:%S"),
    }


class CommandDispatcher:
    """Routes one platform's inbound messages."""

    def __init__(
        self,
        platform: Platform,
        transport: ChatTransport,
        scheduler: ReminderScheduler,
        agent: TurnOpener,
        renderer: Renderer,
        settings: RelaySettings,
        copy: ReplyCopy,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.platform = platform
        self.transport = transport
        self.scheduler = scheduler
        self.agent = agent
        self.renderer = renderer
        self.settings = settings
        self.copy = copy
        self.clock = clock

    async def handle(self, message: InboundMessage) -> None:
        log.info(
            "MSG IN  %s chat=%s  from=%s  text=%s",
            self.platform.value, message.chat_id, message.sender_id, message.text[:200],
        )
        command = parse_command(message.text)
        if command is not None:
            await self._run_command(command, message.chat_id)
            return

        if not message.text.strip():
            await self._reply(message.chat_id, self.copy.text_only)
            return

        await self._run_turn(message)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _run_command(self, command: str, chat_id: str) -> None:
        log.info("command /%s in %s chat %s", command, self.platform.value, chat_id)
        if command == "start":
            await self._reply(chat_id, self.copy.welcome)
        elif command == "help":
            await self._reply(chat_id, self.copy.help)
        elif command == "reminder_on":
            try:
                await self.scheduler.arm(chat_id)
            except Exception:
                log.exception("arming reminder failed in %s chat %s", self.platform.value, chat_id)
                await self._reply(chat_id, self.copy.failure)
                return
            await self._reply(chat_id, self.copy.reminder_on)
        elif command == "reminder_off":
            try:
                disarmed = await self.scheduler.disarm(chat_id)
            except Exception:
                log.exception("disarming reminder failed in %s chat %s", self.platform.value, chat_id)
                await self._reply(chat_id, self.copy.failure)
                return
            await self._reply(chat_id, self.copy.reminder_off if disarmed else self.copy.reminder_none)

    async def _reply(self, chat_id: str, text: str) -> None:
        try:
            await self.transport.send(chat_id, text)
        except TransportError as exc:
            log.error("failed to reply in %s chat %s: %s", self.platform.value, chat_id, exc)

    # ------------------------------------------------------------------
    # Agent turns
    # ------------------------------------------------------------------

    async def _run_turn(self, message: InboundMessage) -> None:
        chat_id = message.chat_id
        thread_id = f"{self.platform.value}-{chat_id}"
        resource_id = f"{self.platform.value}-{message.sender_id}"
        reconciler = MessageReconciler(
            self.transport, chat_id, self.renderer, self.settings, clock=self.clock
        )

        with tracer.start_as_current_span(
            "relay.turn",
            attributes={"platform": self.platform.value, "thread_id": thread_id},
        ) as span:
            try:
                async with self.transport.typing(chat_id):
                    await reconciler.begin()
                    chunks = self.agent.open_turn(
                        message.text,
                        thread_id=thread_id,
                        resource_id=resource_id,
                        context=turn_context(message),
                    )
                    async with aclosing(adapt_stream(chunks)) as events:
                        async for event in events:
                            await reconciler.feed(event)
                    await reconciler.finish()
            except Exception as exc:
                log.exception("turn failed in %s chat %s", self.platform.value, chat_id)
                span.record_exception(exc)
                await self._reply(chat_id, self.copy.failure)
                return

            span.set_attribute("transcript_len", len(reconciler.transcript))
            span.set_attribute("messages", len(reconciler.messages))
