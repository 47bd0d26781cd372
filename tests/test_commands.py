"""Unit tests for hygieia.commands — routing, reminders and agent turns."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from hygieia.commands import CommandDispatcher, parse_command, turn_context
from hygieia.errors import TransportError
from hygieia.events import ErrorEvent, InboundMessage, Platform, TextFragment
from hygieia.relay import RelaySettings
from hygieia.reminders import ReminderScheduler
from hygieia.render import STREAM_ERROR_TEXT, TelegramRenderer
from hygieia.templates import COMMANDS, TELEGRAM_COPY


pytestmark = pytest.mark.unit


class FakeAgent:
    """Plays back scripted turns, one list of events (or an exception) per call."""

    def __init__(self, *turns) -> None:
        self.turns = list(turns)
        self.calls: list[dict] = []

    async def open_turn(self, text, *, thread_id, resource_id, context):
        self.calls.append(
            {"text": text, "thread_id": thread_id, "resource_id": resource_id, "context": context}
        )
        turn = self.turns.pop(0) if self.turns else []
        if isinstance(turn, Exception):
            raise turn
        for event in turn:
            yield event


def _message(text: str, chat_id: str = "42", sender_id: str = "7") -> InboundMessage:
    return InboundMessage(
        platform=Platform.TELEGRAM,
        chat_id=chat_id,
        sender_id=sender_id,
        sender_name="Ada (ada)",
        text=text,
        timestamp=datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def agent() -> FakeAgent:
    return FakeAgent()


@pytest.fixture
def dispatcher(transport, timers, clock, agent) -> CommandDispatcher:
    return _dispatcher_with(agent, transport, timers, clock)


class TestParseCommand:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("/help", "help"),
            ("/HELP", "help"),
            ("  /start  ", "start"),
            ("/reminder_on@hygieia_bot", "reminder_on"),
            ("/reminder_off please", "reminder_off"),
            ("/unknown", None),
            ("help", None),
            ("", None),
        ],
    )
    def test_parse(self, text, expected):
        assert parse_command(text) == expected


class TestTurnContext:
    def test_keys(self):
        ctx = turn_context(_message("hi"))
        assert set(ctx) == {"user", "date", "time"}
        assert ctx["user"] == "Ada (ada)"
        assert len(ctx["date"]) == 10


class TestCommands:
    async def test_help(self, dispatcher, transport, agent):
        await dispatcher.handle(_message("/help"))
        assert transport.sends == [TELEGRAM_COPY.help]
        assert agent.calls == []
        for name in COMMANDS:
            assert f"/{name}" in transport.sends[0]

    async def test_start(self, dispatcher, transport, agent):
        await dispatcher.handle(_message("/start"))
        assert transport.sends == [TELEGRAM_COPY.welcome]
        assert agent.calls == []

    async def test_reminder_on_twice(self, dispatcher, transport, timers):
        await dispatcher.handle(_message("/reminder_on"))
        await dispatcher.handle(_message("/reminder_on"))
        assert transport.sends == [TELEGRAM_COPY.reminder_on] * 2
        assert len(timers.active()) == 1

        await timers.advance(86_400)
        assert len(transport.sends) == 3
        assert "Daily Symptom Check-in" in transport.sends[-1]

    async def test_reminder_off(self, dispatcher, transport, timers):
        await dispatcher.handle(_message("/reminder_on"))
        await dispatcher.handle(_message("/reminder_off"))
        assert transport.sends[-1] == TELEGRAM_COPY.reminder_off
        assert timers.active() == []

    async def test_reminder_off_without_reminder(self, dispatcher, transport):
        await dispatcher.handle(_message("/reminder_off"))
        assert transport.sends == [TELEGRAM_COPY.reminder_none]

    async def test_reminder_off_when_cancel_fails(self, dispatcher, transport, timers):
        await dispatcher.handle(_message("/reminder_on"))
        timers.active()[0].cancel = AsyncMock(side_effect=RuntimeError("backend gone"))

        await dispatcher.handle(_message("/reminder_off"))
        assert transport.sends[-1] == TELEGRAM_COPY.failure
        assert dispatcher.scheduler.is_armed("42")

    async def test_commands_never_raise_on_send_failure(self, dispatcher, transport):
        transport.fail_sends = 1
        await dispatcher.handle(_message("/help"))
        assert transport.sends == []


class TestTurns:
    async def test_empty_text(self, dispatcher, transport, agent):
        await dispatcher.handle(_message(""))
        assert transport.sends == [TELEGRAM_COPY.text_only]
        assert agent.calls == []

    async def test_agent_turn(self, transport, timers, clock):
        agent = FakeAgent([TextFragment(text="How "), TextFragment(text="are you?")])
        d = _dispatcher_with(agent, transport, timers, clock)
        await d.handle(_message("I have a headache"))

        call = agent.calls[0]
        assert call["text"] == "I have a headache"
        assert call["thread_id"] == "telegram-42"
        assert call["resource_id"] == "telegram-7"
        assert call["context"]["user"] == "Ada (ada)"
        assert transport.sends == ["Thinking..."]
        assert transport.edits == ["How are you?"]
        assert transport.typing_chats == ["42"]

    async def test_unknown_command_goes_to_agent(self, dispatcher, agent):
        await dispatcher.handle(_message("/unknown thing"))
        assert agent.calls[0]["text"] == "/unknown thing"

    async def test_error_stream_then_next_message(self, transport, timers, clock):
        agent = FakeAgent(RuntimeError("provider down"), [TextFragment(text="Back again")])
        d = _dispatcher_with(agent, transport, timers, clock)

        await d.handle(_message("first"))
        assert STREAM_ERROR_TEXT in transport.edits[-1]
        assert "provider down" not in transport.edits[-1]

        await d.handle(_message("second"))
        assert transport.edits[-1] == "Back again"
        assert len(agent.calls) == 2

    async def test_error_event_mid_stream(self, transport, timers, clock):
        agent = FakeAgent([TextFragment(text="Partial answer"), ErrorEvent(cause="timeout")])
        d = _dispatcher_with(agent, transport, timers, clock)
        await d.handle(_message("hello"))
        assert transport.edits[-1].startswith("Partial answer")
        assert STREAM_ERROR_TEXT in transport.edits[-1]

    async def test_failure_notice_when_turn_cannot_start(self, dispatcher, transport, agent):
        transport.fail_sends = 1
        await dispatcher.handle(_message("hello"))
        assert transport.sends == [TELEGRAM_COPY.failure]
        assert agent.calls == []

    async def test_agent_stream_closed_when_delivery_fails(self, transport, timers, clock):
        closed = []

        class StreamingAgent:
            async def open_turn(self, text, *, thread_id, resource_id, context):
                try:
                    yield TextFragment(text="first part ")
                    yield TextFragment(text="second part")
                finally:
                    closed.append(True)

        original_send = transport.send
        attempts: list[str] = []

        async def send_fails_on_fallback(chat_id, text):
            attempts.append(text)
            if len(attempts) == 2:
                raise TransportError("send", "network down")
            return await original_send(chat_id, text)

        transport.send = send_fails_on_fallback
        transport.fail_edits = True
        d = _dispatcher_with(
            StreamingAgent(), transport, timers, clock,
            RelaySettings(max_length=4096, update_interval=0),
        )
        await d.handle(_message("hello"))

        assert transport.sends[-1] == TELEGRAM_COPY.failure
        assert closed == [True]


def _dispatcher_with(agent, transport, timers, clock, settings=None) -> CommandDispatcher:
    scheduler = ReminderScheduler(
        Platform.TELEGRAM, timers, send=transport.send,
        check_in=TELEGRAM_COPY.check_in, period_seconds=86_400,
    )
    return CommandDispatcher(
        Platform.TELEGRAM, transport, scheduler, agent, TelegramRenderer(),
        settings or RelaySettings(max_length=4096), TELEGRAM_COPY, clock=clock,
    )
