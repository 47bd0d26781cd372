"""Shared fixtures for hygieia tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from hygieia.config import Config
from hygieia.errors import TransportError
from hygieia.memory import MemoryStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Records every send / edit; can be told to fail."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock
        self.calls: list[tuple[str, str, str, float]] = []  # (op, message_id, text, at)
        self.fail_sends = 0       # number of upcoming sends that raise
        self.fail_edits = False
        self.typing_chats: list[str] = []
        self._next_id = 100

    def _at(self) -> float:
        return self.clock() if self.clock else 0.0

    async def send(self, chat_id: str, text: str) -> str:
        if self.fail_sends:
            self.fail_sends -= 1
            raise TransportError("send", "network down")
        self._next_id += 1
        message_id = str(self._next_id)
        self.calls.append(("send", message_id, text, self._at()))
        return message_id

    async def edit(self, chat_id: str, message_id: str, text: str) -> None:
        if self.fail_edits:
            raise TransportError("edit", "message to edit not found")
        self.calls.append(("edit", message_id, text, self._at()))

    @asynccontextmanager
    async def typing(self, chat_id: str) -> AsyncIterator[None]:
        self.typing_chats.append(chat_id)
        yield

    @property
    def sends(self) -> list[str]:
        return [text for op, _, text, _ in self.calls if op == "send"]

    @property
    def edits(self) -> list[str]:
        return [text for op, _, text, _ in self.calls if op == "edit"]

    def shown(self) -> dict[str, str]:
        """What every message currently displays, by message id."""
        latest: dict[str, str] = {}
        for _, message_id, text, _ in self.calls:
            latest[message_id] = text
        return latest


class _FakeTimer:
    def __init__(self, key: str, period: float, callback, next_fire: float) -> None:
        self.key = key
        self.period = period
        self.callback = callback
        self.next_fire = next_fire
        self.active = True

    async def cancel(self) -> None:
        self.active = False


class FakeTimers:
    """TimerFactory driven by ``advance`` instead of wall time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[_FakeTimer] = []

    async def start(self, key: str, period: float, callback) -> _FakeTimer:
        timer = _FakeTimer(key, period, callback, self.now + period)
        self.timers.append(timer)
        return timer

    def active(self) -> list[_FakeTimer]:
        return [t for t in self.timers if t.active]

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.timers if t.active and t.next_fire <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.next_fire)
            self.now = timer.next_fire
            timer.next_fire += timer.period
            await timer.callback()
        self.now = target


@pytest.fixture
def cfg() -> Config:
    """A default Config with no external dependencies."""
    return Config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(clock: FakeClock) -> FakeTransport:
    return FakeTransport(clock)


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
async def memory(tmp_path: Path) -> AsyncIterator[MemoryStore]:
    """A MemoryStore on a throwaway database, semantic recall off."""
    store = MemoryStore(Config(memory={"db_path": str(tmp_path / "memory.db")}))
    await store.init()
    yield store
    await store.close()
