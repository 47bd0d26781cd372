"""Reminders — per-chat recurring check-in timers.

``ReminderScheduler`` owns the chat → timer-handle map for one platform.  The
timers themselves come from a ``TimerFactory``: in production that is
``APSchedulerTimers`` (one interval schedule per chat on a shared APScheduler
instance); tests plug in a fake clock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Protocol

from apscheduler import AsyncScheduler, ConflictPolicy
from apscheduler.triggers.interval import IntervalTrigger

from hygieia.errors import TransportError
from hygieia.events import Platform, make_logger

log = make_logger("hygieia.reminders")

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    async def cancel(self) -> None: ...


class TimerFactory(Protocol):
    async def start(self, key: str, period: float, callback: TimerCallback) -> TimerHandle:
        """Install a recurring timer whose first tick is one period from now."""
        ...


# ---------------------------------------------------------------------------
# APScheduler-backed timers
# ---------------------------------------------------------------------------

async def _tick(callback: TimerCallback) -> None:
    await callback()


class _ScheduleHandle:
    def __init__(self, scheduler: AsyncScheduler, schedule_id: str) -> None:
        self._scheduler = scheduler
        self.schedule_id = schedule_id

    async def cancel(self) -> None:
        await self._scheduler.remove_schedule(self.schedule_id)


class APSchedulerTimers:
    """Recurring timers as interval schedules on a running AsyncScheduler."""

    def __init__(self, scheduler: AsyncScheduler) -> None:
        self.scheduler = scheduler

    async def start(self, key: str, period: float, callback: TimerCallback) -> TimerHandle:
        first_fire = datetime.now(timezone.utc) + timedelta(seconds=period)
        schedule_id = await self.scheduler.add_schedule(
            _tick,
            IntervalTrigger(seconds=period, start_time=first_fire),
            id=key,
            args=[callback],
            conflict_policy=ConflictPolicy.replace,
        )
        return _ScheduleHandle(self.scheduler, schedule_id)


# ---------------------------------------------------------------------------
# ReminderScheduler
# ---------------------------------------------------------------------------

class ReminderScheduler:
    """Arm / disarm check-in reminders, at most one live timer per chat."""

    def __init__(
        self,
        platform: Platform,
        timers: TimerFactory,
        send: Callable[[str, str], Awaitable[object]],
        check_in: Callable[[datetime], str],
        period_seconds: float,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.platform = platform
        self.timers = timers
        self.send = send
        self.check_in = check_in
        self.period_seconds = period_seconds
        self.now = now
        self._handles: dict[str, TimerHandle] = {}
        # arm/disarm await the timer backend; the lock keeps
        # look-up, cancel and install together.
        self._lock = asyncio.Lock()

    def is_armed(self, chat_id: str) -> bool:
        return chat_id in self._handles

    def armed_chats(self) -> list[str]:
        return sorted(self._handles)

    def _key(self, chat_id: str) -> str:
        return f"reminder:{self.platform.value}:{chat_id}"

    async def arm(self, chat_id: str) -> bool:
        """(Re)arm the check-in timer.  Returns True if one was replaced."""
        async with self._lock:
            previous = self._handles.pop(chat_id, None)
            if previous is not None:
                try:
                    await previous.cancel()
                except Exception:
                    self._handles[chat_id] = previous
                    raise
            self._handles[chat_id] = await self.timers.start(
                self._key(chat_id), self.period_seconds, partial(self._fire, chat_id)
            )
        log.info(
            "%s reminder for %s chat %s (every %ss)",
            "re-armed" if previous else "armed",
            self.platform.value, chat_id, self.period_seconds,
        )
        return previous is not None

    async def disarm(self, chat_id: str) -> bool:
        """Cancel the chat's timer.  False means there was nothing to disarm.

        If the backend fails to cancel, the timer stays registered and the
        error propagates.
        """
        async with self._lock:
            handle = self._handles.pop(chat_id, None)
            if handle is None:
                log.debug("no reminder to disarm for %s chat %s", self.platform.value, chat_id)
                return False
            try:
                await handle.cancel()
            except Exception:
                self._handles[chat_id] = handle
                raise
        log.info("disarmed reminder for %s chat %s", self.platform.value, chat_id)
        return True

    async def shutdown(self) -> None:
        """Cancel every timer (process is going away)."""
        async with self._lock:
            handles, self._handles = self._handles, {}
            for chat_id, handle in handles.items():
                try:
                    await handle.cancel()
                except Exception:
                    log.exception("failed to cancel reminder for chat %s", chat_id)

    async def _fire(self, chat_id: str) -> None:
        text = self.check_in(self.now())
        try:
            await self.send(chat_id, text)
        except TransportError as exc:
            # stays armed; the next tick tries again
            log.error("failed to send check-in to %s chat %s: %s", self.platform.value, chat_id, exc)
            return
        log.info("sent check-in to %s chat %s", self.platform.value, chat_id)
