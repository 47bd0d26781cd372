"""Hygieia — entry point.  Wires memory, the agent, reminders, and the chat adapters."""

import asyncio
import sys

from apscheduler import AsyncScheduler

from hygieia.agent import SymptomTrackerAgent
from hygieia.config import load_config, require_tokens
from hygieia.discord_adapter import start_discord
from hygieia.errors import ConfigError
from hygieia.events import make_logger
from hygieia.memory import MemoryStore
from hygieia.reminders import APSchedulerTimers
from hygieia.telegram_adapter import start_telegram
from hygieia.tracing import configure_tracing

log = make_logger("hygieia.main")


async def main() -> None:
    configure_tracing()
    cfg = load_config()
    try:
        require_tokens(cfg)
    except ConfigError as exc:
        log.error("%s", exc)
        sys.exit(1)

    memory = MemoryStore(cfg)
    await memory.init()

    try:
        agent = SymptomTrackerAgent(cfg, memory)
    except ConfigError as exc:
        log.error("%s", exc)
        await memory.close()
        sys.exit(1)

    log.info("Starting up (model=%s/%s)", cfg.llm.provider, cfg.llm.model)

    try:
        async with AsyncScheduler() as scheduler:
            await scheduler.start_in_background()
            timers = APSchedulerTimers(scheduler)
            async with asyncio.TaskGroup() as tg:
                tg.create_task(start_telegram(cfg, agent, timers))
                tg.create_task(start_discord(cfg, agent, timers))
    finally:
        await memory.close()


if __name__ == "__main__":
    asyncio.run(main())
