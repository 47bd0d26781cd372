"""Discord adapter — gateway client and the Markdown chat transport."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import discord

from hygieia.commands import CommandDispatcher, TurnOpener
from hygieia.config import Config
from hygieia.errors import TransportError
from hygieia.events import InboundMessage, Platform, make_logger
from hygieia.relay import RelaySettings
from hygieia.reminders import ReminderScheduler, TimerFactory
from hygieia.render import DiscordRenderer
from hygieia.templates import DISCORD_COPY

log = make_logger("hygieia.discord")


class DiscordTransport:
    """send / edit / typing on top of a discord.py Client."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def _channel(self, chat_id: str) -> discord.abc.Messageable:
        channel = self.client.get_channel(int(chat_id))
        if channel is None:
            channel = await self.client.fetch_channel(int(chat_id))
        if not isinstance(channel, discord.abc.Messageable):
            raise TransportError("fetch", f"channel {chat_id} is not a text channel")
        return channel

    async def send(self, chat_id: str, text: str) -> str:
        try:
            channel = await self._channel(chat_id)
            message = await channel.send(text)
        except discord.DiscordException as exc:
            raise TransportError("send", str(exc)) from exc
        log.info("MSG OUT channel=%-20s  len=%d", chat_id, len(text))
        return str(message.id)

    async def edit(self, chat_id: str, message_id: str, text: str) -> None:
        try:
            channel = await self._channel(chat_id)
            await discord.PartialMessage(channel=channel, id=int(message_id)).edit(content=text)
        except discord.DiscordException as exc:
            raise TransportError("edit", str(exc)) from exc

    @asynccontextmanager
    async def typing(self, chat_id: str) -> AsyncIterator[None]:
        try:
            channel = await self._channel(chat_id)
        except discord.DiscordException as exc:
            raise TransportError("fetch", str(exc)) from exc
        async with channel.typing():
            yield


def to_inbound(message: discord.Message) -> InboundMessage:
    """Strip a discord.py message down to the fields the dispatcher uses."""
    author = message.author
    return InboundMessage(
        platform=Platform.DISCORD,
        chat_id=str(message.channel.id),
        sender_id=str(author.id),
        sender_name=f"{author.display_name} ({author.name})",
        text=message.content.strip(),
        timestamp=message.created_at,
    )


def build_dispatcher(
    cfg: Config, client: discord.Client, agent: TurnOpener, timers: TimerFactory
) -> CommandDispatcher:
    transport = DiscordTransport(client)
    scheduler = ReminderScheduler(
        Platform.DISCORD,
        timers,
        send=transport.send,
        check_in=DISCORD_COPY.check_in,
        period_seconds=cfg.discord.reminder_period_seconds,
    )
    return CommandDispatcher(
        Platform.DISCORD,
        transport,
        scheduler,
        agent,
        DiscordRenderer(cfg.relay.max_result_chars),
        RelaySettings.from_config(cfg.relay, cfg.discord.max_message_length),
        DISCORD_COPY,
    )


async def start_discord(cfg: Config, agent: TurnOpener, timers: TimerFactory) -> None:
    """Log in to the Discord gateway and hand every message to the dispatcher."""
    if not cfg.discord.bot_token:
        log.warning("No bot token configured — skipping Discord adapter.")
        return

    intents = discord.Intents.default()
    intents.message_content = True
    client = discord.Client(intents=intents)
    dispatcher = build_dispatcher(cfg, client, agent, timers)

    @client.event
    async def on_ready() -> None:
        log.info("Discord bot ready as %s", client.user)

    @client.event
    async def on_message(message: discord.Message) -> None:
        if message.author.bot:
            return
        await dispatcher.handle(to_inbound(message))

    log.info("Connecting to Discord gateway…")
    try:
        await client.start(cfg.discord.bot_token)
    finally:
        log.info("Shutting down Discord client…")
        await dispatcher.scheduler.shutdown()
        await client.close()
