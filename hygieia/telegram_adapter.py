"""Telegram adapter — polling, command menu, and the HTML chat transport."""

from __future__ import annotations

import asyncio
import html
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from telegram import Bot, BotCommand, Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.ext import ApplicationBuilder, ContextTypes, MessageHandler, filters

from hygieia.commands import CommandDispatcher, TurnOpener
from hygieia.config import Config
from hygieia.errors import TransportError
from hygieia.events import InboundMessage, Platform, make_logger
from hygieia.relay import RelaySettings
from hygieia.reminders import ReminderScheduler, TimerFactory
from hygieia.render import TelegramRenderer
from hygieia.templates import COMMANDS, TELEGRAM_COPY

log = make_logger("hygieia.telegram")

_TAG_RE = re.compile(r"<[^>]+>")


def _plain(text: str) -> str:
    """HTML markup → plain text, for when Telegram refuses to parse it."""
    return html.unescape(_TAG_RE.sub("", text))


def _is_parse_error(exc: BadRequest) -> bool:
    return "can't parse entities" in exc.message.lower()


def _is_not_modified(exc: BadRequest) -> bool:
    return "message is not modified" in exc.message.lower()


# ---------------------------------------------------------------------------
# Typing indicator
# ---------------------------------------------------------------------------

async def _typing_loop(bot: Bot, chat_id: str) -> None:
    """Send 'typing' action every 4s until cancelled."""
    while True:
        try:
            await bot.send_chat_action(chat_id=int(chat_id), action=ChatAction.TYPING)
        except TelegramError as exc:
            log.debug("typing action failed for chat %s: %s", chat_id, exc)
        await asyncio.sleep(4)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class TelegramTransport:
    """send / edit / typing on top of a python-telegram-bot Bot."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send(self, chat_id: str, text: str) -> str:
        try:
            try:
                message = await self.bot.send_message(
                    chat_id=int(chat_id), text=text, parse_mode=ParseMode.HTML
                )
            except BadRequest as exc:
                if not _is_parse_error(exc):
                    raise
                log.warning("chat %s: HTML rejected (%s), sending plain text", chat_id, exc.message)
                message = await self.bot.send_message(chat_id=int(chat_id), text=_plain(text))
        except TelegramError as exc:
            raise TransportError("send", str(exc)) from exc
        log.info("MSG OUT chat_id=%-14s  len=%d", chat_id, len(text))
        return str(message.message_id)

    async def edit(self, chat_id: str, message_id: str, text: str) -> None:
        try:
            try:
                await self.bot.edit_message_text(
                    text=text,
                    chat_id=int(chat_id),
                    message_id=int(message_id),
                    parse_mode=ParseMode.HTML,
                )
            except BadRequest as exc:
                if _is_not_modified(exc):
                    return
                if not _is_parse_error(exc):
                    raise
                log.warning("chat %s: HTML rejected (%s), editing as plain text", chat_id, exc.message)
                await self.bot.edit_message_text(
                    text=_plain(text), chat_id=int(chat_id), message_id=int(message_id)
                )
        except TelegramError as exc:
            raise TransportError("edit", str(exc)) from exc

    @asynccontextmanager
    async def typing(self, chat_id: str) -> AsyncIterator[None]:
        task = asyncio.create_task(_typing_loop(self.bot, chat_id))
        log.debug("typing indicator ON for chat %s", chat_id)
        try:
            yield
        finally:
            task.cancel()
            log.debug("typing indicator OFF for chat %s", chat_id)


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------

def to_inbound(update: Update) -> InboundMessage | None:
    """Strip a Telegram update down to the fields the dispatcher uses."""
    message = update.message
    if message is None:
        return None
    chat_id = str(message.chat.id)
    user = message.from_user
    if user is not None:
        sender_id = str(user.id)
        sender_name = f"{user.first_name or 'unknown'} ({user.username or 'unknown'})"
    else:
        sender_id = f"anonymous-{chat_id}"
        sender_name = "unknown"
    return InboundMessage(
        platform=Platform.TELEGRAM,
        chat_id=chat_id,
        sender_id=sender_id,
        sender_name=sender_name,
        text=message.text or "",
        timestamp=message.date,
    )


def build_dispatcher(
    cfg: Config, bot: Bot, agent: TurnOpener, timers: TimerFactory
) -> CommandDispatcher:
    transport = TelegramTransport(bot)
    scheduler = ReminderScheduler(
        Platform.TELEGRAM,
        timers,
        send=transport.send,
        check_in=TELEGRAM_COPY.check_in,
        period_seconds=cfg.telegram.reminder_period_seconds,
    )
    return CommandDispatcher(
        Platform.TELEGRAM,
        transport,
        scheduler,
        agent,
        TelegramRenderer(cfg.relay.max_result_chars),
        RelaySettings.from_config(cfg.relay, cfg.telegram.max_message_length),
        TELEGRAM_COPY,
    )


async def start_telegram(cfg: Config, agent: TurnOpener, timers: TimerFactory) -> None:
    """Start the Telegram bot and hand every message to the dispatcher."""
    if not cfg.telegram.bot_token:
        log.warning("No bot token configured — skipping Telegram adapter.")
        return

    token_preview = cfg.telegram.bot_token[:8] + "…"
    log.info("Building Telegram app (token=%s)", token_preview)

    # Updates are handled as independent tasks so one slow turn
    # doesn't hold up every other chat.
    app = ApplicationBuilder().token(cfg.telegram.bot_token).concurrent_updates(True).build()
    dispatcher = build_dispatcher(cfg, app.bot, agent, timers)

    log.info("Connecting to Telegram API…")
    try:
        bot_info = await app.bot.get_me()
        log.info(
            "Connected as @%s  (id=%s, name=%s)",
            bot_info.username, bot_info.id, bot_info.full_name,
        )
    except TelegramError as exc:
        log.error("Failed to connect to Telegram API: %s", exc)
        return

    try:
        await app.bot.set_my_commands(
            [BotCommand(name, description) for name, description in COMMANDS.items()]
        )
        log.info("Commands registered successfully")
    except TelegramError as exc:
        log.error("Failed to register commands: %s", exc)

    async def on_message(update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        inbound = to_inbound(update)
        if inbound is None:
            return
        await dispatcher.handle(inbound)

    app.add_handler(MessageHandler(filters.UpdateType.MESSAGE, on_message))

    # Use the low-level async lifecycle instead of run_polling(), which tries
    # to manage its own event loop and conflicts with the already-running one.
    await app.initialize()
    await app.start()
    await app.updater.start_polling()
    log.info("Polling loop started — listening for messages…")

    # Block forever (until the task is cancelled on shutdown)
    try:
        await asyncio.Event().wait()
    finally:
        log.info("Shutting down Telegram polling…")
        await dispatcher.scheduler.shutdown()
        await app.updater.stop()
        await app.stop()
        await app.shutdown()
