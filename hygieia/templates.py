"""Fixed reply copy for each platform (Telegram HTML / Discord Markdown)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

COMMANDS: dict[str, str] = {
    "start": "Start the symptom tracker and set up reminders",
    "reminder_on": "Turn on symptom check-in reminders",
    "reminder_off": "Turn off symptom check-in reminders",
    "help": "Show available commands",
}


def format_day(moment: datetime) -> str:
    """'Monday, October 19' — no zero padding, no year."""
    return f"{moment:%A, %B} {moment.day}"


class ReplyCopy(BaseModel):
    welcome: str
    help: str
    reminder_on: str
    reminder_off: str
    reminder_none: str
    text_only: str = "Sorry, I can only process text messages."
    failure: str = "Sorry, I encountered an error processing your message. Please try again."
    check_in_template: str

    def check_in(self, moment: datetime) -> str:
        return self.check_in_template.format(date=format_day(moment))


TELEGRAM_COPY = ReplyCopy(
    welcome=(
        "👋 <b>Welcome to your Symptom Tracker Assistant!</b>\n\n"
        "I'm here to help you track your symptoms for chronic conditions and "
        "prepare detailed reports for your doctor visits.\n\n"
        "✅ I can check in with you daily to record your symptoms\n"
        "✅ Track patterns and changes over time\n"
        "✅ Generate comprehensive medical reports when needed\n\n"
        "Let's get started! How are you feeling today?\n\n"
        "Use /reminder_on to activate daily check-in reminders."
    ),
    help=(
        "🔍 <b>Available Commands:</b>\n\n"
        "• <code>/start</code> - Initialize the symptom tracker\n"
        "• <code>/reminder_on</code> - Activate daily check-in reminders\n"
        "• <code>/reminder_off</code> - Deactivate daily reminders\n"
        "• <code>/help</code> - Display this help message\n\n"
        "<b>How to use:</b>\n"
        "• Simply tell me how you're feeling each day\n"
        "• Request a 'doctor report' when you need a summary\n"
        "• The more consistent you are, the better patterns I can identify"
    ),
    reminder_on=(
        "✅ <b>Daily Check-in Reminders Activated</b>\n\n"
        "I'll send you a symptom check-in reminder once every 24 hours to help "
        "maintain consistent tracking.\n\n"
        "Consistent tracking helps identify patterns that might otherwise be missed!"
    ),
    reminder_off=(
        "❌ <b>Daily Check-in Reminders Deactivated</b>\n\n"
        "I've turned off your daily symptom check-in reminders. You can turn "
        "them back on anytime with /reminder_on"
    ),
    reminder_none=(
        "You don't currently have any active reminders. "
        "Use /reminder_on to activate daily check-ins."
    ),
    check_in_template=(
        "📋 <b>Daily Symptom Check-in</b> | {date}\n\n"
        "Hi there! It's time for your daily symptom tracking. How are you "
        "feeling today? Any changes from yesterday?"
    ),
)


DISCORD_COPY = ReplyCopy(
    welcome="👋 **Welcome to Symptom Tracker!**\nUse `/reminder_on` to start daily check-ins.",
    help=(
        "**Commands:**\n"
        "`/start` – Welcome message\n"
        "`/reminder_on` – Turn on daily check-in\n"
        "`/reminder_off` – Turn off daily check-in\n"
        "`/help` – Show this message\n"
        "Otherwise, just tell me how you feel today!"
    ),
    reminder_on="✅ Daily reminders activated!",
    reminder_off="❌ Daily reminders deactivated!",
    reminder_none="No active reminders. Use `/reminder_on` to start.",
    failure="❌ Sorry, something went wrong.",
    check_in_template="📋 **Daily Symptom Check-in | {date}**\nHow are you feeling today?",
)
