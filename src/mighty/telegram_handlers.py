"""Telegram command handlers."""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from .lifecycle import Lifecycle
from .workflows import format_upcoming, upcoming_entries

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Commands:\n"
    "/upcoming - Entries for the next 7 days\n"
    "/sync - Top up recurring entries and reminders now\n"
    "/help - Show all commands"
)


def _lifecycle(context: ContextTypes.DEFAULT_TYPE) -> Lifecycle:
    return context.bot_data["lifecycle"]


async def start_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start command."""
    await update.message.reply_text(
        "Hey! I'm Mighty. I'll remind you before your scheduled activities.\n\n" + HELP_TEXT
    )


async def help_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /help command."""
    await update.message.reply_text(HELP_TEXT)


async def upcoming_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /upcoming command - list the coming week's entries."""
    lifecycle = _lifecycle(context)
    entries = upcoming_entries(lifecycle.store, lifecycle.session, days=7, as_of=lifecycle.clock().date())
    text = format_upcoming(entries, "Nothing scheduled this week.")
    await update.message.reply_text(text)


async def sync_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /sync command - run an activation pass on demand."""
    lifecycle = _lifecycle(context)
    result = await lifecycle.on_activation()

    lines = [f"Synced {len(result.applied)} recurring series."]
    reminders = result.reminders
    if reminders.permission_denied:
        lines.append("Reminders are off: no chat is allowed to receive them.")
    else:
        lines.append(
            f"Reminders: {len(reminders.scheduled)} new, {len(reminders.rescheduled)} moved, "
            f"{len(reminders.cancelled)} cancelled."
        )
    if reminders.failed:
        lines.append(f"{len(reminders.failed)} reminders failed and will be retried.")
    await update.message.reply_text("\n".join(lines))
