"""Mighty Telegram Bot - delivers reminders and keeps recurring entries topped up."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from telegram import Update
from telegram.ext import Application, CommandHandler, MessageHandler, filters

from .adapters.telegram_notifier import TelegramNotifier
from .config import Config, load_config
from .lifecycle import Lifecycle
from .telegram_handlers import help_handler, start_handler, sync_handler, upcoming_handler
from .workflows import build_lifecycle

logger = logging.getLogger(__name__)


class AuthFilter(filters.BaseFilter):
    """Filter to only allow authorized users."""

    def __init__(self, allowed_users: list[int]):
        super().__init__()
        self.allowed_users = allowed_users

    def check_update(self, update: Update) -> bool:
        if not self.allowed_users:
            return True  # No restriction if no users configured
        user = update.effective_user
        if user is None:
            return False
        return user.id in self.allowed_users


def create_application(config: Config | None = None) -> Application:
    """Create and configure the Telegram bot application."""
    if config is None:
        config = load_config()

    if not config.telegram_bot_token:
        raise ValueError(
            "TELEGRAM_BOT_TOKEN not configured. "
            "Get a token from @BotFather on Telegram and add it to mighty.conf"
        )

    app = Application.builder().token(config.telegram_bot_token).build()
    auth_filter = AuthFilter(config.telegram_allowed_users)

    app.add_handler(CommandHandler("start", start_handler, filters=auth_filter))
    app.add_handler(CommandHandler("help", help_handler, filters=auth_filter))
    app.add_handler(CommandHandler("upcoming", upcoming_handler, filters=auth_filter))
    app.add_handler(CommandHandler("sync", sync_handler, filters=auth_filter))

    async def unauthorized_handler(update: Update, context):
        user = update.effective_user
        logger.warning(f"Unauthorized access attempt from user {user.id} ({user.username})")
        await update.message.reply_text(
            "Unauthorized. This bot is private.\n"
            "If you're the owner, add your Telegram user ID to TELEGRAM_ALLOWED_USERS in mighty.conf"
        )

    if config.telegram_allowed_users:
        app.add_handler(MessageHandler(~auth_filter & filters.ALL, unauthorized_handler))

    return app


async def run_activation(lifecycle: Lifecycle) -> None:
    """Periodic activation pass: reconcile series, then resync reminders."""
    result = await lifecycle.on_activation()
    if result.reminders.permission_denied:
        logger.warning("Reminders not scheduled: notification permission denied")


def setup_scheduler(config: Config, lifecycle: Lifecycle, scheduler: AsyncIOScheduler) -> AsyncIOScheduler:
    """Schedule the recurring activation pass."""
    scheduler.add_job(
        run_activation,
        IntervalTrigger(minutes=config.resync_interval_minutes),
        args=[lifecycle],
        id="activation",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Scheduled activation pass every {config.resync_interval_minutes} minutes")
    return scheduler


def run_bot():
    """Run the Telegram bot."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    config = load_config()
    app = create_application(config)
    scheduler = AsyncIOScheduler(timezone=config.timezone or "America/Toronto")
    notifier = TelegramNotifier(
        app.bot,
        scheduler,
        config.telegram_allowed_users,
        timezone=config.timezone,
        max_jobs=config.max_pending_reminders,
    )
    lifecycle = build_lifecycle(config, notifier)
    app.bot_data["lifecycle"] = lifecycle
    setup_scheduler(config, lifecycle, scheduler)

    async def post_init(application: Application) -> None:
        """Start scheduler and run the launch activation once the event loop is up."""
        scheduler.start()
        logger.info("Scheduler started")
        await lifecycle.scheduler.restore()
        await run_activation(lifecycle)

    app.post_init = post_init

    if config.telegram_allowed_users:
        logger.info(f"Bot authorized for users: {config.telegram_allowed_users}")
    else:
        logger.warning("No TELEGRAM_ALLOWED_USERS configured - bot is open to anyone and reminders are off!")

    logger.info("Starting Mighty Telegram bot...")
    app.run_polling(allowed_updates=Update.ALL_TYPES)
