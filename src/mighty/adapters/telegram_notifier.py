"""Telegram reminder adapter - APScheduler date jobs that message a Telegram chat."""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

import telegramify_markdown
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from telegram import Bot
from telegram.error import TelegramError

from mighty.ports.notifier import SchedulingFailure

logger = logging.getLogger(__name__)

JOB_PREFIX = "reminder:"


def _job_id(entry_id: str) -> str:
    return f"{JOB_PREFIX}{entry_id}"


class TelegramNotifier:
    """
    Delivers reminders as Telegram messages at their fire time.

    Implements NotificationCapability protocol. Each reminder is one
    APScheduler job keyed by entry id, so scheduling again replaces it.
    """

    def __init__(
        self,
        bot: Bot,
        scheduler: AsyncIOScheduler,
        chat_ids: list[int],
        timezone: str = "America/Toronto",
        max_jobs: int = 60,
    ):
        self.bot = bot
        self.scheduler = scheduler
        self.chat_ids = chat_ids
        self.timezone = ZoneInfo(timezone)
        self.max_jobs = max_jobs
        self._keys: dict[str, tuple[str, ...]] = {}

    def _now(self) -> datetime:
        """Local wall-clock time, naive, matching entry times."""
        return datetime.now(self.timezone).replace(tzinfo=None)

    def _reminder_jobs(self) -> list:
        return [job for job in self.scheduler.get_jobs() if job.id.startswith(JOB_PREFIX)]

    async def request_permission(self) -> bool:
        """Granted when there is at least one chat to deliver to."""
        if not self.chat_ids:
            logger.warning("No TELEGRAM_ALLOWED_USERS configured - nowhere to send reminders")
            return False
        return True

    async def schedule(
        self,
        entry_id: str,
        fire_at: datetime,
        title: str,
        body: str,
        keys: tuple[str, ...] = (),
    ) -> None:
        """Add (or replace) the reminder job for an entry."""
        if fire_at <= self._now():
            raise SchedulingFailure(f"Fire time {fire_at} is in the past")

        job_id = _job_id(entry_id)
        if self.scheduler.get_job(job_id) is None and len(self._reminder_jobs()) >= self.max_jobs:
            raise SchedulingFailure(f"Pending reminder limit of {self.max_jobs} reached")

        try:
            self.scheduler.add_job(
                self.deliver,
                DateTrigger(run_date=fire_at, timezone=self.timezone),
                args=[entry_id, title, body],
                id=job_id,
                name=f"{title}: {body}",
                replace_existing=True,
            )
        except (ValueError, TypeError, LookupError) as e:
            raise SchedulingFailure(f"Failed to add job for {entry_id}: {e}") from e
        self._keys[entry_id] = keys
        logger.debug(f"Reminder {entry_id} scheduled for {fire_at}")

    async def cancel(self, entry_id: str) -> None:
        try:
            self.scheduler.remove_job(_job_id(entry_id))
        except JobLookupError:
            pass  # Already fired or never scheduled
        self._keys.pop(entry_id, None)

    async def cancel_all(self, key: str) -> list[str]:
        entry_ids = [entry_id for entry_id, keys in self._keys.items() if key in keys]
        for entry_id in entry_ids:
            await self.cancel(entry_id)
        return entry_ids

    async def pending(self) -> dict[str, datetime]:
        """
        Reminder jobs still queued in this process.

        Jobs live in the scheduler's in-memory job store, so after a restart
        this is empty and the next resync schedules every due reminder afresh.
        """
        return {
            job.id.removeprefix(JOB_PREFIX): job.next_run_time.astimezone(self.timezone).replace(tzinfo=None)
            for job in self._reminder_jobs()
            if job.next_run_time is not None
        }

    async def deliver(self, entry_id: str, title: str, body: str) -> None:
        """Job callback: send the reminder to every allowed chat."""
        self._keys.pop(entry_id, None)
        text = telegramify_markdown.markdownify(f"**{title}**\n\n{body}")
        logger.info(f"Sending reminder {entry_id}: {body}")
        for chat_id in self.chat_ids:
            try:
                await self.bot.send_message(chat_id=chat_id, text=text, parse_mode="MarkdownV2")
            except TelegramError as e:
                logger.error(f"Failed to send reminder {entry_id} to chat {chat_id}: {e}")
