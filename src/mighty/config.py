"""Configuration management for Mighty."""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

MIGHTY_HOME = Path(os.environ.get("MIGHTY_HOME", Path.home() / "mighty"))
CONFIG_FILE = MIGHTY_HOME / "config" / "mighty.conf"
DATA_DIR = MIGHTY_HOME / "data"


@dataclass
class Config:
    """Mighty configuration."""

    reminder_lead_minutes: int = 60
    notification_horizon_days: int = 14
    materialization_horizon_days: int = 90
    max_pending_reminders: int = 60
    store_file: str = ""
    owner_id: str | None = None
    timezone: str = "America/Toronto"
    # Telegram reminder delivery
    telegram_bot_token: str = ""
    telegram_allowed_users: list[int] = field(default_factory=list)
    resync_interval_minutes: int = 15

    @property
    def lead_time(self) -> timedelta:
        return timedelta(minutes=self.reminder_lead_minutes)

    @property
    def notification_horizon(self) -> timedelta:
        return timedelta(days=self.notification_horizon_days)

    @property
    def materialization_horizon(self) -> timedelta:
        return timedelta(days=self.materialization_horizon_days)

    @property
    def store_path(self) -> Path:
        if self.store_file:
            return Path(self.store_file).expanduser()
        return DATA_DIR / "entries.json"


def _parse_int(key: str, value: str, default: int, minimum: int = 0) -> int:
    """Parse a non-negative integer setting, keeping the default on bad input."""
    try:
        parsed = int(value)
    except ValueError:
        logger.warning(f"Invalid {key.upper()} value '{value}', using {default}")
        return default
    if parsed < minimum:
        logger.warning(f"{key.upper()} must be at least {minimum}, using {default}")
        return default
    return parsed


def load_config() -> Config:
    """Load configuration from mighty.conf file."""
    config = Config()

    if not CONFIG_FILE.exists():
        return config

    for line in CONFIG_FILE.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = value.strip()

        # Handle quoted values with inline comments: "value" # comment
        if value.startswith('"') or value.startswith("'"):
            quote = value[0]
            end_quote = value.find(quote, 1)
            value = value[1:end_quote] if end_quote != -1 else value[1:]
        elif "#" in value:
            # Unquoted: strip inline comments
            value = value.split("#")[0].strip()

        match key:
            case "reminder_lead_minutes":
                config.reminder_lead_minutes = _parse_int(key, value, config.reminder_lead_minutes)
            case "notification_horizon_days":
                config.notification_horizon_days = _parse_int(key, value, config.notification_horizon_days, 1)
            case "materialization_horizon_days":
                config.materialization_horizon_days = _parse_int(
                    key, value, config.materialization_horizon_days, 1
                )
            case "max_pending_reminders":
                config.max_pending_reminders = _parse_int(key, value, config.max_pending_reminders, 1)
            case "store_file":
                config.store_file = value
            case "owner_id":
                config.owner_id = value or None
            case "timezone":
                config.timezone = value
            case "telegram_bot_token":
                config.telegram_bot_token = value
            case "telegram_allowed_users":
                try:
                    config.telegram_allowed_users = [int(u.strip()) for u in value.split(",") if u.strip()]
                except ValueError:
                    logger.warning(f"Invalid TELEGRAM_ALLOWED_USERS value '{value}'")
            case "resync_interval_minutes":
                config.resync_interval_minutes = _parse_int(key, value, config.resync_interval_minutes, 1)
            case _:
                logger.debug(f"Ignoring unknown config key {key.upper()}")

    return config
