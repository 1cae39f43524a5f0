"""Mighty CLI - recurring entries and reminders."""

import json
import logging
import sys
import uuid
from datetime import date, time

import click

from .config import load_config
from .core.entries import Entry, RecurrencePattern, Section
from .core.recurrence import InvalidRuleError
from .ports.entry_store import EntryStore, StorageFailure
from .session import SessionContext
from .workflows import (
    build_template,
    format_upcoming,
    get_driver,
    get_store,
    local_now,
    parse_weekdays,
    preview_reminders,
    upcoming_entries,
)


def _open_store(config) -> EntryStore:
    try:
        return get_store(config)
    except StorageFailure as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _resolve_entry(store: EntryStore, ref: str) -> Entry:
    """Find an entry by full id or unique id prefix."""
    matches = store.query(lambda e: e.id == ref or e.id.startswith(ref))
    exact = [e for e in matches if e.id == ref]
    if exact:
        return exact[0]
    if not matches:
        click.echo(f"Error: no entry matches '{ref}'", err=True)
        sys.exit(1)
    if len(matches) > 1:
        click.echo(f"Error: '{ref}' matches {len(matches)} entries, use more characters", err=True)
        sys.exit(1)
    return matches[0]


def _parse_time(value: str | None) -> time | None:
    if not value:
        return None
    try:
        return time.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"expected HH:MM, got '{value}'")


@click.group()
@click.version_option()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool):
    """Mighty - recurring entries and reminders."""
    if debug:
        logging.basicConfig(
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            level=logging.DEBUG,
        )


@main.command()
def sync():
    """Top up recurring series to the materialization horizon."""
    config = load_config()
    store = _open_store(config)
    driver = get_driver(config, store)
    templates = store.list_templates()
    applied = driver.reconcile_all(templates)

    click.echo(f"Reconciled {len(applied)} of {len(templates)} recurring series.")
    skipped = len(templates) - len(applied)
    if skipped:
        click.echo(f"{skipped} series skipped (see log with --debug).", err=True)


@main.command()
@click.option("--days", default=7, show_default=True, help="How many days ahead")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def upcoming(days: int, as_json: bool):
    """List entries for the coming days."""
    config = load_config()
    store = _open_store(config)
    entries = upcoming_entries(store, SessionContext(config.owner_id), days=days, as_of=local_now(config).date())

    if as_json:
        click.echo(json.dumps([e.to_dict() for e in entries], indent=2))
    else:
        click.echo(format_upcoming(entries, "Nothing scheduled."))


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def reminders(as_json: bool):
    """Show the reminders that should currently be pending."""
    config = load_config()
    store = _open_store(config)
    due = preview_reminders(config, store)

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "entry_id": r.entry_id,
                        "fire_at": r.fire_at.isoformat(),
                        "title": r.title,
                        "body": r.body,
                    }
                    for r in due
                ],
                indent=2,
            )
        )
        return

    if not due:
        click.echo("No reminders due.")
        return
    for r in due:
        click.echo(f"{r.fire_at.strftime('%a %b %d %H:%M')}  {r.body}")


@main.command("add-template")
@click.argument("title")
@click.option(
    "--every",
    "pattern",
    type=click.Choice([p.value for p in RecurrencePattern]),
    default="weekly",
    show_default=True,
    help="Repeat pattern",
)
@click.option("--on", "weekdays", multiple=True, help="Weekday (mon..sun), repeatable")
@click.option("--start", "start_date", default=None, help="First date (YYYY-MM-DD), defaults to today")
@click.option("--at", "start_time", default=None, help="Start time (HH:MM)")
@click.option("--until", "end_time", default=None, help="End time (HH:MM)")
@click.option("--interval", default=1, show_default=True, help="Repeat every N units")
@click.option("--end-date", default=None, help="Last date (YYYY-MM-DD)")
@click.option("--count", "occurrence_count", type=int, default=None, help="Stop after N occurrences")
@click.option("--notify", is_flag=True, help="Remind before the start time")
@click.option("--section", "section_id", default=None, help="Section id")
def add_template(
    title: str,
    pattern: str,
    weekdays: tuple[str, ...],
    start_date: str | None,
    start_time: str | None,
    end_time: str | None,
    interval: int,
    end_date: str | None,
    occurrence_count: int | None,
    notify: bool,
    section_id: str | None,
):
    """Create a recurring entry and materialize its instances."""
    config = load_config()
    store = _open_store(config)

    try:
        days = parse_weekdays(weekdays)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--on")

    if notify and not start_time:
        click.echo("Warning: --notify needs --at, reminders are off for this entry", err=True)

    template = build_template(
        title,
        start=date.fromisoformat(start_date) if start_date else local_now(config).date(),
        pattern=RecurrencePattern(pattern),
        weekdays=days,
        start_time=_parse_time(start_time),
        end_time=_parse_time(end_time),
        notify_before=notify,
        section_id=section_id,
        interval=interval,
        end_date=date.fromisoformat(end_date) if end_date else None,
        occurrence_count=occurrence_count,
    )

    driver = get_driver(config, store)
    try:
        template = driver.save_template(template, driver.clock())
    except InvalidRuleError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except StorageFailure as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    created = store.query(lambda e: e.recurrence_group_id == template.recurrence_group_id and e.is_instance)
    click.echo(f"✓ '{template.title}' saved ({len(created)} upcoming entries)")
    click.echo(f"  series: {template.recurrence_group_id}")


@main.command()
@click.argument("entry_ref")
def delete(entry_ref: str):
    """Delete an entry. Deleted recurring entries are not regenerated."""
    config = load_config()
    store = _open_store(config)
    entry = _resolve_entry(store, entry_ref)
    driver = get_driver(config, store)

    try:
        if entry.is_recurrence_template and entry.recurrence_group_id:
            deleted = driver.delete_series(entry.recurrence_group_id, driver.clock())
            click.echo(f"✓ Deleted series '{entry.title}' ({len(deleted)} entries)")
        else:
            driver.suppress_instance(entry.id)
            click.echo(f"✓ Deleted '{entry.title}' on {entry.date}")
    except StorageFailure as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command("delete-series")
@click.argument("entry_ref")
def delete_series(entry_ref: str):
    """Delete every upcoming entry of the series an entry belongs to."""
    config = load_config()
    store = _open_store(config)
    entry = _resolve_entry(store, entry_ref)
    if not entry.recurrence_group_id:
        click.echo(f"Error: '{entry.title}' is not recurring", err=True)
        sys.exit(1)

    driver = get_driver(config, store)
    try:
        deleted = driver.delete_series(entry.recurrence_group_id, driver.clock())
    except StorageFailure as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Deleted series '{entry.title}' ({len(deleted)} entries, history kept)")


@main.command("add-section")
@click.argument("name")
def add_section(name: str):
    """Create a section."""
    config = load_config()
    store = _open_store(config)
    section = Section(id=str(uuid.uuid4()), name=name.strip(), owner_id=config.owner_id)
    store.upsert_section(section)
    click.echo(f"✓ Section '{section.name}' created ({section.id})")


@main.command("section-notify")
@click.argument("section_id")
@click.argument("state", type=click.Choice(["on", "off"]))
def section_notify(section_id: str, state: str):
    """Turn reminders on or off for a whole section."""
    config = load_config()
    store = _open_store(config)
    section = store.get_section(section_id)
    if section is None:
        click.echo(f"Error: no section '{section_id}'", err=True)
        sys.exit(1)

    section.notifications_enabled = state == "on"
    store.upsert_section(section)
    click.echo(f"✓ Reminders {state} for '{section.name}' (applied on the bot's next sync)")


@main.command()
def bot():
    """Run the Telegram reminder bot."""
    try:
        from .telegram_bot import run_bot
        click.echo("Starting Mighty Telegram bot...")
        click.echo("Press Ctrl+C to stop")
        run_bot()
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nBot stopped.")


if __name__ == "__main__":
    main()
