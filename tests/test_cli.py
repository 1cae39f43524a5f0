"""Tests for the click CLI."""

import json
from datetime import date, time, timedelta
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mighty.adapters.file_store import FileEntryStore
from mighty.cli import main
from mighty.config import Config
from mighty.core.entries import Entry, RecurrencePattern, RecurrenceRule, Section


@pytest.fixture
def config(tmp_path):
    return Config(store_file=str(tmp_path / "entries.json"))


@pytest.fixture
def run(config):
    runner = CliRunner()

    def invoke(*args):
        with patch("mighty.cli.load_config", return_value=config):
            return runner.invoke(main, list(args))

    return invoke


def open_store(config) -> FileEntryStore:
    return FileEntryStore(config.store_path)


def seed_series(config, start: date) -> FileEntryStore:
    store = open_store(config)
    store.upsert(
        Entry(
            id="tpl-0001",
            title="Workout",
            date=start,
            start_time=time(23, 59),
            is_recurrence_template=True,
            recurrence_group_id="grp",
            rule=RecurrenceRule(pattern=RecurrencePattern.DAILY),
        )
    )
    return store


class TestAddTemplate:
    def test_saves_and_materializes(self, run, config):
        result = run("add-template", "Workout", "--every", "weekly", "--on", "mon", "--at", "06:00", "--notify")

        assert result.exit_code == 0, result.output
        assert "saved" in result.output
        store = open_store(config)
        [template] = store.list_templates()
        assert template.rule.weekdays == [0]
        assert template.notify_before
        assert store.query(lambda e: e.is_instance)

    def test_invalid_rule(self, run, config):
        result = run("add-template", "Workout", "--start", "2024-01-10", "--end-date", "2024-01-01")

        assert result.exit_code == 1
        assert "Error" in result.output
        assert open_store(config).all() == []

    def test_unknown_weekday(self, run):
        result = run("add-template", "Workout", "--on", "someday")
        assert result.exit_code == 2

    def test_bad_time(self, run):
        result = run("add-template", "Workout", "--at", "six")
        assert result.exit_code == 2


class TestSync:
    def test_reconciles_series(self, run, config):
        seed_series(config, date.today())

        result = run("sync")

        assert result.exit_code == 0, result.output
        assert "Reconciled 1 of 1" in result.output
        assert open_store(config).query(lambda e: e.is_instance)


class TestUpcoming:
    def test_empty(self, run):
        result = run("upcoming")
        assert result.exit_code == 0
        assert "Nothing scheduled." in result.output

    def test_json(self, run, config):
        open_store(config).upsert(Entry(id="e1", title="Dentist", date=date.today() + timedelta(days=1)))

        result = run("upcoming", "--json")

        assert result.exit_code == 0
        assert [e["id"] for e in json.loads(result.output)] == ["e1"]


class TestDelete:
    def test_delete_instance_suppresses_date(self, run, config):
        store = seed_series(config, date(2099, 1, 5))
        store.upsert(
            Entry(
                id="inst-0001",
                title="Workout",
                date=date(2099, 1, 6),
                recurrence_group_id="grp",
                occurrence_date=date(2099, 1, 6),
            )
        )

        result = run("delete", "inst")

        assert result.exit_code == 0, result.output
        store = open_store(config)
        assert store.get("inst-0001") is None
        assert store.get("tpl-0001").excluded_dates == [date(2099, 1, 6)]

    def test_delete_template_ends_series(self, run, config):
        seed_series(config, date(2099, 1, 5))

        result = run("delete", "tpl-0001")

        assert result.exit_code == 0
        assert open_store(config).all() == []

    def test_unknown_entry(self, run):
        result = run("delete", "nope")
        assert result.exit_code == 1
        assert "no entry matches" in result.output

    def test_delete_series_requires_recurring(self, run, config):
        open_store(config).upsert(Entry(id="plain", title="Dentist", date=date(2099, 1, 5)))

        result = run("delete-series", "plain")

        assert result.exit_code == 1
        assert "not recurring" in result.output


class TestSections:
    def test_add_and_mute_section(self, run, config):
        assert run("add-section", "Gym").exit_code == 0
        [section] = open_store(config).list_sections()

        result = run("section-notify", section.id, "off")

        assert result.exit_code == 0
        assert open_store(config).get_section(section.id).notifications_enabled is False

    def test_open_store_sees_changes(self, run, config):
        bot_store = open_store(config)

        assert run("add-section", "Gym").exit_code == 0
        [section] = bot_store.list_sections()
        assert run("section-notify", section.id, "off").exit_code == 0

        assert bot_store.get_section(section.id).notifications_enabled is False

    def test_unknown_section(self, run):
        result = run("section-notify", "nope", "on")
        assert result.exit_code == 1


class TestReminders:
    def test_preview(self, run, config):
        store = open_store(config)
        store.upsert_section(Section(id="gym", name="Gym"))
        store.upsert(
            Entry(
                id="e1",
                title="Workout",
                date=date.today() + timedelta(days=2),
                start_time=time(6, 0),
                notify_before=True,
                section_id="gym",
            )
        )

        result = run("reminders")

        assert result.exit_code == 0
        assert "Gym: Workout in 1 hour" in result.output

    def test_none_due(self, run):
        result = run("reminders")
        assert "No reminders due." in result.output
