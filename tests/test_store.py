"""Tests for entry store adapters."""

import json
from datetime import date, datetime, time, timedelta
from unittest.mock import patch

import pytest

from mighty.adapters.file_store import FORMAT_VERSION, FileEntryStore
from mighty.adapters.memory_store import InMemoryEntryStore
from mighty.core.entries import Entry, RecurrencePattern, RecurrenceRule, Section
from mighty.ports.entry_store import StorageFailure
from mighty.reconcile import ReconciliationDriver


def make_entry(entry_id: str = "e1", **kw) -> Entry:
    return Entry(id=entry_id, title="Workout", date=date(2024, 1, 15), start_time=time(6, 0), **kw)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "entries.json"


class TestInMemoryEntryStore:
    def test_get_returns_copy(self):
        store = InMemoryEntryStore([make_entry()])

        entry = store.get("e1")
        entry.title = "Changed"

        assert store.get("e1").title == "Workout"

    def test_query_filters_and_orders(self):
        store = InMemoryEntryStore(
            [
                make_entry("b", section_id="gym"),
                Entry(id="a", title="Early", date=date(2024, 1, 1), section_id="gym"),
                make_entry("c"),
            ]
        )

        assert [e.id for e in store.query(lambda e: e.section_id == "gym")] == ["a", "b"]

    def test_list_templates(self):
        store = InMemoryEntryStore([make_entry("t", is_recurrence_template=True), make_entry("i")])
        assert [e.id for e in store.list_templates()] == ["t"]

    def test_delete_missing_is_noop(self):
        store = InMemoryEntryStore()
        store.delete("nope")
        assert store.all() == []

    def test_transaction_rolls_back_on_error(self):
        store = InMemoryEntryStore([make_entry()])

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.upsert(make_entry("e2"))
                store.delete("e1")
                raise RuntimeError("boom")

        assert [e.id for e in store.all()] == ["e1"]

    def test_nested_transaction_joins_outer(self):
        store = InMemoryEntryStore()

        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.upsert(make_entry())
                raise RuntimeError("boom")

        assert store.get("e1") is None

    def test_sections(self):
        store = InMemoryEntryStore(sections=[Section(id="w", name="Work"), Section(id="g", name="Gym")])

        assert [s.name for s in store.list_sections()] == ["Gym", "Work"]
        assert store.get_section("g").notifications_enabled is True
        assert store.get_section("missing") is None


class TestFileEntryStore:
    def test_missing_file_is_empty(self, store_path):
        assert FileEntryStore(store_path).all() == []

    def test_round_trip(self, store_path):
        template = make_entry(
            "t",
            notify_before=True,
            is_recurrence_template=True,
            recurrence_group_id="grp",
            rule=RecurrenceRule(pattern=RecurrencePattern.WEEKLY, weekdays=[0, 2]),
            excluded_dates=[date(2024, 1, 17)],
        )
        store = FileEntryStore(store_path)
        store.upsert(template)
        store.upsert_section(Section(id="gym", name="Gym", notifications_enabled=False))

        reopened = FileEntryStore(store_path)

        assert reopened.get("t") == template
        assert reopened.get_section("gym").notifications_enabled is False

    def test_file_format(self, store_path):
        FileEntryStore(store_path).upsert(make_entry())

        data = json.loads(store_path.read_text())

        assert data["version"] == FORMAT_VERSION
        assert data["entries"][0]["id"] == "e1"
        assert data["entries"][0]["start_time"] == "06:00"
        assert data["sections"] == []

    def test_reads_records_without_newer_fields(self, store_path):
        store_path.write_text(json.dumps({"entries": [{"id": "old", "title": "Run", "date": "2024-01-08"}]}))

        entry = FileEntryStore(store_path).get("old")

        assert entry.notify_before is False
        assert entry.excluded_dates == []
        assert entry.recurrence_group_id is None
        assert entry.edited is False

    def test_skips_unreadable_entries(self, store_path):
        store_path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "entries": [
                        {"id": "ok", "title": "Run", "date": "2024-01-08"},
                        {"id": "bad", "title": "No date"},
                    ],
                }
            )
        )

        assert [e.id for e in FileEntryStore(store_path).all()] == ["ok"]

    def test_corrupt_file_raises(self, store_path):
        store_path.write_text("{not json")

        with pytest.raises(StorageFailure):
            FileEntryStore(store_path)

    def test_failed_write_leaves_file_and_memory_unchanged(self, store_path):
        store = FileEntryStore(store_path)
        store.upsert(make_entry())

        with patch("mighty.adapters.file_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageFailure):
                store.upsert(make_entry("e2"))

        assert store.get("e2") is None
        assert [e.id for e in FileEntryStore(store_path).all()] == ["e1"]
        assert list(store_path.parent.glob(".entries.json.*")) == []

    def test_transaction_writes_once(self, store_path):
        store = FileEntryStore(store_path)

        with patch.object(FileEntryStore, "_commit") as commit:
            with store.transaction():
                store.upsert(make_entry("e1"))
                store.upsert(make_entry("e2"))

        commit.assert_called_once()

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "entries.json"
        FileEntryStore(path).upsert(make_entry())
        assert path.exists()

    def test_read_only_transaction_writes_nothing(self, store_path):
        store = FileEntryStore(store_path)
        store.upsert(make_entry())

        with patch.object(FileEntryStore, "_commit") as commit:
            with store.transaction():
                store.get("e1")
                store.delete("missing")

        commit.assert_not_called()


class TestSharedFile:
    """The CLI and the bot each hold their own store on the same file."""

    @pytest.fixture
    def now(self):
        return datetime(2024, 1, 8, 7, 0)

    @pytest.fixture
    def seeded(self, store_path, now):
        template = Entry(
            id="tpl",
            title="Workout",
            date=date(2024, 1, 1),
            start_time=time(6, 0),
            is_recurrence_template=True,
            rule=RecurrenceRule(pattern=RecurrencePattern.WEEKLY, weekdays=[0, 2]),
        )
        ReconciliationDriver(FileEntryStore(store_path), horizon=timedelta(weeks=2)).save_template(template, now)
        return store_path

    def wednesday(self, store):
        return store.query(lambda e: e.is_instance and e.date == date(2024, 1, 10))

    def test_sees_writes_from_other_store(self, store_path):
        bot = FileEntryStore(store_path)
        cli = FileEntryStore(store_path)

        cli.upsert(make_entry("e1"))
        cli.upsert_section(Section(id="s1", name="Gym"))

        assert bot.get("e1") is not None
        assert [s.id for s in bot.list_sections()] == ["s1"]

    def test_reconcile_keeps_deletes_made_elsewhere(self, seeded, now):
        bot = ReconciliationDriver(FileEntryStore(seeded), horizon=timedelta(weeks=2))
        cli = ReconciliationDriver(FileEntryStore(seeded), horizon=timedelta(weeks=2))
        [wed] = self.wednesday(cli.store)

        cli.suppress_instance(wed.id)
        cli.store.upsert_section(Section(id="s1", name="Gym"))
        bot.reconcile_all(now=now)

        reread = FileEntryStore(seeded)
        assert self.wednesday(reread) == []
        assert reread.get("tpl").excluded_dates == [date(2024, 1, 10)]
        assert [s.id for s in reread.list_sections()] == ["s1"]

    def test_transaction_starts_from_current_file(self, seeded):
        bot = FileEntryStore(seeded)
        FileEntryStore(seeded).upsert(make_entry("from-cli"))

        with bot.transaction():
            bot.upsert(make_entry("from-bot"))

        ids = {e.id for e in FileEntryStore(seeded).all()}
        assert {"from-cli", "from-bot"} <= ids

    def test_reconcile_with_nothing_to_do_leaves_file_alone(self, seeded, now):
        driver = ReconciliationDriver(FileEntryStore(seeded), horizon=timedelta(weeks=2))

        with patch.object(FileEntryStore, "_commit") as commit:
            applied = driver.reconcile_all(now=now)

        assert len(applied) == 1
        commit.assert_not_called()
