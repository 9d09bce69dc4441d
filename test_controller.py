#!/usr/bin/env python3
"""
Tests for the controller's mode state machine, driven key by key.
"""

import dataclasses
import sys
import tempfile
import tomllib
from collections import Counter
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from jotdeck.config import Config
from jotdeck.controller import Controller, Mode
from jotdeck.errors import StorageError
from jotdeck.filters import NotebookScope
from jotdeck.models import JournalEntry, Note, Notebook, Tab, Task, TaskStatus, parse_tags


class MemoryStorage:
    """Storage double; ``fail`` names the methods that should raise."""

    def __init__(self, records=(), notebooks=()):
        self.records = {r.id: r for r in records}
        self.notebooks = {nb.id: nb for nb in notebooks}
        self._next_id = max([0] + list(self.records) + list(self.notebooks)) + 1
        self.fail = set()
        self.calls = Counter()

    def _check(self, name):
        self.calls[name] += 1
        if name in self.fail:
            raise StorageError("disk full")

    def _new_id(self):
        self._next_id += 1
        return self._next_id - 1

    def list(self, tab):
        self._check("list")
        found = [r for r in self.records.values() if r.tab is tab]
        return sorted(found, key=lambda r: (r.order, r.id))

    def create(self, record):
        self._check("create")
        record = dataclasses.replace(record, id=self._new_id())
        self.records[record.id] = record
        return record

    def update(self, record):
        self._check("update")
        if record.id not in self.records:
            raise StorageError("no such record")
        self.records[record.id] = record

    def delete(self, identifier):
        self._check("delete")
        if self.records.pop(identifier, None) is None:
            raise StorageError("no such record")

    def reassign_order(self, identifier, new_order):
        self._check("reassign_order")
        self.records[identifier] = dataclasses.replace(self.records[identifier], order=new_order)

    def list_notebooks(self):
        self._check("list_notebooks")
        return sorted(self.notebooks.values(), key=lambda nb: nb.name.casefold())

    def create_notebook(self, name):
        self._check("create_notebook")
        nb = Notebook(id=self._new_id(), name=name)
        self.notebooks[nb.id] = nb
        return nb

    def rename_notebook(self, identifier, name):
        self._check("rename_notebook")
        self.notebooks[identifier] = dataclasses.replace(self.notebooks[identifier], name=name)

    def delete_notebook(self, identifier):
        self._check("delete_notebook")
        del self.notebooks[identifier]
        for rid, r in list(self.records.items()):
            if r.notebook_id == identifier:
                self.records[rid] = dataclasses.replace(r, notebook_id=None)

    def close(self):
        pass


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _tasks(n=3):
    return [Task(id=i, title=f"task {i}", order=i) for i in range(1, n + 1)]


def _controller(records=(), notebooks=(), config=None):
    storage = MemoryStorage(records, notebooks)
    clock = FakeClock()
    c = Controller(storage, config or Config(path=Path("/nonexistent/jotdeck.toml")), clock=clock)
    c.load()
    return c, storage, clock


def _type(c, text):
    for ch in text:
        c.handle_key(ch)


def test_load_and_navigation_clamps():
    c, _, _ = _controller(_tasks())
    assert c.mode is Mode.NORMAL
    assert c.selected_record.id == 1
    c.handle_key("k")
    assert c.selected_record.id == 1
    c.handle_key("j")
    c.handle_key("down")
    c.handle_key("j")
    assert c.selected_record.id == 3
    print("  navigation OK")


def test_empty_list_has_no_selection():
    c, _, _ = _controller()
    assert c.nav.selected is None
    c.handle_key("j")
    c.handle_key("d")
    c.handle_key("e")
    assert c.mode is Mode.NORMAL
    print("  empty list OK")


def test_quit_key():
    c, _, _ = _controller()
    assert c.handle_key("q") is True
    assert c.handle_key("x") is False
    print("  quit OK")


def test_switch_tabs():
    c, _, _ = _controller(_tasks() + [Note(id=9, title="note")])
    c.handle_key("2")
    assert c.nav.tab is Tab.NOTES
    assert c.selected_record.id == 9
    c.handle_key("right")
    assert c.nav.tab is Tab.JOURNAL
    assert c.nav.selected is None
    c.handle_key("right")
    assert c.nav.tab is Tab.TASKS
    c.handle_key("left")
    assert c.nav.tab is Tab.JOURNAL
    print("  tabs OK")


def test_create_task():
    c, storage, _ = _controller(_tasks(2))
    c.handle_key("n")
    assert c.mode is Mode.EDIT
    _type(c, "Buy milk")
    c.handle_key("tab")  # description
    c.handle_key("tab")  # due date
    _type(c, "2024-06-01")
    c.handle_key("tab")  # tags
    _type(c, "Errand, home")
    c.handle_key("c-s")
    assert c.mode is Mode.NORMAL
    created = c.selected_record
    assert created.title == "Buy milk"
    assert created.due_date == "2024-06-01"
    assert created.tags == frozenset({"errand", "home"})
    assert created.order == 3
    assert storage.records[created.id].title == "Buy milk"
    assert c.status.text == "Created"
    print("  create OK")


def test_validation_keeps_edit_mode():
    c, storage, _ = _controller()
    c.handle_key("n")
    c.handle_key("c-s")
    assert c.mode is Mode.EDIT
    assert c.draft.error == "Title cannot be empty"
    assert storage.calls["create"] == 0

    _type(c, "ok")
    c.handle_key("tab")
    c.handle_key("tab")
    _type(c, "soon")
    c.handle_key("tab")
    c.handle_key("c-s")
    assert c.mode is Mode.EDIT
    assert c.draft.current_field == "due_date"
    print("  validation OK")


def test_escape_discards_without_io():
    c, storage, _ = _controller(_tasks(1))
    lists_before = storage.calls["list"]
    c.handle_key("n")
    _type(c, "never saved")
    c.handle_key("escape")
    assert c.mode is Mode.NORMAL
    assert c.draft is None
    assert storage.calls["list"] == lists_before
    assert storage.calls["create"] == 0
    assert len(c.records) == 1
    print("  escape discards OK")


def test_save_failure_sets_status():
    c, storage, _ = _controller(_tasks(1))
    storage.fail.add("create")
    c.handle_key("n")
    _type(c, "x")
    c.handle_key("c-s")
    assert c.mode is Mode.EDIT
    assert c.status.text == "Save failed: disk full"
    assert len(c.records) == 1
    print("  save failure OK")


def test_edit_existing_and_undo():
    c, storage, _ = _controller(_tasks(2))
    c.handle_key("j")
    c.handle_key("e")
    assert c.draft.editors["title"].text == "task 2"
    _type(c, "!")
    c.handle_key("c-z")
    assert c.draft.editors["title"].text == "task 2"
    c.handle_key("c-y")
    assert c.draft.editors["title"].text == "task 2!"
    c.handle_key("c-s")
    assert storage.records[2].title == "task 2!"
    assert c.selected_record.id == 2
    print("  edit + undo OK")


def test_journal_form_and_notebook_field():
    nb = Notebook(id=50, name="Diary")
    c, storage, _ = _controller(notebooks=[nb])
    c.handle_key("3")
    c.handle_key("n")
    assert c.draft.current_field == "entry_date"
    c.handle_key("tab")
    c.handle_key("tab")
    c.handle_key("tab")
    assert c.draft.current_field == "notebook"
    c.handle_key("right")
    assert c.draft.notebook_id == 50
    c.handle_key("tab")
    _type(c, "dear diary")
    c.handle_key("enter")
    _type(c, "line two")
    c.handle_key("c-s")
    assert c.mode is Mode.NORMAL
    entry = c.selected_record
    assert isinstance(entry, JournalEntry)
    assert entry.notebook_id == 50
    assert entry.body == "dear diary\nline two"
    print("  journal form OK")


def test_delete_confirm_flow():
    c, storage, _ = _controller(_tasks())
    c.handle_key("j")
    c.handle_key("d")
    assert c.mode is Mode.DELETE_CONFIRM
    c.handle_key("n")
    assert c.mode is Mode.NORMAL
    assert 2 in storage.records

    c.handle_key("d")
    c.handle_key("y")
    assert 2 not in storage.records
    # the row that slid into place is selected
    assert c.selected_record.id == 3
    assert c.status.text == "Deleted"
    print("  delete OK")


def test_delete_modal_archive_choice():
    c, storage, _ = _controller(_tasks(2))
    c.handle_key("d")
    c.handle_key("down")
    c.handle_key("enter")
    assert c.mode is Mode.NORMAL
    assert storage.records[1].archived
    assert [r.id for r in (row.record for row in c.display.rows)] == [2]
    print("  delete modal archive OK")


def test_delete_last_row_clamps():
    c, _, _ = _controller(_tasks())
    c.handle_key("j")
    c.handle_key("j")
    c.handle_key("d")
    c.handle_key("enter")
    assert c.selected_record.id == 2
    print("  delete last OK")


def test_delete_only_row_clears_selection():
    c, storage, _ = _controller(_tasks(1))
    c.handle_key("d")
    c.handle_key("y")
    assert storage.records == {}
    assert c.display.item_count == 0
    assert c.nav.selected is None
    assert c.selected_record is None
    print("  delete only row OK")


def test_delete_failure_keeps_record():
    c, storage, _ = _controller(_tasks(1))
    storage.fail.add("delete")
    c.handle_key("d")
    c.handle_key("y")
    assert c.mode is Mode.NORMAL
    assert len(c.records) == 1
    assert c.status.text == "Delete failed: disk full"
    print("  delete failure OK")


def test_toggle_status_and_archive():
    c, storage, _ = _controller(_tasks(2))
    c.handle_key(" ")
    assert storage.records[1].status is TaskStatus.IN_PROGRESS
    c.handle_key(" ")
    c.handle_key(" ")
    assert storage.records[1].status is TaskStatus.OPEN
    c.handle_key("a")
    assert storage.records[1].archived
    assert c.selected_record.id == 2
    print("  toggles OK")


def test_live_search():
    recs = [Task(id=1, title="apple", order=0), Task(id=2, title="banana", order=1)]
    c, _, _ = _controller(recs)
    c.handle_key("/")
    assert c.mode is Mode.SEARCH
    _type(c, "ban")
    assert c.display.item_count == 1
    assert c.selected_record.id == 2
    c.handle_key("escape")
    assert c.display.item_count == 2
    assert c.filters.search == ""

    c.handle_key("/")
    _type(c, "app")
    c.handle_key("enter")
    assert c.mode is Mode.NORMAL
    assert c.filters.search == "app"
    assert c.display.item_count == 1
    c.handle_key("c")
    assert c.display.item_count == 2
    print("  search OK")


def test_search_trims_spaces_while_typing_and_after_enter():
    recs = [Task(id=1, title="apple", order=0), Task(id=2, title="banana", order=1)]
    c, _, _ = _controller(recs)
    c.handle_key("/")
    _type(c, " ban ")
    live = [row.record.id for row in c.display.rows if row.record is not None]
    assert live == [2]
    c.handle_key("enter")
    assert c.filters.search == "ban"
    kept = [row.record.id for row in c.display.rows if row.record is not None]
    assert kept == live
    print("  search trim OK")


def test_filter_form_apply_and_clear():
    recs = [
        Task(id=1, title="a", tags=parse_tags("work"), order=0),
        Task(id=2, title="b", order=1, status=TaskStatus.DONE),
    ]
    c, _, _ = _controller(recs)
    c.handle_key("f")
    assert c.mode is Mode.FILTER
    _type(c, "work")
    c.handle_key("enter")
    assert c.mode is Mode.NORMAL
    assert [row.record.id for row in c.display.rows] == [1]
    assert c.filter_summary().startswith("Tags: work")

    c.handle_key("f")
    for _ in range(3):
        c.handle_key("tab")
    assert c.filter_form.current_field == "status"
    c.handle_key("tab")
    c.handle_key("tab")
    assert c.filter_form.current_field == "clear"
    c.handle_key("enter")
    assert c.display.item_count == 2

    c.handle_key("f")
    c.handle_key("tab")
    c.handle_key("tab")
    c.handle_key("right")  # archive: archived only
    c.handle_key("escape")
    assert c.display.item_count == 2
    print("  filter form OK")


def test_grouped_view_and_reorder():
    nb = Notebook(id=20, name="Work")
    recs = [
        Task(id=1, title="a", order=0),
        Task(id=2, title="b", order=1, notebook_id=20),
        Task(id=3, title="c", order=2),
    ]
    c, storage, _ = _controller(recs, [nb])
    c.handle_key("t")
    c.handle_key("t")
    assert c.nav.list_view == "grouped"
    labels = [row.label for row in c.display.rows]
    assert labels == ["Work", "b", "Unfiled", "a", "c"]
    assert c.selected_record.id == 1

    c.handle_key("J")
    assert storage.records[1].order == 2
    assert storage.records[3].order == 0
    assert c.selected_record.id == 1
    assert [row.label for row in c.display.rows][3:] == ["c", "a"]

    c.handle_key("k")
    assert c.selected_record.id == 3
    c.handle_key("K")  # would cross a heading
    assert storage.records[3].order == 0
    print("  grouped + reorder OK")


def test_notebook_manager():
    c, storage, _ = _controller([Note(id=1, title="n", order=0)])
    c.handle_key("b")
    assert c.mode is Mode.NOTEBOOKS
    c.handle_key("a")
    _type(c, "Work")
    c.handle_key("enter")
    assert [nb.name for nb in c.notebooks] == ["Work"]

    c.handle_key("a")
    _type(c, "work")
    c.handle_key("enter")
    assert c.status.text == "A notebook with this name already exists"
    c.handle_key("escape")

    c.handle_key("a")
    c.handle_key("enter")
    assert c.status.text == "Notebook name cannot be empty"
    c.handle_key("escape")

    c.handle_key("down")
    c.handle_key("down")
    c.handle_key("enter")
    assert c.mode is Mode.NORMAL
    assert c.filters.scope is NotebookScope.NOTEBOOK
    assert c.display.item_count == 0
    print("  notebooks OK")


def test_delete_notebook_unfiles_records():
    nb = Notebook(id=30, name="Old")
    c, storage, _ = _controller([Note(id=1, title="n", notebook_id=30)], [nb])
    c.filters.scope = NotebookScope.NOTEBOOK
    c.filters.scope_notebook_id = 30
    c.refresh()
    c.handle_key("b")
    assert c.notebook_panel.index == 2
    c.handle_key("d")
    assert c.notebooks == []
    assert c.records[0].notebook_id is None
    assert c.filters.scope is NotebookScope.ALL
    assert storage.records[1].notebook_id is None
    print("  delete notebook OK")


def test_status_message_expires():
    c, _, clock = _controller(_tasks(1))
    c.handle_key(" ")
    assert c.status.text
    clock.now += 2.0
    c.tick()
    assert c.status.text
    clock.now += 1.5
    c.tick()
    assert c.status.text == ""
    print("  status expiry OK")


def test_help_mode():
    c, _, _ = _controller()
    c.handle_key("?")
    assert c.mode is Mode.HELP
    assert c.handle_key("q") is False
    assert c.mode is Mode.NORMAL
    print("  help OK")


def test_settings_saved_to_config():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        c, _, _ = _controller(config=Config(path=path))
        c.handle_key("f2")
        assert c.mode is Mode.SETTINGS
        c.handle_key("down")
        c.handle_key("enter")
        assert c.theme != "default"
        c.handle_key("tab")
        c.handle_key("down")
        c.handle_key("enter")
        assert c.nav.list_view == "two_line"
        c.handle_key("escape")
        assert c.mode is Mode.NORMAL
        data = tomllib.loads(path.read_text(encoding="utf-8"))
        assert data["ui"] == {"theme": c.theme, "list_view": "two_line"}
    print("  settings OK")


def test_load_failure_reports():
    storage = MemoryStorage(_tasks(1))
    storage.fail.add("list")
    c = Controller(storage, Config(path=Path("/nonexistent/jotdeck.toml")), clock=FakeClock())
    assert not c.load()
    assert c.status.text == "Load failed: disk full"
    assert c.records == []
    print("  load failure OK")


if __name__ == "__main__":
    print("Testing controller...")
    test_load_and_navigation_clamps()
    test_empty_list_has_no_selection()
    test_quit_key()
    test_switch_tabs()
    test_create_task()
    test_validation_keeps_edit_mode()
    test_escape_discards_without_io()
    test_save_failure_sets_status()
    test_edit_existing_and_undo()
    test_journal_form_and_notebook_field()
    test_delete_confirm_flow()
    test_delete_modal_archive_choice()
    test_delete_last_row_clamps()
    test_delete_only_row_clears_selection()
    test_delete_failure_keeps_record()
    test_toggle_status_and_archive()
    test_live_search()
    test_search_trims_spaces_while_typing_and_after_enter()
    test_filter_form_apply_and_clear()
    test_grouped_view_and_reorder()
    test_notebook_manager()
    test_delete_notebook_unfiles_records()
    test_status_message_expires()
    test_help_mode()
    test_settings_saved_to_config()
    test_load_failure_reports()
    print("  ✓ Controller tests passed\n")
