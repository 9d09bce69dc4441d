"""Application controller: one mode at a time, one key at a time.

Every key goes through ``Controller.handle_key``, which looks up the handler
for the current mode. Handlers mutate the controller's sub-states, talk to
the storage collaborator, and finally recompute the display list.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from jotdeck.config import LIST_VIEWS, Config, save_ui_settings
from jotdeck.editor import Editor, apply_editing_key, is_text_key
from jotdeck.errors import ConfigError, StorageError, ValidationError
from jotdeck.filters import (
    ArchiveFilter, DisplayList, FilterCriteria, NotebookScope,
    build_display, filter_summary,
)
from jotdeck.models import (
    JournalEntry, Notebook, Record, Tab, TagFilter, TagLogic, Task, TaskStatus,
    format_tags, is_valid_date, new_record, now_timestamp, parse_tags,
    record_key, today,
)
from jotdeck.storage import Storage

logger = logging.getLogger(__name__)

TABS = (Tab.TASKS, Tab.NOTES, Tab.JOURNAL)
_KIND_NAMES = {Tab.TASKS: "Task", Tab.NOTES: "Note", Tab.JOURNAL: "Entry"}


class Mode(enum.Enum):
    NORMAL = "normal"
    SEARCH = "search"
    FILTER = "filter"
    EDIT = "edit"
    SETTINGS = "settings"
    DELETE_CONFIRM = "delete_confirm"
    HELP = "help"
    NOTEBOOKS = "notebooks"


# ════════════════════════════════════════════════════════════════════════
#  Sub-states
# ════════════════════════════════════════════════════════════════════════


@dataclass
class StatusMessage:
    text: str = ""
    shown_at: float = 0.0

    def show(self, text: str, now: float) -> None:
        self.text = text
        self.shown_at = now

    def expire(self, now: float, duration: float) -> bool:
        """Clear the message once it has been up longer than ``duration``."""
        if self.text and now - self.shown_at > duration:
            self.text = ""
            return True
        return False


@dataclass
class Navigation:
    tab: Tab = Tab.TASKS
    selected: Optional[int] = None  # display index of an item row
    list_view: str = "simple"


@dataclass
class ActiveFilters:
    search: str = ""
    tag_filter: TagFilter = field(default_factory=TagFilter)
    archive: ArchiveFilter = ArchiveFilter.ACTIVE_ONLY
    status: Optional[TaskStatus] = None
    scope: NotebookScope = NotebookScope.ALL
    scope_notebook_id: Optional[int] = None

    def clear(self) -> None:
        self.tag_filter = TagFilter()
        self.archive = ArchiveFilter.ACTIVE_ONLY
        self.status = None


FORM_FIELDS = {
    Tab.TASKS: ("title", "body", "due_date", "tags", "notebook"),
    Tab.NOTES: ("title", "tags", "notebook", "body"),
    Tab.JOURNAL: ("entry_date", "title", "tags", "notebook", "body"),
}


def field_label(tab: Tab, name: str) -> str:
    if name == "body":
        return "Description" if tab is Tab.TASKS else "Content"
    return {"title": "Title", "due_date": "Due date", "tags": "Tags",
            "notebook": "Notebook", "entry_date": "Date"}[name]


@dataclass
class Draft:
    """Record being created or edited, one Editor per text field."""
    record: Record
    editors: dict[str, Editor]
    notebook_id: Optional[int] = None
    focus: int = 0
    error: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return self.record.id is None

    @property
    def fields(self) -> tuple[str, ...]:
        return FORM_FIELDS[self.record.tab]

    @property
    def current_field(self) -> str:
        return self.fields[self.focus]

    @property
    def current_editor(self) -> Optional[Editor]:
        return self.editors.get(self.current_field)


FILTER_FIELDS = ("tags", "logic", "archive", "status", "apply", "clear", "cancel")
STATUS_CHOICES: tuple[Optional[TaskStatus], ...] = (None,) + tuple(TaskStatus)


@dataclass
class FilterForm:
    tags: Editor
    logic: TagLogic
    archive: ArchiveFilter
    status: Optional[TaskStatus]
    fields: tuple[str, ...]
    focus: int = 0

    @property
    def current_field(self) -> str:
        return self.fields[self.focus]


DELETE_CHOICES = ("Delete", "Archive", "Cancel")


@dataclass
class PendingDelete:
    target: Record
    choice: int = 0


SETTINGS_CATEGORIES = ("Theme", "List view")


@dataclass
class SettingsPanel:
    category: int = 0
    theme_index: int = 0
    view_index: int = 0


@dataclass
class NotebookPanel:
    index: int = 0
    name_editor: Optional[Editor] = None
    renaming: Optional[int] = None  # notebook id while renaming


def _cycle(options: tuple, current, step: int):
    return options[(options.index(current) + step) % len(options)]


# ════════════════════════════════════════════════════════════════════════
#  Controller
# ════════════════════════════════════════════════════════════════════════


class Controller:
    """Holds all UI state; the renderer only reads it."""

    def __init__(self, storage: Storage, config: Optional[Config] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.storage = storage
        self.config = config or Config()
        self.keys = self.config.keys
        self.clock = clock
        self.mode = Mode.NORMAL
        self.theme = self.config.theme

        self.records: list[Record] = []
        self.notebooks: list[Notebook] = []
        self.display = DisplayList()

        self.nav = Navigation(list_view=self.config.list_view)
        self.filters = ActiveFilters()
        self.status = StatusMessage()
        self.draft: Optional[Draft] = None
        self.search_editor: Optional[Editor] = None
        self.filter_form: Optional[FilterForm] = None
        self.pending_delete: Optional[PendingDelete] = None
        self.settings: Optional[SettingsPanel] = None
        self.notebook_panel: Optional[NotebookPanel] = None

        self._handlers = {
            Mode.NORMAL: self._handle_normal,
            Mode.SEARCH: self._handle_search,
            Mode.FILTER: self._handle_filter,
            Mode.EDIT: self._handle_edit,
            Mode.SETTINGS: self._handle_settings,
            Mode.DELETE_CONFIRM: self._handle_delete_confirm,
            Mode.HELP: self._handle_help,
            Mode.NOTEBOOKS: self._handle_notebooks,
        }
        self._normal_actions = {
            "quit": lambda: True,
            "new": self.start_create,
            "edit": self.start_edit,
            "delete": self.request_delete,
            "search": self.start_search,
            "filter": self.start_filter,
            "select_next": self.select_next,
            "select_prev": self.select_prev,
            "tab_next": lambda: self.switch_tab(_cycle(TABS, self.nav.tab, 1)),
            "tab_prev": lambda: self.switch_tab(_cycle(TABS, self.nav.tab, -1)),
            "tab_tasks": lambda: self.switch_tab(Tab.TASKS),
            "tab_notes": lambda: self.switch_tab(Tab.NOTES),
            "tab_journal": lambda: self.switch_tab(Tab.JOURNAL),
            "help": lambda: self._set_mode(Mode.HELP),
            "settings": self.open_settings,
            "toggle_status": self.toggle_status,
            "toggle_archive": self.toggle_archive,
            "toggle_view": self.toggle_view,
            "notebooks": self.open_notebooks,
            "move_up": lambda: self.move_selected(-1),
            "move_down": lambda: self.move_selected(1),
            "clear_search": self.clear_search,
        }

    # ── Dispatch ────────────────────────────────────────────────────

    def handle_key(self, key: str) -> bool:
        """Process one key. Returns True when the user asked to quit."""
        self.tick()
        if key == "c-c":
            return True
        return bool(self._handlers[self.mode](key))

    def tick(self) -> bool:
        """Expire the status message; called once per event/render cycle."""
        return self.status.expire(self.clock(), self.config.status_duration)

    def _set_mode(self, mode: Mode) -> None:
        if mode is not self.mode:
            logger.debug("mode %s -> %s", self.mode.value, mode.value)
        self.mode = mode

    def set_status(self, text: str) -> None:
        self.status.show(text, self.clock())

    def _storage_failed(self, action: str, exc: StorageError) -> None:
        logger.warning("%s failed: %s", action, exc)
        self.set_status(f"{action} failed: {exc}")

    # ── Data ────────────────────────────────────────────────────────

    def load(self) -> bool:
        """Read every tab and the notebooks from storage."""
        try:
            records: list[Record] = []
            for tab in TABS:
                records.extend(self.storage.list(tab))
            notebooks = self.storage.list_notebooks()
        except StorageError as exc:
            self._storage_failed("Load", exc)
            self.refresh()
            return False
        self.records = records
        self.notebooks = notebooks
        self.refresh()
        return True

    @property
    def search_text(self) -> str:
        if self.mode is Mode.SEARCH and self.search_editor is not None:
            return self.search_editor.text.strip()
        return self.filters.search

    def criteria(self) -> FilterCriteria:
        f = self.filters
        return FilterCriteria(
            tab=self.nav.tab,
            search=self.search_text,
            tag_filter=f.tag_filter,
            archive=f.archive,
            status=f.status if self.nav.tab is Tab.TASKS else None,
            scope=f.scope,
            scope_notebook_id=f.scope_notebook_id,
            group_by_notebook=self.nav.list_view == "grouped",
        )

    def filter_summary(self) -> str:
        return filter_summary(self.criteria())

    def refresh(self, keep=None) -> None:
        """Recompute the display list and re-point the selection.

        The selection stays on the same record when it is still visible
        (or on ``keep`` when given); otherwise it clamps by position.
        """
        if keep is None:
            current = self.selected_record
            keep = record_key(current) if current is not None else None
        old_index = self.nav.selected
        self.display = build_display(self.records, self.criteria(), self.notebooks)
        position = self.display.position_of(keep) if keep is not None else None
        self.nav.selected = position if position is not None else self.display.clamp(old_index)

    @property
    def selected_record(self) -> Optional[Record]:
        return self.display.record_at(self.nav.selected)

    def _replace_record(self, updated: Record) -> None:
        key = record_key(updated)
        self.records = [updated if record_key(r) == key else r for r in self.records]

    def _next_order(self, tab: Tab) -> int:
        return max((r.order for r in self.records if r.tab is tab), default=-1) + 1

    def notebook_name(self, notebook_id: Optional[int]) -> str:
        for nb in self.notebooks:
            if nb.id == notebook_id:
                return nb.name
        return "[None]"

    # ── Navigation ──────────────────────────────────────────────────

    def select_next(self) -> None:
        self.nav.selected = self.display.next_item(self.nav.selected)

    def select_prev(self) -> None:
        self.nav.selected = self.display.prev_item(self.nav.selected)

    def switch_tab(self, tab: Tab) -> None:
        self.nav.tab = tab
        self.nav.selected = None
        self.display = build_display(self.records, self.criteria(), self.notebooks)
        self.nav.selected = self.display.first_item()

    def toggle_view(self) -> None:
        self.nav.list_view = _cycle(LIST_VIEWS, self.nav.list_view, 1)
        self.refresh()
        self.set_status(f"View: {self.nav.list_view.replace('_', ' ')}")

    def clear_search(self) -> None:
        if self.filters.search:
            self.filters.search = ""
            self.refresh()
            self.set_status("Search cleared")

    # ── Normal mode ─────────────────────────────────────────────────

    def _handle_normal(self, key: str):
        if key == "escape":
            self.clear_search()
            return False
        for action in self.keys.actions_for(key):
            handler = self._normal_actions.get(action)
            if handler is not None:
                return handler()
        if key == "enter":
            self.start_edit()
        return False

    def toggle_status(self) -> None:
        record = self.selected_record
        if not isinstance(record, Task):
            return
        updated = dataclasses.replace(record, status=record.status.next(),
                                      updated_at=now_timestamp())
        try:
            self.storage.update(updated)
        except StorageError as exc:
            self._storage_failed("Update", exc)
            return
        self._replace_record(updated)
        self.refresh(keep=record_key(updated))
        self.set_status(f"Task marked {updated.status.label.lower()}")

    def toggle_archive(self) -> None:
        record = self.selected_record
        if record is None:
            return
        self._set_archived(record, not record.archived)

    def _set_archived(self, record: Record, archived: bool) -> bool:
        updated = dataclasses.replace(record, archived=archived, updated_at=now_timestamp())
        try:
            self.storage.update(updated)
        except StorageError as exc:
            self._storage_failed("Archive" if archived else "Restore", exc)
            return False
        self._replace_record(updated)
        self.refresh()
        self.set_status(f"{_KIND_NAMES[record.tab]} {'archived' if archived else 'restored'}")
        return True

    def move_selected(self, step: int) -> None:
        """Swap the selected record's order key with its neighbour's."""
        index = self.nav.selected
        record = self.selected_record
        if record is None:
            return
        neighbour_index = (self.display.prev_item(index) if step < 0
                           else self.display.next_item(index))
        if neighbour_index == index or abs(neighbour_index - index) != 1:
            self.set_status("Already at the top" if step < 0 else "Already at the bottom")
            return
        other = self.display.record_at(neighbour_index)
        a_order, b_order = other.order, record.order
        if a_order == b_order:
            a_order = b_order + step
        try:
            self.storage.reassign_order(record.id, a_order)
            try:
                self.storage.reassign_order(other.id, b_order)
            except StorageError:
                self.storage.reassign_order(record.id, record.order)
                raise
        except StorageError as exc:
            self._storage_failed("Reorder", exc)
            return
        self._replace_record(dataclasses.replace(record, order=a_order))
        self._replace_record(dataclasses.replace(other, order=b_order))
        self.refresh(keep=record_key(record))
        self.set_status("Moved up" if step < 0 else "Moved down")

    # ── Create / edit ───────────────────────────────────────────────

    def _new_draft(self, record: Record) -> Draft:
        history = self.config.max_history
        values = {
            "title": record.title,
            "body": record.body,
            "tags": format_tags(record.tags),
        }
        if isinstance(record, Task):
            values["due_date"] = record.due_date or ""
        if isinstance(record, JournalEntry):
            values["entry_date"] = record.entry_date
        editors = {
            name: Editor(text, multiline=(name == "body"), max_history=history)
            for name, text in values.items()
        }
        return Draft(record=record, editors=editors, notebook_id=record.notebook_id)

    def start_create(self) -> None:
        notebook_id = None
        if self.filters.scope is NotebookScope.NOTEBOOK:
            notebook_id = self.filters.scope_notebook_id
        record = new_record(self.nav.tab, notebook_id=notebook_id)
        if isinstance(record, JournalEntry):
            record.entry_date = today()
        self.draft = self._new_draft(record)
        self._set_mode(Mode.EDIT)

    def start_edit(self) -> None:
        record = self.selected_record
        if record is None:
            return
        self.draft = self._new_draft(record)
        self._set_mode(Mode.EDIT)

    def discard_draft(self) -> None:
        self.draft = None
        self._set_mode(Mode.NORMAL)

    def _validated_record(self, draft: Draft) -> Record:
        text = {name: ed.text.strip() for name, ed in draft.editors.items()}
        record = draft.record
        if not isinstance(record, JournalEntry) and not text["title"]:
            raise ValidationError("Title cannot be empty", "title")
        changes = dict(
            title=text["title"],
            body=draft.editors["body"].text,
            tags=parse_tags(text["tags"]),
            notebook_id=draft.notebook_id,
        )
        if isinstance(record, Task):
            if text["due_date"] and not is_valid_date(text["due_date"]):
                raise ValidationError("Due date must be YYYY-MM-DD", "due_date")
            changes["due_date"] = text["due_date"] or None
        if isinstance(record, JournalEntry):
            if not is_valid_date(text["entry_date"]):
                raise ValidationError("Date must be YYYY-MM-DD", "entry_date")
            changes["entry_date"] = text["entry_date"]
        return dataclasses.replace(record, **changes)

    def save_draft(self) -> bool:
        """Validate and persist the draft; stays in EDIT on any failure."""
        draft = self.draft
        if draft is None:
            return False
        try:
            record = self._validated_record(draft)
        except ValidationError as exc:
            draft.error = str(exc)
            if exc.field in draft.fields:
                draft.focus = draft.fields.index(exc.field)
            return False
        draft.error = None
        try:
            if draft.is_new:
                record = dataclasses.replace(record, order=self._next_order(record.tab))
                record = self.storage.create(record)
                self.records.append(record)
            else:
                record = dataclasses.replace(record, updated_at=now_timestamp())
                self.storage.update(record)
                self._replace_record(record)
        except StorageError as exc:
            self._storage_failed("Save", exc)
            return False
        self.draft = None
        self._set_mode(Mode.NORMAL)
        self.refresh(keep=record_key(record))
        self.set_status("Created" if draft.is_new else "Saved")
        return True

    def _handle_edit(self, key: str):
        draft = self.draft
        if draft is None:
            self._set_mode(Mode.NORMAL)
            return False
        if key == "escape":
            self.discard_draft()
            return False
        editor = draft.current_editor
        if not is_text_key(key):
            if self.keys.matches(key, "save"):
                self.save_draft()
                return False
            if self.keys.matches(key, "undo"):
                if editor is not None and not editor.undo():
                    self.set_status("Nothing to undo")
                return False
            if self.keys.matches(key, "redo"):
                if editor is not None and not editor.redo():
                    self.set_status("Nothing to redo")
                return False
            if key in ("tab", "s-tab"):
                step = 1 if key == "tab" else -1
                draft.focus = (draft.focus + step) % len(draft.fields)
                return False
        if editor is None:
            return self._handle_notebook_field(draft, key)
        if key == "enter" and not editor.multiline:
            draft.focus = (draft.focus + 1) % len(draft.fields)
            return False
        if not apply_editing_key(editor, key) and key in ("up", "down"):
            step = 1 if key == "down" else -1
            draft.focus = (draft.focus + step) % len(draft.fields)
        return False

    def _handle_notebook_field(self, draft: Draft, key: str):
        choices = (None,) + tuple(nb.id for nb in self.notebooks)
        current = draft.notebook_id if draft.notebook_id in choices else None
        if key in ("left", "h"):
            draft.notebook_id = _cycle(choices, current, -1)
        elif key in ("right", "l", " "):
            draft.notebook_id = _cycle(choices, current, 1)
        elif key in ("enter", "down"):
            draft.focus = (draft.focus + 1) % len(draft.fields)
        elif key == "up":
            draft.focus = (draft.focus - 1) % len(draft.fields)
        return False

    # ── Delete ──────────────────────────────────────────────────────

    def request_delete(self) -> None:
        record = self.selected_record
        if record is None:
            return
        self.pending_delete = PendingDelete(target=record)
        self._set_mode(Mode.DELETE_CONFIRM)

    def confirm_delete(self) -> bool:
        pending = self.pending_delete
        if pending is None:
            return False
        record = pending.target
        try:
            self.storage.delete(record.id)
        except StorageError as exc:
            self._storage_failed("Delete", exc)
            self._close_delete()
            return False
        key = record_key(record)
        self.records = [r for r in self.records if record_key(r) != key]
        self._close_delete()
        self.refresh()
        self.set_status("Deleted")
        return True

    def _close_delete(self) -> None:
        self.pending_delete = None
        self._set_mode(Mode.NORMAL)

    def _handle_delete_confirm(self, key: str):
        pending = self.pending_delete
        if pending is None or key in ("escape", "n"):
            self._close_delete()
            return False
        if key == "y":
            self.confirm_delete()
        elif key in ("up", "k", "s-tab"):
            pending.choice = (pending.choice - 1) % len(DELETE_CHOICES)
        elif key in ("down", "j", "tab"):
            pending.choice = (pending.choice + 1) % len(DELETE_CHOICES)
        elif key == "enter":
            choice = DELETE_CHOICES[pending.choice]
            if choice == "Delete":
                self.confirm_delete()
            elif choice == "Archive":
                target = pending.target
                self._close_delete()
                self._set_archived(target, True)
            else:
                self._close_delete()
        return False

    # ── Search ──────────────────────────────────────────────────────

    def start_search(self) -> None:
        self.search_editor = Editor(self.filters.search, max_history=self.config.max_history)
        self._set_mode(Mode.SEARCH)

    def _handle_search(self, key: str):
        editor = self.search_editor
        if editor is None or key == "escape":
            self.search_editor = None
            self._set_mode(Mode.NORMAL)
            self.refresh()
            return False
        if key == "enter":
            self.filters.search = editor.text.strip()
            self.search_editor = None
            self._set_mode(Mode.NORMAL)
            self.refresh()
            return False
        if key in ("down", "c-n"):
            self.select_next()
            return False
        if key in ("up", "c-p"):
            self.select_prev()
            return False
        if not is_text_key(key) and self.keys.matches(key, "undo"):
            editor.undo()
        elif not is_text_key(key) and self.keys.matches(key, "redo"):
            editor.redo()
        elif not apply_editing_key(editor, key):
            return False
        self.refresh()
        return False

    # ── Filter form ─────────────────────────────────────────────────

    def start_filter(self) -> None:
        fields = FILTER_FIELDS if self.nav.tab is Tab.TASKS else tuple(
            f for f in FILTER_FIELDS if f != "status")
        f = self.filters
        self.filter_form = FilterForm(
            tags=Editor(", ".join(sorted(f.tag_filter.tags)), max_history=self.config.max_history),
            logic=f.tag_filter.logic,
            archive=f.archive,
            status=f.status,
            fields=fields,
        )
        self._set_mode(Mode.FILTER)

    def apply_filter_form(self) -> None:
        form = self.filter_form
        if form is None:
            return
        self.filters.tag_filter = TagFilter.from_text(form.tags.text, form.logic)
        self.filters.archive = form.archive
        if self.nav.tab is Tab.TASKS:
            self.filters.status = form.status
        self._close_filter()
        self.refresh()
        self.set_status("Filters applied")

    def clear_filters(self) -> None:
        self.filters.clear()
        self._close_filter()
        self.refresh()
        self.set_status("Filters cleared")

    def _close_filter(self) -> None:
        self.filter_form = None
        self._set_mode(Mode.NORMAL)

    def _handle_filter(self, key: str):
        form = self.filter_form
        if form is None or key == "escape":
            self._close_filter()
            return False
        name = form.current_field
        if key in ("tab", "down"):
            form.focus = (form.focus + 1) % len(form.fields)
        elif key in ("s-tab", "up"):
            form.focus = (form.focus - 1) % len(form.fields)
        elif key == "enter" or self.keys.matches(key, "save"):
            if name == "clear":
                self.clear_filters()
            elif name == "cancel":
                self._close_filter()
            else:
                self.apply_filter_form()
        elif name == "tags":
            if not is_text_key(key) and self.keys.matches(key, "undo"):
                form.tags.undo()
            elif not is_text_key(key) and self.keys.matches(key, "redo"):
                form.tags.redo()
            else:
                apply_editing_key(form.tags, key)
        elif key in ("left", "right", " "):
            step = -1 if key == "left" else 1
            if name == "logic":
                form.logic = _cycle(tuple(TagLogic), form.logic, step)
            elif name == "archive":
                form.archive = _cycle(tuple(ArchiveFilter), form.archive, step)
            elif name == "status":
                form.status = _cycle(STATUS_CHOICES, form.status, step)
        return False

    # ── Help ────────────────────────────────────────────────────────

    def _handle_help(self, key: str):
        if key in ("escape", "q", "enter") or self.keys.matches(key, "help"):
            self._set_mode(Mode.NORMAL)
        return False

    # ── Settings ────────────────────────────────────────────────────

    @property
    def theme_names(self) -> list[str]:
        return sorted(self.config.themes)

    def open_settings(self) -> None:
        names = self.theme_names
        self.settings = SettingsPanel(
            theme_index=names.index(self.theme) if self.theme in names else 0,
            view_index=LIST_VIEWS.index(self.nav.list_view),
        )
        self._set_mode(Mode.SETTINGS)

    def _handle_settings(self, key: str):
        panel = self.settings
        if panel is None or key in ("escape", "q") or self.keys.matches(key, "settings"):
            self.settings = None
            self._set_mode(Mode.NORMAL)
            return False
        if key in ("tab", "s-tab", "left", "right"):
            step = -1 if key in ("s-tab", "left") else 1
            panel.category = (panel.category + step) % len(SETTINGS_CATEGORIES)
        elif key in ("up", "k", "down", "j"):
            step = -1 if key in ("up", "k") else 1
            if SETTINGS_CATEGORIES[panel.category] == "Theme":
                panel.theme_index = (panel.theme_index + step) % len(self.theme_names)
            else:
                panel.view_index = (panel.view_index + step) % len(LIST_VIEWS)
        elif key == "enter":
            self.apply_settings()
        return False

    def apply_settings(self) -> None:
        panel = self.settings
        if panel is None:
            return
        if SETTINGS_CATEGORIES[panel.category] == "Theme":
            self.theme = self.theme_names[panel.theme_index]
            message = f"Theme: {self.theme}"
        else:
            self.nav.list_view = LIST_VIEWS[panel.view_index]
            self.refresh()
            message = f"View: {self.nav.list_view.replace('_', ' ')}"
        try:
            save_ui_settings(self.config.path, {"theme": self.theme,
                                                "list_view": self.nav.list_view})
        except ConfigError as exc:
            logger.warning("saving settings failed: %s", exc)
            message += " (not saved)"
        self.set_status(message)

    # ── Notebooks ───────────────────────────────────────────────────

    def notebook_entries(self) -> list[tuple[str, NotebookScope, Optional[int]]]:
        entries = [("All notebooks", NotebookScope.ALL, None),
                   ("Unfiled", NotebookScope.UNFILED, None)]
        entries.extend((nb.name, NotebookScope.NOTEBOOK, nb.id) for nb in self.notebooks)
        return entries

    def open_notebooks(self) -> None:
        entries = self.notebook_entries()
        current = (self.filters.scope, self.filters.scope_notebook_id)
        index = next((i for i, e in enumerate(entries) if (e[1], e[2]) == current), 0)
        self.notebook_panel = NotebookPanel(index=index)
        self._set_mode(Mode.NOTEBOOKS)

    def _close_notebooks(self) -> None:
        self.notebook_panel = None
        self._set_mode(Mode.NORMAL)

    def _handle_notebooks(self, key: str):
        panel = self.notebook_panel
        if panel is None:
            self._close_notebooks()
            return False
        if panel.name_editor is not None:
            return self._handle_notebook_name(panel, key)
        entries = self.notebook_entries()
        label, scope, notebook_id = entries[min(panel.index, len(entries) - 1)]
        if key in ("escape", "q") or self.keys.matches(key, "notebooks"):
            self._close_notebooks()
        elif key in ("up", "k"):
            panel.index = max(0, panel.index - 1)
        elif key in ("down", "j"):
            panel.index = min(len(entries) - 1, panel.index + 1)
        elif key == "enter":
            self.filters.scope = scope
            self.filters.scope_notebook_id = notebook_id
            self._close_notebooks()
            self.refresh()
            self.set_status(f"Notebook: {label}")
        elif key == "a":
            panel.name_editor = Editor(max_history=self.config.max_history)
            panel.renaming = None
        elif key == "r" and scope is NotebookScope.NOTEBOOK:
            panel.name_editor = Editor(label, max_history=self.config.max_history)
            panel.renaming = notebook_id
        elif key == "d" and scope is NotebookScope.NOTEBOOK:
            self.delete_notebook(notebook_id)
            panel.index = min(panel.index, len(self.notebook_entries()) - 1)
        return False

    def _handle_notebook_name(self, panel: NotebookPanel, key: str):
        editor = panel.name_editor
        if key == "escape":
            panel.name_editor = None
            panel.renaming = None
        elif key == "enter":
            name = editor.text.strip()
            done = (self.rename_notebook(panel.renaming, name) if panel.renaming is not None
                    else self.add_notebook(name))
            if done:
                panel.name_editor = None
                panel.renaming = None
        else:
            apply_editing_key(editor, key)
        return False

    def _check_notebook_name(self, name: str, ignore_id: Optional[int] = None) -> bool:
        if not name:
            self.set_status("Notebook name cannot be empty")
            return False
        if any(nb.name.casefold() == name.casefold() and nb.id != ignore_id
               for nb in self.notebooks):
            self.set_status("A notebook with this name already exists")
            return False
        return True

    def _sort_notebooks(self) -> None:
        self.notebooks.sort(key=lambda nb: (nb.name.casefold(), nb.id or 0))

    def add_notebook(self, name: str) -> bool:
        name = name.strip()
        if not self._check_notebook_name(name):
            return False
        try:
            notebook = self.storage.create_notebook(name)
        except StorageError as exc:
            self._storage_failed("Create notebook", exc)
            return False
        self.notebooks.append(notebook)
        self._sort_notebooks()
        self.refresh()
        self.set_status("Notebook created")
        return True

    def rename_notebook(self, notebook_id: int, name: str) -> bool:
        name = name.strip()
        if not self._check_notebook_name(name, ignore_id=notebook_id):
            return False
        try:
            self.storage.rename_notebook(notebook_id, name)
        except StorageError as exc:
            self._storage_failed("Rename notebook", exc)
            return False
        self.notebooks = [dataclasses.replace(nb, name=name) if nb.id == notebook_id else nb
                          for nb in self.notebooks]
        self._sort_notebooks()
        self.refresh()
        self.set_status("Notebook renamed")
        return True

    def delete_notebook(self, notebook_id: int) -> bool:
        try:
            self.storage.delete_notebook(notebook_id)
        except StorageError as exc:
            self._storage_failed("Delete notebook", exc)
            return False
        self.notebooks = [nb for nb in self.notebooks if nb.id != notebook_id]
        self.records = [dataclasses.replace(r, notebook_id=None) if r.notebook_id == notebook_id
                        else r for r in self.records]
        if self.filters.scope_notebook_id == notebook_id:
            self.filters.scope = NotebookScope.ALL
            self.filters.scope_notebook_id = None
        self.refresh()
        self.set_status("Notebook deleted (items moved to Unfiled)")
        return True
