"""prompt_toolkit front end: renders controller state and feeds it keys."""

from __future__ import annotations

import functools
import shutil
import sys
from typing import Optional

from prompt_toolkit import Application
from prompt_toolkit.application.current import get_app
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout.containers import (
    ConditionalContainer, DynamicContainer, Float, FloatContainer,
    HSplit, VSplit, Window, WindowAlign,
)
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.dimension import Dimension as D
from prompt_toolkit.layout.layout import Layout
from prompt_toolkit.styles import DynamicStyle
from prompt_toolkit.styles import Style as PtStyle
from prompt_toolkit.widgets import Frame

from jotdeck.config import DEFAULT_KEYS, LIST_VIEWS, PRESET_THEMES, Theme
from jotdeck.controller import (
    DELETE_CHOICES, SETTINGS_CATEGORIES, TABS, Controller, Mode, field_label,
)
from jotdeck.editor import Editor
from jotdeck.errors import TerminalError
from jotdeck.models import JournalEntry, Record, Task, TaskStatus, format_tags

MIN_WIDTH = 40
MIN_HEIGHT = 12
REFRESH_INTERVAL = 0.5

# ════════════════════════════════════════════════════════════════════════
#  Keys
# ════════════════════════════════════════════════════════════════════════

_KEY_ALIASES = {
    "c-m": "enter",
    "c-j": "enter",
    "c-i": "tab",
    "c-h": "backspace",
    "c-@": "c-space",
}


def translate_key(key) -> Optional[str]:
    """Canonical key name for a prompt_toolkit key press, None to ignore it."""
    name = key.value if isinstance(key, Keys) else str(key)
    if name.startswith("<"):
        # <sigint>, <cursor-position-response>, mouse events and the like.
        return None
    if len(name) == 1:
        return name
    return _KEY_ALIASES.get(name, name)


def paste_keys(data: str) -> list[str]:
    """Bracketed paste arrives as one blob; replay it key by key."""
    data = data.replace("\r\n", "\n").replace("\r", "\n")
    return ["enter" if ch == "\n" else ch for ch in data if ch == "\n" or ch.isprintable()]


def check_interactive() -> None:
    if not sys.stdin.isatty() or not sys.stdout.isatty():
        raise TerminalError("jotdeck needs an interactive terminal")


def check_terminal_size(size=None) -> None:
    """Refuse to start on a terminal that cannot hold the layout."""
    columns, lines = size or shutil.get_terminal_size()
    if columns < MIN_WIDTH or lines < MIN_HEIGHT:
        raise TerminalError(
            f"terminal is {columns}x{lines}, need at least {MIN_WIDTH}x{MIN_HEIGHT}")


# ════════════════════════════════════════════════════════════════════════
#  Style
# ════════════════════════════════════════════════════════════════════════


@functools.lru_cache(maxsize=None)
def build_style(theme: Theme) -> PtStyle:
    return PtStyle.from_dict({
        "": f"{theme.fg} bg:{theme.bg}",
        "tab": "",
        "tab.active": f"bold {theme.accent}",
        "heading": f"bold {theme.accent}",
        "selected": f"{theme.highlight_fg} bg:{theme.highlight_bg}",
        "dim": "#888888",
        "archived": "#888888 italic",
        "label": "#aaaaaa",
        "label.focused": f"bold {theme.accent}",
        "cursor": "reverse",
        "selection": f"{theme.highlight_fg} bg:{theme.highlight_bg}",
        "error": "#ff5555 bold",
        "status": "reverse",
        "accent": theme.accent,
        "frame.border": theme.accent,
        "frame.label": f"bold {theme.accent}",
    })


# ════════════════════════════════════════════════════════════════════════
#  Rendering
# ════════════════════════════════════════════════════════════════════════

_STATUS_MARKS = {TaskStatus.OPEN: "[ ]", TaskStatus.IN_PROGRESS: "[~]", TaskStatus.DONE: "[x]"}


def record_line(record: Record) -> str:
    if isinstance(record, Task):
        text = f"{_STATUS_MARKS[record.status]} {record.title}"
        if record.due_date:
            text += f"  (due {record.due_date})"
    elif isinstance(record, JournalEntry):
        text = f"{record.entry_date}  {record.title or _first_line(record.body)}"
    else:
        text = record.title
    if record.archived:
        text += "  [archived]"
    return text


def _first_line(text: str) -> str:
    return text.strip().split("\n", 1)[0]


def render_tabs(c: Controller):
    result = []
    for number, tab in enumerate(TABS, start=1):
        style = "class:tab.active" if tab is c.nav.tab else "class:tab"
        result.append((style, f" {number}:{tab.label} "))
    scope = c.filters.scope
    if scope.value == "unfiled":
        result.append(("class:dim", "  @Unfiled"))
    elif scope.value == "notebook":
        result.append(("class:dim", f"  @{c.notebook_name(c.filters.scope_notebook_id)}"))
    return result


def render_list(c: Controller):
    if not c.display.item_count:
        return [("class:dim", "  (nothing here, press n to add)\n")]
    two_line = c.nav.list_view == "two_line"
    result = []
    for index, row in enumerate(c.display.rows):
        if row.is_heading:
            result.append(("class:heading", f" {row.label}\n"))
            continue
        record = row.record
        selected = index == c.nav.selected
        if selected:
            result.append(("[SetCursorPosition]", ""))
        style = "class:selected" if selected else ("class:archived" if record.archived else "")
        result.append((style, f"  {record_line(record)}\n"))
        if two_line:
            meta = format_tags(record.tags) or _first_line(record.body)
            result.append(("class:dim", f"      {meta}\n"))
    return result


def render_detail(c: Controller):
    record = c.selected_record
    if record is None:
        return [("class:dim", " No item selected")]
    result = [("bold", f" {record.title or '(untitled)'}\n")]
    meta = []
    if isinstance(record, Task):
        meta.append(("Status", record.status.label))
        if record.due_date:
            meta.append(("Due", record.due_date))
    if isinstance(record, JournalEntry):
        meta.append(("Date", record.entry_date))
    if record.tags:
        meta.append(("Tags", format_tags(record.tags)))
    meta.append(("Notebook", c.notebook_name(record.notebook_id)))
    if record.archived:
        meta.append(("Archived", "yes"))
    meta.append(("Updated", record.updated_at))
    for label, value in meta:
        result.append(("class:label", f" {label}: "))
        result.append(("", f"{value}\n"))
    result.append(("", "\n"))
    for line in record.body.split("\n"):
        result.append(("", f" {line}\n"))
    return result


def render_editor(editor: Editor, focused: bool):
    """Buffer text with the selection highlighted and a block cursor."""
    sel = editor.selection
    result = []
    for i, ch in enumerate(editor.text):
        style = "class:selection" if sel and sel[0] <= i < sel[1] else ""
        if focused and i == editor.cursor:
            result.append(("[SetCursorPosition]", ""))
            if ch == "\n":
                result.append(("class:cursor", " "))
                result.append(("", "\n"))
                continue
            style = "class:cursor"
        result.append((style, ch))
    if focused and editor.cursor >= len(editor.text):
        result.append(("[SetCursorPosition]", ""))
        result.append(("class:cursor", " "))
    return result


def render_form(c: Controller):
    draft = c.draft
    if draft is None:
        return []
    tab = draft.record.tab
    verb = "New" if draft.is_new else "Edit"
    result = [("class:heading", f" {verb} {tab.label.rstrip('s').lower()}\n\n")]
    for index, name in enumerate(draft.fields):
        focused = index == draft.focus
        label_style = "class:label.focused" if focused else "class:label"
        result.append((label_style, f" {field_label(tab, name)}: "))
        if name == "notebook":
            value = c.notebook_name(draft.notebook_id)
            result.append(("class:selected" if focused else "", f"< {value} >"))
        else:
            editor = draft.editors[name]
            if editor.multiline:
                result.append(("", "\n"))
            result.extend(render_editor(editor, focused))
        result.append(("", "\n"))
    if draft.error:
        result.append(("class:error", f"\n {draft.error}\n"))
    keys = c.keys
    result.append(("class:dim", f"\n Tab: next field  {keys.label('save')}: save  Esc: cancel"))
    return result


def render_status(c: Controller):
    if c.mode is Mode.SEARCH and c.search_editor is not None:
        return [("class:accent", " /")] + render_editor(c.search_editor, True)
    text = c.status.text or c.filter_summary()
    return [("class:status", f" {c.mode.value.upper().replace('_', ' ')} "), ("", f" {text}")]


def render_delete(c: Controller):
    pending = c.pending_delete
    if pending is None:
        return []
    title = pending.target.title or "(untitled)"
    result = [("", f" Delete \"{title}\"?\n\n")]
    for i, choice in enumerate(DELETE_CHOICES):
        style = "class:selected" if i == pending.choice else ""
        result.append((style, f"  {choice}  \n"))
    result.append(("class:dim", "\n y: delete  n/Esc: cancel"))
    return result


def render_filter(c: Controller):
    form = c.filter_form
    if form is None:
        return []
    values = {
        "logic": form.logic.label,
        "archive": form.archive.label,
        "status": form.status.label if form.status else "Any",
    }
    labels = {"tags": "Tags", "logic": "Match", "archive": "Archive", "status": "Status"}
    result = []
    for index, name in enumerate(form.fields):
        focused = index == form.focus
        if name in ("apply", "clear", "cancel"):
            result.append(("class:selected" if focused else "", f" [{name.capitalize()}] "))
            continue
        result.append(("class:label.focused" if focused else "class:label", f" {labels[name]}: "))
        if name == "tags":
            result.extend(render_editor(form.tags, focused))
        else:
            result.append(("class:selected" if focused else "", f"< {values[name]} >"))
        result.append(("", "\n"))
    result.append(("", "\n"))
    return result


def render_settings(c: Controller):
    panel = c.settings
    if panel is None:
        return []
    result = []
    for i, name in enumerate(SETTINGS_CATEGORIES):
        style = "class:tab.active" if i == panel.category else "class:tab"
        result.append((style, f" {name} "))
    result.append(("", "\n\n"))
    if SETTINGS_CATEGORIES[panel.category] == "Theme":
        options = c.theme_names
        chosen, current = panel.theme_index, c.theme
    else:
        options = list(LIST_VIEWS)
        chosen, current = panel.view_index, c.nav.list_view
    for i, option in enumerate(options):
        mark = "*" if option == current else " "
        style = "class:selected" if i == chosen else ""
        result.append((style, f" {mark} {option.replace('_', ' ')}\n"))
    result.append(("class:dim", f"\n Config:   {c.config.path}\n"))
    result.append(("class:dim", f" Database: {c.config.database_path}\n"))
    result.append(("class:dim", "\n Enter: apply  Esc: close"))
    return result


_HELP_LABELS = {
    "quit": "Quit", "new": "New item", "edit": "Edit item", "save": "Save form",
    "delete": "Delete item", "search": "Search", "filter": "Filters",
    "select_next": "Next item", "select_prev": "Previous item",
    "tab_next": "Next tab", "tab_prev": "Previous tab",
    "tab_tasks": "Tasks tab", "tab_notes": "Notes tab", "tab_journal": "Journal tab",
    "help": "This help", "settings": "Settings", "toggle_status": "Cycle task status",
    "toggle_archive": "Archive / restore", "toggle_view": "Cycle list view",
    "notebooks": "Notebooks", "move_up": "Move item up", "move_down": "Move item down",
    "undo": "Undo (in fields)", "redo": "Redo (in fields)", "clear_search": "Clear search",
}


def render_help(c: Controller):
    result = []
    for action in DEFAULT_KEYS:
        result.append(("class:accent", f" {c.keys.label(action):>14}  "))
        result.append(("", f"{_HELP_LABELS.get(action, action)}\n"))
    return result


def render_notebooks(c: Controller):
    panel = c.notebook_panel
    if panel is None:
        return []
    result = []
    for i, (label, _, _) in enumerate(c.notebook_entries()):
        style = "class:selected" if i == panel.index else ""
        result.append((style, f"  {label}\n"))
    if panel.name_editor is not None:
        prompt = "Rename to" if panel.renaming is not None else "New notebook"
        result.append(("class:label.focused", f"\n {prompt}: "))
        result.extend(render_editor(panel.name_editor, True))
        result.append(("", "\n"))
    result.append(("class:dim", "\n Enter: open  a: add  r: rename  d: delete"))
    return result


def render_too_small():
    width, height = get_app().output.get_size()
    return [("class:error",
             f" Terminal too small ({width}x{height}, need {MIN_WIDTH}x{MIN_HEIGHT})")]


# ════════════════════════════════════════════════════════════════════════
#  Application
# ════════════════════════════════════════════════════════════════════════


def create_app(controller: Controller) -> Application:
    c = controller

    tabs_window = Window(FormattedTextControl(lambda: render_tabs(c)), height=1)
    list_window = Window(FormattedTextControl(lambda: render_list(c)),
                         width=D(weight=2), wrap_lines=False)
    detail_window = Window(FormattedTextControl(lambda: render_detail(c)),
                           width=D(weight=3), wrap_lines=True)
    form_window = Window(FormattedTextControl(lambda: render_form(c)), wrap_lines=True)
    status_window = Window(FormattedTextControl(lambda: render_status(c)), height=1)
    too_small_window = Window(FormattedTextControl(render_too_small), align=WindowAlign.CENTER)

    browse_body = VSplit([list_window, Window(width=1, char="│", style="class:dim"),
                          detail_window])

    def get_body():
        if c.mode is Mode.EDIT:
            return form_window
        return browse_body

    main_screen = HSplit([tabs_window, Window(height=1, char="─", style="class:dim"),
                          DynamicContainer(get_body), status_window])

    modals = {
        Mode.DELETE_CONFIRM: ("Delete", render_delete),
        Mode.FILTER: ("Filters", render_filter),
        Mode.SETTINGS: ("Settings", render_settings),
        Mode.HELP: ("Keys", render_help),
        Mode.NOTEBOOKS: ("Notebooks", render_notebooks),
    }
    modal_frames = {
        mode: Frame(Window(FormattedTextControl(lambda fn=fn: fn(c)), wrap_lines=True),
                    title=title, width=D(preferred=56))
        for mode, (title, fn) in modals.items()
    }

    def get_modal():
        return modal_frames.get(c.mode, Window())

    root = FloatContainer(
        content=main_screen,
        floats=[Float(content=ConditionalContainer(
            DynamicContainer(get_modal), filter=Condition(lambda: c.mode in modal_frames)))],
    )

    def get_screen():
        width, height = get_app().output.get_size()
        if width < MIN_WIDTH or height < MIN_HEIGHT:
            return too_small_window
        return root

    # ── Key bindings ────────────────────────────────────────────────

    kb = KeyBindings()

    def feed(event, key) -> bool:
        if key is not None and c.handle_key(key):
            event.app.exit()
            return True
        return False

    @kb.add(Keys.BracketedPaste)
    def _paste(event):
        for key in paste_keys(event.data):
            if feed(event, key):
                break

    @kb.add(Keys.Any)
    def _any(event):
        for press in event.key_sequence:
            if feed(event, translate_key(press.key)):
                break

    style = DynamicStyle(
        lambda: build_style(c.config.themes.get(c.theme, PRESET_THEMES["default"])))

    # ── Build Application ────────────────────────────────────────────

    app = Application(
        layout=Layout(DynamicContainer(get_screen)),
        key_bindings=kb,
        style=style,
        full_screen=True,
        mouse_support=False,
        refresh_interval=REFRESH_INTERVAL,
        before_render=lambda _app: c.tick(),
    )
    app.ttimeoutlen = 0.05

    return app


def run(controller: Controller) -> None:
    check_interactive()
    check_terminal_size()
    create_app(controller).run()
