"""Config file, key bindings, themes and the directories jotdeck uses."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from prompt_toolkit.styles.style import parse_color

from jotdeck.errors import ConfigError

logger = logging.getLogger(__name__)

APP_NAME = "jotdeck"
LIST_VIEWS = ("simple", "two_line", "grouped")


# ════════════════════════════════════════════════════════════════════════
#  Paths
# ════════════════════════════════════════════════════════════════════════


def _xdg(var: str, fallback: str) -> Path:
    value = os.environ.get(var)
    return Path(value) if value else Path.home() / fallback


def app_dir_name(dev: bool = False) -> str:
    return f"{APP_NAME}-dev" if dev else APP_NAME


def config_path(dev: bool = False) -> Path:
    return _xdg("XDG_CONFIG_HOME", ".config") / app_dir_name(dev) / "config.toml"


def data_dir(dev: bool = False) -> Path:
    return _xdg("XDG_DATA_HOME", ".local/share") / app_dir_name(dev)


def log_path(dev: bool = False) -> Path:
    return _xdg("XDG_STATE_HOME", ".local/state") / app_dir_name(dev) / f"{APP_NAME}.log"


# ════════════════════════════════════════════════════════════════════════
#  Key bindings
# ════════════════════════════════════════════════════════════════════════

DEFAULT_KEYS: dict[str, tuple[str, ...]] = {
    "quit": ("q",),
    "new": ("n",),
    "edit": ("e",),
    "save": ("Ctrl+s",),
    "delete": ("d",),
    "search": ("/",),
    "filter": ("f",),
    "select_next": ("j", "Down"),
    "select_prev": ("k", "Up"),
    "tab_next": ("Right", "l"),
    "tab_prev": ("Left", "h"),
    "tab_tasks": ("1",),
    "tab_notes": ("2",),
    "tab_journal": ("3",),
    "help": ("?", "F1"),
    "settings": ("F2",),
    "toggle_status": ("Space",),
    "toggle_archive": ("a",),
    "toggle_view": ("t",),
    "notebooks": ("b",),
    "move_up": ("K",),
    "move_down": ("J",),
    "undo": ("Ctrl+z",),
    "redo": ("Ctrl+y",),
    "clear_search": ("c",),
}

_NAMED_KEYS = {
    "enter": "enter", "return": "enter",
    "esc": "escape", "escape": "escape",
    "tab": "tab", "backtab": "s-tab",
    "backspace": "backspace", "delete": "delete", "del": "delete",
    "insert": "insert", "space": " ",
    "up": "up", "down": "down", "left": "left", "right": "right",
    "home": "home", "end": "end",
    "pageup": "pageup", "pagedown": "pagedown", "pgup": "pageup", "pgdn": "pagedown",
}
_NAMED_KEYS.update({f"f{n}": f"f{n}" for n in range(1, 13)})

_MODIFIERS = {"ctrl": "c", "control": "c", "shift": "s"}


def parse_key(text: str) -> str:
    """Human key notation ("Ctrl+s", "F1", "Space", "K") -> canonical key name."""
    if not isinstance(text, str) or not text:
        raise ValueError(f"invalid key: {text!r}")
    if len(text) == 1:
        return text
    if text.lower() in _NAMED_KEYS:
        return _NAMED_KEYS[text.lower()]
    parts = text.split("+")
    base = parts[-1]
    mods = []
    for raw in parts[:-1]:
        mod = _MODIFIERS.get(raw.strip().lower())
        if mod is None:
            raise ValueError(f"unknown modifier {raw!r} in {text!r}")
        if mod not in mods:
            mods.append(mod)
    if not base:
        raise ValueError(f"invalid key: {text!r}")
    if len(base) == 1:
        name = base.lower() if "c" in mods else base
    elif base.lower() in _NAMED_KEYS:
        name = _NAMED_KEYS[base.lower()]
    else:
        raise ValueError(f"unknown key {base!r} in {text!r}")
    if mods == ["s"] and name == "tab":
        return "s-tab"
    mods.sort()  # "c" before "s", matching prompt_toolkit's c-s-left
    return "-".join(mods + [name]) if mods else name


def format_key(key: str) -> str:
    """Canonical key name -> short label for help screens."""
    if key == " ":
        return "Space"
    parts = key.split("-")
    if len(parts) == 1 or key == "-":
        return key if len(key) == 1 else key.capitalize()
    *mods, base = parts
    prefix = "".join({"c": "^", "s": "⇧"}.get(m, m) for m in mods)
    return prefix + (base if len(base) == 1 else base.capitalize())


class KeyMap:
    """Action <-> key lookups over canonical key names."""

    def __init__(self, bindings: dict[str, tuple[str, ...]]):
        self.bindings = {action: tuple(keys) for action, keys in bindings.items()}
        self._by_key: dict[str, list[str]] = {}
        for action, keys in self.bindings.items():
            for key in keys:
                self._by_key.setdefault(key, []).append(action)

    @classmethod
    def default(cls) -> "KeyMap":
        return cls({a: tuple(parse_key(k) for k in keys) for a, keys in DEFAULT_KEYS.items()})

    def actions_for(self, key: str) -> list[str]:
        return list(self._by_key.get(key, ()))

    def matches(self, key: str, action: str) -> bool:
        return key in self.bindings.get(action, ())

    def label(self, action: str) -> str:
        return "/".join(format_key(k) for k in self.bindings.get(action, ()))


def _parse_key_table(table: dict, warnings: list[str]) -> KeyMap:
    bindings = {a: tuple(parse_key(k) for k in keys) for a, keys in DEFAULT_KEYS.items()}
    for action, value in table.items():
        if action not in DEFAULT_KEYS:
            warnings.append(f"keys.{action}: unknown action")
            continue
        raw = [value] if isinstance(value, str) else value
        if not isinstance(raw, list) or not raw:
            warnings.append(f"keys.{action}: expected a key or a list of keys")
            continue
        try:
            bindings[action] = tuple(parse_key(k) for k in raw)
        except ValueError as exc:
            warnings.append(f"keys.{action}: {exc}")
    return KeyMap(bindings)


# ════════════════════════════════════════════════════════════════════════
#  Themes
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Theme:
    fg: str = "white"
    bg: str = "black"
    highlight_fg: str = "white"
    highlight_bg: str = "blue"
    accent: str = "yellow"


PRESET_THEMES: dict[str, Theme] = {
    "default": Theme(),
    "dark": Theme(highlight_fg="black", highlight_bg="cyan", accent="cyan"),
    "light": Theme(fg="black", bg="white", highlight_fg="white", highlight_bg="blue", accent="blue"),
    "green": Theme(fg="green", highlight_fg="black", highlight_bg="yellow", accent="yellow"),
    "monochrome": Theme(highlight_fg="black", highlight_bg="white", accent="white"),
}


def _parse_themes(table: dict, warnings: list[str]) -> dict[str, Theme]:
    themes = dict(PRESET_THEMES)
    for name, spec in table.items():
        if not isinstance(spec, dict):
            warnings.append(f"themes.{name}: expected a table")
            continue
        base = Theme()
        colors = {}
        for attr in ("fg", "bg", "highlight_fg", "highlight_bg", "accent"):
            value = spec.get(attr)
            colors[attr] = getattr(base, attr)
            if not value:
                continue
            try:
                parse_color(str(value))
            except ValueError as exc:
                warnings.append(f"themes.{name}.{attr}: {exc}")
                continue
            colors[attr] = str(value)
        themes[name] = Theme(**colors)
    return themes


# ════════════════════════════════════════════════════════════════════════
#  Config
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Config:
    path: Path = field(default_factory=config_path)
    database_path: Path = field(default_factory=lambda: data_dir() / f"{APP_NAME}.db")
    theme: str = "default"
    themes: dict[str, Theme] = field(default_factory=lambda: dict(PRESET_THEMES))
    list_view: str = "simple"
    status_duration: float = 3.0
    max_history: int = 100
    keys: KeyMap = field(default_factory=KeyMap.default)

    @property
    def active_theme(self) -> Theme:
        return self.themes.get(self.theme, PRESET_THEMES["default"])


def _as_float(value, *, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _as_int(value, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(default)


def _table(data: dict, name: str, warnings: list[str]) -> dict:
    value = data.get(name, {})
    if not isinstance(value, dict):
        warnings.append(f"[{name}] is not a table")
        return {}
    return value


def load_config(path: Optional[Path] = None, dev: bool = False,
                required: bool = False) -> tuple[Config, list[str]]:
    """Load config.toml; returns (config, warnings).

    A missing file yields the defaults. ``required`` turns a missing or
    unreadable file into ConfigError (used for an explicit --config).
    """
    path = Path(path).expanduser() if path else config_path(dev)
    defaults = Config(path=path, database_path=data_dir(dev) / f"{APP_NAME}.db")
    if not path.exists():
        if required:
            raise ConfigError(f"config file not found: {path}")
        return defaults, []

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        if required:
            raise ConfigError(f"cannot read {path}: {exc}") from exc
        return defaults, [f"cannot read {path}: {exc}"]
    except tomllib.TOMLDecodeError as exc:
        return defaults, [f"{path.name} parse failed: {exc}"]

    warnings: list[str] = []
    storage = _table(data, "storage", warnings)
    ui = _table(data, "ui", warnings)
    themes = _parse_themes(_table(data, "themes", warnings), warnings)

    theme = str(ui.get("theme") or defaults.theme)
    if theme not in themes:
        warnings.append(f"ui.theme: unknown theme {theme!r}, using default")
        theme = defaults.theme
    list_view = str(ui.get("list_view") or defaults.list_view)
    if list_view not in LIST_VIEWS:
        warnings.append(f"ui.list_view: expected one of {', '.join(LIST_VIEWS)}")
        list_view = defaults.list_view

    db = storage.get("database_path")
    cfg = Config(
        path=path,
        database_path=Path(str(db)).expanduser() if db else defaults.database_path,
        theme=theme,
        themes=themes,
        list_view=list_view,
        status_duration=max(0.5, _as_float(ui.get("status_duration"), default=defaults.status_duration)),
        max_history=max(1, _as_int(ui.get("max_history"), default=defaults.max_history)),
        keys=_parse_key_table(_table(data, "keys", warnings), warnings),
    )
    for warning in warnings:
        logger.warning("config: %s", warning)
    return cfg, warnings


def _toml_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def save_ui_settings(path: Path, settings: dict) -> None:
    """Write ``settings`` into the [ui] table, leaving the rest of the file alone."""
    try:
        text = path.read_text(encoding="utf-8") if path.exists() else ""
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc

    lines = text.splitlines()
    start = next((i for i, raw in enumerate(lines) if raw.strip() == "[ui]"), None)
    if start is None:
        if lines and lines[-1].strip():
            lines.append("")
        lines.append("[ui]")
        start = len(lines) - 1
    end = start + 1
    while end < len(lines) and not lines[end].strip().startswith("["):
        end += 1

    pending = dict(settings)
    for i in range(start + 1, end):
        key = lines[i].split("=", 1)[0].strip()
        if "=" in lines[i] and key in pending:
            lines[i] = f"{key} = {_toml_value(pending.pop(key))}"
    insert_at = end
    while insert_at > start + 1 and not lines[insert_at - 1].strip():
        insert_at -= 1
    for key, value in pending.items():
        lines.insert(insert_at, f"{key} = {_toml_value(value)}")
        insert_at += 1

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot write {path}: {exc}") from exc
    logger.info("saved ui settings to %s", path)
