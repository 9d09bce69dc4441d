#!/usr/bin/env python3
"""
Tests for config loading, key parsing and settings persistence.
"""

import sys
import tempfile
import tomllib
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

import pytest

from jotdeck.config import (
    PRESET_THEMES, KeyMap, app_dir_name, format_key, load_config, parse_key,
    save_ui_settings,
)
from jotdeck.errors import ConfigError
from jotdeck.ui import build_style


def test_parse_key():
    assert parse_key("q") == "q"
    assert parse_key("K") == "K"
    assert parse_key("Ctrl+S") == "c-s"
    assert parse_key("ctrl+shift+Left") == "c-s-left"
    assert parse_key("Shift+Tab") == "s-tab"
    assert parse_key("Space") == " "
    assert parse_key("F1") == "f1"
    assert parse_key("Enter") == "enter"
    with pytest.raises(ValueError):
        parse_key("Hyper+x")
    with pytest.raises(ValueError):
        parse_key("")
    print("  parse_key OK")


def test_format_key():
    assert format_key(" ") == "Space"
    assert format_key("q") == "q"
    assert format_key("f1") == "F1"
    assert format_key("c-s") == "^s"
    print("  format_key OK")


def test_default_keymap():
    keys = KeyMap.default()
    assert keys.actions_for("q") == ["quit"]
    assert keys.matches("c-s", "save")
    assert keys.matches("down", "select_next")
    assert keys.matches("j", "select_next")
    assert keys.actions_for("x") == []
    print("  default keymap OK")


def test_missing_file_gives_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        cfg, warnings = load_config(path)
        assert warnings == []
        assert cfg.path == path
        assert cfg.theme == "default"
        assert cfg.list_view == "simple"
        assert cfg.status_duration == 3.0

        with pytest.raises(ConfigError):
            load_config(path, required=True)
    print("  defaults OK")


def test_load_values_and_warnings():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        path.write_text(
            '[storage]\n'
            f'database_path = "{tmpdir}/data.db"\n'
            '\n'
            '[ui]\n'
            'theme = "ocean"\n'
            'list_view = "sideways"\n'
            'status_duration = "2.5"\n'
            'max_history = 7\n'
            '\n'
            '[keys]\n'
            'quit = ["Ctrl+q", "q"]\n'
            'teleport = "x"\n'
            'save = "Hyper+s"\n'
            '\n'
            '[themes.ocean]\n'
            'fg = "#ffffff"\n'
            'accent = "#00aaff"\n',
            encoding="utf-8",
        )
        cfg, warnings = load_config(path)
        assert cfg.database_path == Path(tmpdir) / "data.db"
        assert cfg.theme == "ocean"
        assert cfg.active_theme.accent == "#00aaff"
        assert cfg.active_theme.bg == PRESET_THEMES["default"].bg
        assert cfg.list_view == "simple"
        assert cfg.status_duration == 2.5
        assert cfg.max_history == 7
        assert cfg.keys.matches("c-q", "quit")
        assert cfg.keys.matches("c-s", "save")  # bad override keeps the default
        assert any("list_view" in w for w in warnings)
        assert any("teleport" in w for w in warnings)
        assert any("keys.save" in w for w in warnings)
    print("  values + warnings OK")


def test_broken_toml_is_a_warning():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        path.write_text("[ui\ntheme = ", encoding="utf-8")
        cfg, warnings = load_config(path, required=True)
        assert cfg.theme == "default"
        assert len(warnings) == 1
    print("  broken toml OK")


def test_bad_theme_colour_keeps_default():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        path.write_text(
            '[ui]\n'
            'theme = "mine"\n'
            '\n'
            '[themes.mine]\n'
            'fg = "blorp"\n'
            'accent = "ansired"\n',
            encoding="utf-8",
        )
        cfg, warnings = load_config(path)
        assert cfg.theme == "mine"
        assert cfg.active_theme.fg == "white"
        assert cfg.active_theme.accent == "ansired"
        assert any(w.startswith("themes.mine.fg") for w in warnings)
        assert build_style(cfg.active_theme) is not None
    print("  bad theme colour OK")


def test_save_ui_settings_preserves_rest():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        path.write_text(
            '# my settings\n'
            '[ui]\n'
            'theme = "dark"\n'
            'max_history = 50\n'
            '\n'
            '[keys]\n'
            'quit = "x"\n',
            encoding="utf-8",
        )
        save_ui_settings(path, {"theme": "green", "list_view": "grouped"})
        text = path.read_text(encoding="utf-8")
        assert text.startswith("# my settings\n")
        data = tomllib.loads(text)
        assert data["ui"] == {"theme": "green", "max_history": 50, "list_view": "grouped"}
        assert data["keys"] == {"quit": "x"}

        cfg, _ = load_config(path)
        assert cfg.theme == "green"
        assert cfg.list_view == "grouped"
    print("  save settings OK")


def test_save_ui_settings_creates_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "sub" / "config.toml"
        save_ui_settings(path, {"theme": "light"})
        assert tomllib.loads(path.read_text(encoding="utf-8")) == {"ui": {"theme": "light"}}
    print("  save creates file OK")


def test_dev_profile_dirs():
    assert app_dir_name() == "jotdeck"
    assert app_dir_name(dev=True) == "jotdeck-dev"
    print("  dev profile OK")


if __name__ == "__main__":
    print("Testing config...")
    test_parse_key()
    test_format_key()
    test_default_keymap()
    test_missing_file_gives_defaults()
    test_load_values_and_warnings()
    test_broken_toml_is_a_warning()
    test_bad_theme_colour_keeps_default()
    test_save_ui_settings_preserves_rest()
    test_save_ui_settings_creates_file()
    test_dev_profile_dirs()
    print("  ✓ Config tests passed\n")
