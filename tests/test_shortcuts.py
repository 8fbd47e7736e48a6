"""Tests for keyboard shortcut resolution."""

import pytest

from region_annotator.core.config import AppConfig
from region_annotator.core.shortcuts import ShortcutAction, ShortcutMap, parse_chord


@pytest.fixture
def shortcuts():
    return ShortcutMap.from_config(AppConfig())


class TestParseChord:
    """Tests for parse_chord."""

    def test_modifiers_are_unordered(self):
        assert parse_chord("Ctrl+Shift+Z") == parse_chord("shift+ctrl+z")

    def test_cmd_acts_as_ctrl(self):
        assert parse_chord("Cmd+Z") == (frozenset({"ctrl"}), "z")
        assert parse_chord("Meta+Z") == parse_chord("Ctrl+Z")

    def test_key_aliases(self):
        assert parse_chord("Del") == parse_chord("Delete")
        assert parse_chord("Esc") == (frozenset(), "escape")
        assert parse_chord("Enter") == parse_chord("Return")

    def test_modifiers_only(self):
        assert parse_chord("Ctrl+Shift") is None
        assert parse_chord("") is None


class TestShortcutMap:
    """Tests for ShortcutMap."""

    @pytest.mark.parametrize("sequence, action", [
        ("Ctrl+Z", ShortcutAction.UNDO),
        ("Cmd+Z", ShortcutAction.UNDO),
        ("Ctrl+Shift+Z", ShortcutAction.REDO),
        ("Ctrl+Y", ShortcutAction.REDO),
        ("Delete", ShortcutAction.DELETE_SELECTED),
        ("Backspace", ShortcutAction.DELETE_SELECTED),
        ("Escape", ShortcutAction.CLEAR_ACTIVE_LABEL),
        ("Return", ShortcutAction.FINISH_POLYGON),
        ("Enter", ShortcutAction.FINISH_POLYGON),
    ])
    def test_defaults(self, shortcuts, sequence, action):
        assert shortcuts.resolve(sequence) == action

    def test_unbound(self, shortcuts):
        assert shortcuts.resolve("Ctrl+Q") is None
        assert shortcuts.resolve("Z") is None

    def test_resolve_key(self, shortcuts):
        assert shortcuts.resolve_key("Z", ctrl=True) == ShortcutAction.UNDO
        assert shortcuts.resolve_key("Z", ctrl=True, shift=True) == ShortcutAction.REDO
        assert shortcuts.resolve_key("Esc") == ShortcutAction.CLEAR_ACTIVE_LABEL
        assert shortcuts.resolve_key("Z", alt=True) is None

    def test_custom_config(self):
        config = AppConfig(undo_keys=["Alt+U"], delete_keys=["X", "Ctrl+"])
        shortcuts = ShortcutMap.from_config(config)

        assert shortcuts.resolve("Alt+U") == ShortcutAction.UNDO
        assert shortcuts.resolve("Ctrl+Z") is None
        assert shortcuts.resolve("x") == ShortcutAction.DELETE_SELECTED
