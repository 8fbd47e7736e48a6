"""Keyboard shortcut resolution."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from .config import AppConfig

logger = logging.getLogger(__name__)

KeyChord = Tuple[FrozenSet[str], str]

# Cmd on macOS acts as Ctrl
_MODIFIER_ALIASES = {
    "ctrl": "ctrl", "control": "ctrl", "cmd": "ctrl", "meta": "ctrl", "command": "ctrl",
    "shift": "shift",
    "alt": "alt", "option": "alt",
}

_KEY_ALIASES = {
    "esc": "escape",
    "del": "delete",
    "enter": "return",
}


class ShortcutAction(str, Enum):
    """Actions reachable from the keyboard."""

    CLEAR_ACTIVE_LABEL = "clear_active_label"
    UNDO = "undo"
    REDO = "redo"
    DELETE_SELECTED = "delete_selected"
    FINISH_POLYGON = "finish_polygon"


def parse_chord(sequence: str) -> Optional[KeyChord]:
    """
    Parse a key sequence string such as "Ctrl+Shift+Z".

    Returns:
        (modifiers, key) with lowercase names, or None if no key is named
    """
    modifiers = set()
    key = None
    for part in sequence.replace(" ", "").split("+"):
        name = part.lower()
        if not name:
            continue
        if name in _MODIFIER_ALIASES:
            modifiers.add(_MODIFIER_ALIASES[name])
        else:
            key = _KEY_ALIASES.get(name, name)
    if key is None:
        return None
    return (frozenset(modifiers), key)


class ShortcutMap:
    """Maps key chords to actions."""

    def __init__(self, bindings: Dict[ShortcutAction, Iterable[str]]) -> None:
        self._chords: Dict[KeyChord, ShortcutAction] = {}
        for action, sequences in bindings.items():
            for sequence in sequences:
                chord = parse_chord(sequence)
                if chord is None:
                    logger.warning(f"Ignoring empty shortcut for {action.value}: {sequence!r}")
                    continue
                self._chords[chord] = action

    @classmethod
    def from_config(cls, config: AppConfig) -> ShortcutMap:
        return cls({
            ShortcutAction.CLEAR_ACTIVE_LABEL: config.clear_label_keys,
            ShortcutAction.UNDO: config.undo_keys,
            ShortcutAction.REDO: config.redo_keys,
            ShortcutAction.DELETE_SELECTED: config.delete_keys,
            ShortcutAction.FINISH_POLYGON: config.finish_polygon_keys,
        })

    def resolve(self, sequence: str) -> Optional[ShortcutAction]:
        chord = parse_chord(sequence)
        if chord is None:
            return None
        return self._chords.get(chord)

    def resolve_key(
        self,
        key: str,
        ctrl: bool = False,
        shift: bool = False,
        alt: bool = False
    ) -> Optional[ShortcutAction]:
        """Resolve a key name plus modifier state."""
        modifiers = set()
        if ctrl:
            modifiers.add("ctrl")
        if shift:
            modifiers.add("shift")
        if alt:
            modifiers.add("alt")
        name = key.lower()
        return self._chords.get((frozenset(modifiers), _KEY_ALIASES.get(name, name)))
