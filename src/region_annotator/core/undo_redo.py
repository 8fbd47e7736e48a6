"""Undo/Redo system using the Command pattern."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from PyQt6.QtCore import QObject, pyqtSignal

from .models import Annotation, AnnotationDocument, ImageRecord, Label

logger = logging.getLogger(__name__)


class Command(ABC):
    """
    Abstract base class for undoable commands.

    Commands hold full snapshots of what they touch and find live
    entities by identifier, so applying or reverting twice has the
    same effect as once, and a vanished entity is skipped.
    """

    @abstractmethod
    def apply(self) -> None:
        """Apply the command."""
        pass

    @abstractmethod
    def revert(self) -> None:
        """Revert the command."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of the command."""
        pass


def _shape_name(annotation: Annotation) -> str:
    return "Box" if annotation.type.value == "box" else "Polygon"


class AddAnnotationCommand(Command):
    """Command for adding an annotation to an image."""

    def __init__(self, image: ImageRecord, annotation: Annotation) -> None:
        self._image = image
        self._annotation = annotation.snapshot()

    @property
    def annotation_id(self) -> str:
        return self._annotation.id

    def apply(self) -> None:
        if self._image.index_of(self._annotation.id) == -1:
            self._image.annotations.append(self._annotation.snapshot())

    def revert(self) -> None:
        index = self._image.index_of(self._annotation.id)
        if index != -1:
            del self._image.annotations[index]

    @property
    def description(self) -> str:
        return f"Add {_shape_name(self._annotation)}"


class DeleteAnnotationCommand(Command):
    """Command for deleting an annotation; undo puts it back at its index."""

    def __init__(self, image: ImageRecord, annotation: Annotation) -> None:
        self._image = image
        self._annotation = annotation.snapshot()
        self._index = image.index_of(annotation.id)

    def apply(self) -> None:
        index = self._image.index_of(self._annotation.id)
        if index != -1:
            del self._image.annotations[index]

    def revert(self) -> None:
        if self._image.index_of(self._annotation.id) == -1:
            index = min(max(self._index, 0), len(self._image.annotations))
            self._image.annotations.insert(index, self._annotation.snapshot())

    @property
    def description(self) -> str:
        return f"Delete {_shape_name(self._annotation)}"


class ReplaceAnnotationCommand(Command):
    """
    Command for replacing an annotation's state with a new snapshot.

    Used for drag edits (move, resize, vertex) and per-annotation
    hidden/locked toggles.
    """

    def __init__(
        self,
        image: ImageRecord,
        before: Annotation,
        after: Annotation,
        description: str = "Edit Region"
    ) -> None:
        self._image = image
        self._before = before.snapshot()
        self._after = after.snapshot()
        self._description = description

    def apply(self) -> None:
        ann = self._image.find_annotation(self._after.id)
        if ann is not None:
            ann.restore(self._after)

    def revert(self) -> None:
        ann = self._image.find_annotation(self._before.id)
        if ann is not None:
            ann.restore(self._before)

    @property
    def description(self) -> str:
        return self._description


class AddLabelCommand(Command):
    """Command for adding a label; the new label becomes active."""

    def __init__(self, document: AnnotationDocument, label: Label) -> None:
        self._document = document
        self._label = label
        self._previous_active = document.active_label_id

    def apply(self) -> None:
        if self._document.find_label(self._label.id) is None:
            self._document.labels.append(self._label)
        self._document.active_label_id = self._label.id

    def revert(self) -> None:
        doc = self._document
        index = doc.label_index(self._label.id)
        if index is not None:
            del doc.labels[index]
        if doc.active_label_id == self._label.id:
            doc.active_label_id = (
                self._previous_active if doc.find_label(self._previous_active) else None
            )
        doc.label_hidden.discard(self._label.id)
        doc.label_locked.discard(self._label.id)

    @property
    def description(self) -> str:
        return f"Add Label '{self._label.name}'"


class DeleteLabelCommand(Command):
    """
    Command for deleting a label.

    Annotations referring to the label are left untouched; their
    reference simply stops resolving until the delete is undone.
    """

    def __init__(self, document: AnnotationDocument, label: Label) -> None:
        self._document = document
        self._label = label
        self._index = document.label_index(label.id)
        self._was_active = document.active_label_id == label.id
        self._was_hidden = label.id in document.label_hidden
        self._was_locked = label.id in document.label_locked

    def apply(self) -> None:
        doc = self._document
        index = doc.label_index(self._label.id)
        if index is not None:
            del doc.labels[index]
        if doc.active_label_id == self._label.id:
            doc.active_label_id = None
        doc.label_hidden.discard(self._label.id)
        doc.label_locked.discard(self._label.id)

    def revert(self) -> None:
        doc = self._document
        if doc.find_label(self._label.id) is None:
            index = self._index if self._index is not None else len(doc.labels)
            doc.labels.insert(min(index, len(doc.labels)), self._label)
        if self._was_active:
            doc.active_label_id = self._label.id
        if self._was_hidden:
            doc.label_hidden.add(self._label.id)
        if self._was_locked:
            doc.label_locked.add(self._label.id)

    @property
    def description(self) -> str:
        return f"Delete Label '{self._label.name}'"


class ToggleLabelFlagCommand(Command):
    """Command for flipping a label's hidden or locked flag."""

    FLAGS = ("hidden", "locked")

    def __init__(self, document: AnnotationDocument, label_id: str, flag: str) -> None:
        if flag not in self.FLAGS:
            raise ValueError(f"Unknown label flag: {flag}")
        self._document = document
        self._label_id = label_id
        self._flag = flag
        self._before = label_id in self._flags

    @property
    def _flags(self) -> set:
        if self._flag == "hidden":
            return self._document.label_hidden
        return self._document.label_locked

    def _set(self, value: bool) -> None:
        if value:
            self._flags.add(self._label_id)
        else:
            self._flags.discard(self._label_id)

    def apply(self) -> None:
        self._set(not self._before)

    def revert(self) -> None:
        self._set(self._before)

    @property
    def description(self) -> str:
        verb = {
            ("hidden", False): "Hide", ("hidden", True): "Show",
            ("locked", False): "Lock", ("locked", True): "Unlock",
        }[(self._flag, self._before)]
        label = self._document.find_label(self._label_id)
        return f"{verb} Label '{label.name if label else self._label_id}'"


class DeleteLabelGroupCommand(Command):
    """Command for deleting every annotation of an image carrying a label."""

    def __init__(self, image: ImageRecord, label_id: str) -> None:
        self._image = image
        self._label_id = label_id
        self._before = [a.snapshot() for a in image.annotations]
        self._after = [a for a in self._before if a.label_id != label_id]

    @property
    def removed_count(self) -> int:
        return len(self._before) - len(self._after)

    def apply(self) -> None:
        self._image.annotations[:] = [a.snapshot() for a in self._after]

    def revert(self) -> None:
        self._image.annotations[:] = [a.snapshot() for a in self._before]

    @property
    def description(self) -> str:
        return f"Delete {self.removed_count} Region{'s' if self.removed_count != 1 else ''}"


class RemoveImageCommand(Command):
    """Command for removing an image and its annotations."""

    def __init__(self, document: AnnotationDocument, image: ImageRecord) -> None:
        self._document = document
        self._image = image
        self._index = document.images.index(image)

    def apply(self) -> None:
        if self._document.find_image(self._image.id) is not None:
            self._document.images.remove(self._image)

    def revert(self) -> None:
        if self._document.find_image(self._image.id) is None:
            index = min(self._index, len(self._document.images))
            self._document.images.insert(index, self._image)

    @property
    def description(self) -> str:
        return f"Remove Image '{self._image.name}'"


class UndoRedoManager(QObject):
    """
    Manages undo/redo stacks for the application.

    Both stacks are unbounded. Emits signals when the history changes
    so the UI can refresh and the session can be saved.
    """

    state_changed = pyqtSignal()  # Emitted when undo/redo availability changes
    committed = pyqtSignal()  # Emitted whenever the document changed through history

    def __init__(self) -> None:
        super().__init__()
        self._undo_stack: List[Command] = []
        self._redo_stack: List[Command] = []

    def commit(self, command: Command) -> None:
        """
        Apply a command and add it to the undo stack.

        The stacks are only touched once apply() has returned.

        Args:
            command: The command to apply
        """
        command.apply()
        self._undo_stack.append(command)

        # Clear redo stack when new command is committed
        self._redo_stack.clear()

        logger.debug(f"Committed: {command.description}")
        self.committed.emit()
        self.state_changed.emit()

    def undo(self) -> bool:
        """
        Undo the last command.

        Returns:
            True if a command was undone
        """
        if not self._undo_stack:
            return False

        command = self._undo_stack[-1]
        command.revert()
        self._redo_stack.append(self._undo_stack.pop())

        logger.debug(f"Undone: {command.description}")
        self.committed.emit()
        self.state_changed.emit()
        return True

    def redo(self) -> bool:
        """
        Redo the last undone command.

        Returns:
            True if a command was redone
        """
        if not self._redo_stack:
            return False

        command = self._redo_stack[-1]
        command.apply()
        self._undo_stack.append(self._redo_stack.pop())

        logger.debug(f"Redone: {command.description}")
        self.committed.emit()
        self.state_changed.emit()
        return True

    def can_undo(self) -> bool:
        """Check if undo is available."""
        return len(self._undo_stack) > 0

    def can_redo(self) -> bool:
        """Check if redo is available."""
        return len(self._redo_stack) > 0

    def undo_description(self) -> str:
        """Get description of the command that would be undone."""
        if self._undo_stack:
            return self._undo_stack[-1].description
        return ""

    def redo_description(self) -> str:
        """Get description of the command that would be redone."""
        if self._redo_stack:
            return self._redo_stack[-1].description
        return ""

    def last_command(self) -> Optional[Command]:
        return self._undo_stack[-1] if self._undo_stack else None

    def clear(self) -> None:
        """Clear all undo/redo history."""
        self._undo_stack.clear()
        self._redo_stack.clear()
        self.state_changed.emit()

    @property
    def undo_count(self) -> int:
        """Get the number of commands that can be undone."""
        return len(self._undo_stack)

    @property
    def redo_count(self) -> int:
        """Get the number of commands that can be redone."""
        return len(self._redo_stack)

    def get_history(self) -> List[Tuple[str, bool]]:
        """
        Get the full history, oldest first.

        Returns:
            List of (description, is_undo_stack) tuples; redo entries
            follow the undo entries in the order they would be redone
        """
        history = [(cmd.description, True) for cmd in self._undo_stack]
        history.extend((cmd.description, False) for cmd in reversed(self._redo_stack))
        return history
