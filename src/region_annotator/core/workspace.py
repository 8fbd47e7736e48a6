"""Editing workspace: document, view, history and state machine together."""

from __future__ import annotations

import logging
from typing import Optional

from PyQt6.QtCore import QObject, QPointF, pyqtSignal

from .edit_state import EditContext, EditMode, EditStateMachine
from .models import (
    DEFAULT_COLOR, Annotation, AnnotationDocument, ImageRecord, Label
)
from .session_store import SessionStore
from .shortcuts import ShortcutAction
from .undo_redo import (
    AddLabelCommand, Command, DeleteAnnotationCommand, DeleteLabelCommand,
    DeleteLabelGroupCommand, RemoveImageCommand, ReplaceAnnotationCommand,
    ToggleLabelFlagCommand, UndoRedoManager
)
from .view_transform import ViewTransform

logger = logging.getLogger(__name__)


class AnnotationWorkspace(QObject):
    """
    Facade over the editing engine used by the canvas and main window.

    Every user-reversible change goes through the undo/redo manager.
    The only state changed outside it is view, mode, selection, the
    current image and the active label.
    """

    changed = pyqtSignal()  # Anything visible changed, redraw
    dirty = pyqtSignal()  # Something persisted changed, save the session
    selection_changed = pyqtSignal(object)  # Annotation id or None

    def __init__(
        self,
        document: Optional[AnnotationDocument] = None,
        session_store: Optional[SessionStore] = None,
        parent: Optional[QObject] = None
    ) -> None:
        super().__init__(parent)
        self.document = document or AnnotationDocument()
        self.session_store = session_store
        self.history = UndoRedoManager()
        self.view = ViewTransform()
        self.machine = EditStateMachine(self.history)
        self.mode = EditMode.BOX
        self.current_image_id: Optional[str] = None
        self._viewport_size = (0.0, 0.0)

        self.history.committed.connect(self._on_history_committed)

    # === Accessors ===

    @property
    def current_image(self) -> Optional[ImageRecord]:
        return self.document.find_image(self.current_image_id)

    @property
    def selected_id(self) -> Optional[str]:
        return self.machine.selected_id

    @property
    def selected_annotation(self) -> Optional[Annotation]:
        image = self.current_image
        return image.find_annotation(self.machine.selected_id) if image else None

    def context(self) -> Optional[EditContext]:
        image = self.current_image
        if image is None:
            return None
        return EditContext(self.document, image, self.view, self.mode)

    def _set_selection(self, annotation_id: Optional[str]) -> None:
        if self.machine.selected_id != annotation_id:
            self.machine.select(annotation_id)
            self.selection_changed.emit(annotation_id)

    def _on_history_committed(self) -> None:
        if self.current_image is None:
            self._select_first_image()
        image = self.current_image
        if self.machine.selected_id and (
            image is None or image.find_annotation(self.machine.selected_id) is None
        ):
            self._set_selection(None)
        self.dirty.emit()
        self.changed.emit()

    def _commit(self, command: Command) -> Command:
        self.machine.cancel(self.context())
        self.history.commit(command)
        return command

    # === Images ===

    def add_image(self, image: ImageRecord) -> ImageRecord:
        """
        Add a decoded image, attaching any saved annotations for it.

        Imports are not undoable; the first image becomes current.
        """
        if self.session_store is not None:
            self.session_store.apply_pending(image)
        self.document.images.append(image)
        logger.info(f"Added image {image.name} ({image.width}x{image.height})")

        if self.current_image is None:
            self.select_image(image.id)
        self.dirty.emit()
        self.changed.emit()
        return image

    def select_image(self, image_id: str) -> bool:
        image = self.document.find_image(image_id)
        if image is None:
            return False

        self.machine.cancel(self.context())
        self.current_image_id = image.id
        self._set_selection(None)
        self.fit_to_view()
        self.changed.emit()
        return True

    def _select_first_image(self) -> None:
        if self.document.images:
            self.select_image(self.document.images[0].id)
        else:
            self.current_image_id = None

    def remove_image(self, image_id: str) -> bool:
        image = self.document.find_image(image_id)
        if image is None:
            return False
        self._commit(RemoveImageCommand(self.document, image))
        return True

    # === View ===

    def set_viewport_size(self, width: float, height: float) -> None:
        self._viewport_size = (width, height)

    def fit_to_view(self) -> None:
        image = self.current_image
        width, height = self._viewport_size
        if image is None or width <= 0 or height <= 0:
            return
        self.view.fit_to_contain(image.width, image.height, width, height)
        self.changed.emit()

    def zoom_at(self, anchor: QPointF, factor: float) -> None:
        if self.current_image is None:
            return
        self.view.zoom_at(anchor.x(), anchor.y(), factor)
        self.changed.emit()

    # === Mode ===

    def set_mode(self, mode: EditMode) -> None:
        """Switch the drawing mode, discarding any unfinished shape."""
        self.machine.cancel(self.context())
        self.mode = EditMode(mode)
        self.dirty.emit()
        self.changed.emit()

    # === Labels ===

    def add_label(self, name: str, color: str = DEFAULT_COLOR) -> Optional[Label]:
        name = name.strip()
        if not name:
            return None
        label = Label(name=name, color=color or DEFAULT_COLOR)
        self._commit(AddLabelCommand(self.document, label))
        return label

    def delete_label(self, label_id: str) -> bool:
        label = self.document.find_label(label_id)
        if label is None:
            return False
        self._commit(DeleteLabelCommand(self.document, label))
        return True

    def set_active_label(self, label_id: Optional[str]) -> None:
        if label_id is not None and self.document.find_label(label_id) is None:
            return
        self.document.active_label_id = label_id
        self.dirty.emit()
        self.changed.emit()

    def clear_active_label(self) -> bool:
        if not self.document.active_label_id:
            return False
        self.set_active_label(None)
        return True

    def toggle_label_hidden(self, label_id: str) -> bool:
        if not label_id:
            return False
        self._commit(ToggleLabelFlagCommand(self.document, label_id, "hidden"))
        return True

    def toggle_label_locked(self, label_id: str) -> bool:
        if not label_id:
            return False
        self._commit(ToggleLabelFlagCommand(self.document, label_id, "locked"))
        return True

    def delete_label_group(self, label_id: str) -> bool:
        """Delete all annotations of the current image carrying a label."""
        image = self.current_image
        if image is None or not label_id or self.document.is_label_locked(label_id):
            return False
        command = DeleteLabelGroupCommand(image, label_id)
        if command.removed_count == 0:
            return False
        self._commit(command)
        return True

    # === Annotations ===

    def select_annotation(self, annotation_id: Optional[str]) -> None:
        image = self.current_image
        if annotation_id is not None and (image is None or image.find_annotation(annotation_id) is None):
            return
        self.machine.cancel(self.context())
        self._set_selection(annotation_id)
        self.changed.emit()

    def _replace_flag(self, annotation_id: str, flag: str, description: str) -> bool:
        image = self.current_image
        ann = image.find_annotation(annotation_id) if image else None
        if ann is None:
            return False
        after = ann.snapshot()
        setattr(after, flag, not getattr(ann, flag))
        self._commit(ReplaceAnnotationCommand(image, ann, after, description))
        return True

    def toggle_annotation_hidden(self, annotation_id: str) -> bool:
        return self._replace_flag(annotation_id, "hidden", "Toggle Visibility")

    def toggle_annotation_locked(self, annotation_id: str) -> bool:
        """Flip an annotation's own lock; refused while its label is locked."""
        image = self.current_image
        ann = image.find_annotation(annotation_id) if image else None
        if ann is None or self.document.is_label_locked(ann.label_id):
            return False
        return self._replace_flag(annotation_id, "locked", "Toggle Lock")

    def delete_annotation(self, annotation_id: str) -> bool:
        image = self.current_image
        ann = image.find_annotation(annotation_id) if image else None
        if ann is None or self.document.effective_locked(ann):
            return False
        self._commit(DeleteAnnotationCommand(image, ann))
        return True

    def delete_selected(self) -> bool:
        if self.machine.selected_id is None:
            return False
        return self.delete_annotation(self.machine.selected_id)

    # === Pointer input ===

    def pointer_down(self, canvas_point: QPointF) -> None:
        ctx = self.context()
        if ctx is None:
            return
        before = self.machine.selected_id
        self.machine.pointer_down(ctx, canvas_point)
        if self.machine.selected_id != before:
            self.selection_changed.emit(self.machine.selected_id)
        self.changed.emit()

    def pointer_move(self, canvas_point: QPointF) -> None:
        ctx = self.context()
        if ctx is None:
            return
        self.machine.pointer_move(ctx, canvas_point)
        if not self.machine.is_idle:
            self.changed.emit()

    def pointer_up(self, canvas_point: Optional[QPointF] = None) -> Optional[Command]:
        ctx = self.context()
        if ctx is None:
            return None
        before = self.machine.selected_id
        command = self.machine.pointer_up(ctx, canvas_point)
        if self.machine.selected_id != before:
            self.selection_changed.emit(self.machine.selected_id)
        self.changed.emit()
        return command

    def finish_polygon(self) -> Optional[Command]:
        ctx = self.context()
        if ctx is None:
            return None
        command = self.machine.finish_polygon(ctx)
        if command is not None:
            self.selection_changed.emit(self.machine.selected_id)
        self.changed.emit()
        return command

    def cancel(self) -> None:
        self.machine.cancel(self.context())
        self.changed.emit()

    # === History ===

    def undo(self) -> bool:
        self.machine.cancel(self.context())
        return self.history.undo()

    def redo(self) -> bool:
        self.machine.cancel(self.context())
        return self.history.redo()

    # === Keyboard ===

    def handle_shortcut(self, action: ShortcutAction) -> bool:
        """
        Run a keyboard action.

        Returns:
            True if the action had an effect
        """
        if action == ShortcutAction.CLEAR_ACTIVE_LABEL:
            # Escape while drawing or dragging abandons the session first
            if not self.machine.is_idle:
                self.cancel()
                return True
            return self.clear_active_label()
        if action == ShortcutAction.UNDO:
            return self.undo()
        if action == ShortcutAction.REDO:
            return self.redo()
        if action == ShortcutAction.DELETE_SELECTED:
            return self.delete_selected()
        if action == ShortcutAction.FINISH_POLYGON:
            return self.finish_polygon() is not None
        return False

    # === Reset ===

    def reset(self) -> None:
        """Forget all images, labels, annotations and history."""
        self.machine.cancel(self.context())
        self._set_selection(None)
        self.document.images.clear()
        self.document.labels.clear()
        self.document.label_hidden.clear()
        self.document.label_locked.clear()
        self.document.active_label_id = None
        self.current_image_id = None
        self.view = ViewTransform()
        self.history.clear()
        if self.session_store is not None:
            self.session_store.clear()
        logger.info("Workspace reset")
        self.changed.emit()
