"""Main application window for Region Annotator."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from PyQt6.QtCore import Qt, QPointF, QSize, QTimer
from PyQt6.QtGui import QAction, QActionGroup, QColor, QFont, QIcon, QImageReader, QPainter, QPixmap
from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QStatusBar, QLabel,
    QDockWidget, QToolBar, QListWidget, QListWidgetItem, QPushButton,
    QMessageBox, QInputDialog, QFileDialog, QColorDialog, QAbstractItemView
)

from ..core.config import AppConfig, ConfigManager
from ..core.edit_state import EditMode
from ..core.models import ZOOM_STEP, Annotation, ShapeType
from ..core.session_store import AutosaveScheduler, SessionStore
from ..core.shortcuts import ShortcutMap
from ..core.workspace import AnnotationWorkspace
from ..core.yolo_export import DatasetExporter, ExportError
from ..workers.image_loader import IMAGE_EXTENSIONS, ImageLoader, get_image_files
from .drawing_area import DrawingArea

logger = logging.getLogger(__name__)


def increase_image_allocation_limit() -> None:
    """Remove image allocation limit for large images."""
    QImageReader.setAllocationLimit(0)


def _color_icon(color: str, size: int = 14) -> QIcon:
    pixmap = QPixmap(size, size)
    pixmap.fill(QColor(color))
    return QIcon(pixmap)


def _annotation_title(index: int, ann: Annotation, label_name: Optional[str]) -> str:
    kind = "Box" if ann.type == ShapeType.BOX else "Polygon"
    flags = "".join([" [hidden]" if ann.hidden else "", " [locked]" if ann.locked else ""])
    return f"{index + 1}. {kind}: {label_name or '(no label)'}{flags}"


class MainWindow(QMainWindow):
    """
    Main application window for Region Annotator.

    Provides the UI around the annotation workspace:
    - Image import and navigation
    - Box and polygon drawing modes
    - Label management with hide/lock toggles
    - Region list and history view
    - YOLO dataset export
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None) -> None:
        """Initialize the main window."""
        super().__init__()

        # Remove image allocation limit
        increase_image_allocation_limit()

        # Initialize managers
        self.config_manager = config_manager or ConfigManager()
        self.session_store = SessionStore(Path(self.config.session_path))
        self.workspace = AnnotationWorkspace(session_store=self.session_store, parent=self)
        self.shortcuts = ShortcutMap.from_config(self.config)
        self.autosave = AutosaveScheduler(
            self.session_store,
            lambda: self.workspace.document,
            delay_ms=self.config.autosave_delay_ms,
            parent=self,
        )

        # State
        self.image_loader: Optional[ImageLoader] = None
        self._syncing = False  # Set while lists are rebuilt from the workspace
        self._refresh_pending = False

        # UI elements (initialized in _init_ui)
        self.dock_widgets: Dict[str, QDockWidget] = {}
        self.mode_actions: Dict[EditMode, QAction] = {}
        self.drawing_area: Optional[DrawingArea] = None
        self.image_list: Optional[QListWidget] = None
        self.label_list: Optional[QListWidget] = None
        self.region_list: Optional[QListWidget] = None
        self.history_list: Optional[QListWidget] = None

        # Status bar elements
        self.status_bar: Optional[QStatusBar] = None
        self.file_label: Optional[QLabel] = None
        self.count_label: Optional[QLabel] = None

        self._init_ui()
        self._setup_connections()
        self._restore_session()

        logger.info("MainWindow initialization complete")

    @property
    def config(self) -> AppConfig:
        """Get the current configuration."""
        return self.config_manager.config

    def _init_ui(self) -> None:
        """Initialize the user interface."""
        self.setWindowTitle("Region Annotator")
        self.setGeometry(100, 100, 1280, 820)

        self.drawing_area = DrawingArea(self.workspace, self.shortcuts)
        self.drawing_area.apply_settings(self.config.line_thickness, self.config.font_size)
        self.setCentralWidget(self.drawing_area)

        self._create_status_bar()
        self._create_dock_widgets()
        self._create_toolbar()

    def _create_status_bar(self) -> None:
        """Create the status bar."""
        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)

        self.file_label = QLabel()
        self.status_bar.addPermanentWidget(self.file_label)

        self.count_label = QLabel()
        self.status_bar.addPermanentWidget(self.count_label)

    def _add_dock(self, title: str, widget: QWidget, area: Qt.DockWidgetArea) -> None:
        dock = QDockWidget(title, self)
        dock.setObjectName(f"{title.replace(' ', '')}Dock")
        dock.setAllowedAreas(Qt.DockWidgetArea.LeftDockWidgetArea | Qt.DockWidgetArea.RightDockWidgetArea)
        dock.setWidget(widget)
        self.addDockWidget(area, dock)
        self.dock_widgets[title] = dock

    def _create_dock_widgets(self) -> None:
        """Create all dock widgets."""
        self._add_dock("Images", self._create_images_widget(), Qt.DockWidgetArea.LeftDockWidgetArea)
        self._add_dock("Labels", self._create_labels_widget(), Qt.DockWidgetArea.RightDockWidgetArea)
        self._add_dock("Regions", self._create_regions_widget(), Qt.DockWidgetArea.RightDockWidgetArea)
        self._add_dock("History", self._create_history_widget(), Qt.DockWidgetArea.RightDockWidgetArea)

    def _create_images_widget(self) -> QWidget:
        widget = QWidget()
        layout = QVBoxLayout(widget)

        self.image_list = QListWidget()
        self.image_list.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.image_list.currentItemChanged.connect(self._on_image_item_changed)
        layout.addWidget(self.image_list)

        remove_button = QPushButton("Remove image")
        remove_button.clicked.connect(self._remove_current_image)
        layout.addWidget(remove_button)

        return widget

    def _create_labels_widget(self) -> QWidget:
        """Create the labels widget."""
        widget = QWidget()
        layout = QVBoxLayout(widget)

        self.label_list = QListWidget()
        self.label_list.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.label_list.currentItemChanged.connect(self._on_label_item_changed)
        layout.addWidget(self.label_list)

        row = QHBoxLayout()
        for text, slot in (
            ("Add", self._add_label),
            ("Delete", self._delete_label),
            ("Hide", self._toggle_label_hidden),
            ("Lock", self._toggle_label_locked),
        ):
            button = QPushButton(text)
            button.clicked.connect(slot)
            row.addWidget(button)
        layout.addLayout(row)

        clear_group_button = QPushButton("Delete label's regions on this image")
        clear_group_button.clicked.connect(self._delete_label_group)
        layout.addWidget(clear_group_button)

        return widget

    def _create_regions_widget(self) -> QWidget:
        """Create the regions list widget."""
        widget = QWidget()
        layout = QVBoxLayout(widget)

        self.region_list = QListWidget()
        self.region_list.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.region_list.currentItemChanged.connect(self._on_region_item_changed)
        layout.addWidget(self.region_list)

        row = QHBoxLayout()
        for text, slot in (
            ("Hide", self._toggle_region_hidden),
            ("Lock", self._toggle_region_locked),
            ("Delete", self._delete_region),
        ):
            button = QPushButton(text)
            button.clicked.connect(slot)
            row.addWidget(button)
        layout.addLayout(row)

        return widget

    def _create_history_widget(self) -> QWidget:
        self.history_list = QListWidget()
        self.history_list.setSelectionMode(QAbstractItemView.SelectionMode.NoSelection)
        return self.history_list

    def _create_toolbar(self) -> None:
        """Create the main toolbar."""
        self.toolbar = QToolBar()
        self.toolbar.setObjectName("MainToolBar")
        self.toolbar.setIconSize(QSize(28, 28))
        self.addToolBar(self.toolbar)

        open_action = QAction(self._create_icon("folder"), "Import Images", self)
        open_action.triggered.connect(self._import_images)
        self.toolbar.addAction(open_action)

        self.toolbar.addSeparator()

        # Undo/Redo; key handling lives in the canvas
        self.undo_action = QAction(self._create_icon("undo"), "Undo", self)
        self.undo_action.triggered.connect(self.workspace.undo)
        self.undo_action.setEnabled(False)
        self.toolbar.addAction(self.undo_action)

        self.redo_action = QAction(self._create_icon("redo"), "Redo", self)
        self.redo_action.triggered.connect(self.workspace.redo)
        self.redo_action.setEnabled(False)
        self.toolbar.addAction(self.redo_action)

        self.toolbar.addSeparator()

        # Drawing modes
        modes = QActionGroup(self)
        for mode, icon, text in (
            (EditMode.BOX, "box", "Draw Box"),
            (EditMode.POLYGON, "polygon", "Draw Polygon"),
        ):
            action = QAction(self._create_icon(icon), text, self)
            action.setCheckable(True)
            action.triggered.connect(lambda _checked, m=mode: self.workspace.set_mode(m))
            modes.addAction(action)
            self.toolbar.addAction(action)
            self.mode_actions[mode] = action
        self.mode_actions[self.workspace.mode].setChecked(True)

        self.toolbar.addSeparator()

        fit_action = QAction(self._create_icon("fit"), "Fit to View", self)
        fit_action.triggered.connect(self.workspace.fit_to_view)
        self.toolbar.addAction(fit_action)

        zoom_in_action = QAction(self._create_icon("zoom_in"), "Zoom In", self)
        zoom_in_action.triggered.connect(lambda: self._zoom_step(True))
        self.toolbar.addAction(zoom_in_action)

        zoom_out_action = QAction(self._create_icon("zoom_out"), "Zoom Out", self)
        zoom_out_action.triggered.connect(lambda: self._zoom_step(False))
        self.toolbar.addAction(zoom_out_action)

        self.toolbar.addSeparator()

        export_box_action = QAction(self._create_icon("export"), "Export Boxes (YOLO Detect)", self)
        export_box_action.triggered.connect(lambda: self._export_dataset(ShapeType.BOX))
        self.toolbar.addAction(export_box_action)

        export_polygon_action = QAction(self._create_icon("export"), "Export Polygons (YOLO Seg)", self)
        export_polygon_action.triggered.connect(lambda: self._export_dataset(ShapeType.POLYGON))
        self.toolbar.addAction(export_polygon_action)

        self.toolbar.addSeparator()

        reset_action = QAction(self._create_icon("reset"), "Reset Everything", self)
        reset_action.triggered.connect(self._reset_everything)
        self.toolbar.addAction(reset_action)

    @staticmethod
    def _create_icon(name: str, size: int = 28) -> QIcon:
        """Create an icon from a Unicode symbol.

        Args:
            name: Icon identifier
            size: Icon size in pixels
        """
        icons = {
            "folder": "\U0001F4C2",
            "undo": "↩",
            "redo": "↪",
            "box": "▢",
            "polygon": "⬡",
            "fit": "⤢",
            "zoom_in": "+",
            "zoom_out": "−",
            "export": "\U0001F4E6",
            "reset": "⟲",
        }

        symbol = icons.get(name, name)

        pixmap = QPixmap(size, size)
        pixmap.fill(Qt.GlobalColor.transparent)

        painter = QPainter(pixmap)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        font = QFont()
        font.setPointSize(int(size * 0.6))
        painter.setFont(font)
        painter.drawText(pixmap.rect(), Qt.AlignmentFlag.AlignCenter, symbol)
        painter.end()

        return QIcon(pixmap)

    def _setup_connections(self) -> None:
        """Connect workspace signals to the UI."""
        self.workspace.dirty.connect(self._on_workspace_dirty)
        self.workspace.selection_changed.connect(self._sync_region_selection)
        self.workspace.history.state_changed.connect(self._update_undo_redo_state)
        self.autosave.saved.connect(self._on_autosaved)

    # === Session ===

    def _restore_session(self) -> None:
        """Load labels and pending annotations from the last session."""
        if self.session_store.restore(self.workspace.document):
            self._show_status_message(
                f"Restored {len(self.workspace.document.labels)} labels; "
                "import the same images to bring back their regions"
            )
        self._refresh_all()

        if self.config.default_directory and Path(self.config.default_directory).is_dir():
            self._load_images(get_image_files(Path(self.config.default_directory)))

    def _on_workspace_dirty(self) -> None:
        if self.config.autosave:
            self.autosave.schedule()
        self._schedule_refresh()

    def _on_autosaved(self, ok: bool) -> None:
        if not ok:
            self._show_status_message("Auto-save failed, see log")

    # === Images ===

    def _import_images(self) -> None:
        """Ask for image files and decode them in the background."""
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        file_names, _ = QFileDialog.getOpenFileNames(
            self,
            "Import Images",
            self.config.default_directory,
            f"Images ({patterns})",
        )
        if not file_names:
            return

        self.config_manager.update(default_directory=str(Path(file_names[0]).parent))
        self._load_images([Path(f) for f in file_names])

    def _load_images(self, paths: List[Path]) -> None:
        if not paths:
            return

        self._stop_image_loading()
        self.image_loader = ImageLoader(paths)
        self.image_loader.image_loaded.connect(self.workspace.add_image)
        self.image_loader.failed.connect(self._on_image_failed)
        self.image_loader.progress.connect(
            lambda current, total: self._show_status_message(f"Loading images {current}/{total}")
        )
        self.image_loader.finished_loading.connect(
            lambda count: self._show_status_message(f"Loaded {count} images")
        )
        self.image_loader.start()

    def _stop_image_loading(self) -> None:
        if self.image_loader and self.image_loader.isRunning():
            self.image_loader.stop()
            self.image_loader.wait()

    def _on_image_failed(self, path: str, reason: str) -> None:
        logger.warning(f"Could not import {path}: {reason}")
        self._show_status_message(f"Could not import {Path(path).name}: {reason}")

    def _on_image_item_changed(self, current: Optional[QListWidgetItem], _previous) -> None:
        if self._syncing or current is None:
            return
        self.workspace.select_image(current.data(Qt.ItemDataRole.UserRole))
        self._schedule_refresh()

    def _remove_current_image(self) -> None:
        image = self.workspace.current_image
        if image is not None:
            self.workspace.remove_image(image.id)

    # === Labels ===

    def _current_label_id(self) -> Optional[str]:
        item = self.label_list.currentItem()
        return item.data(Qt.ItemDataRole.UserRole) if item else None

    def _add_label(self) -> None:
        name, ok = QInputDialog.getText(self, "Add Label", "Label name:")
        if not ok or not name.strip():
            return
        color = QColorDialog.getColor(QColor(self.config.default_color), self, "Label Color")
        if not color.isValid():
            return
        self.workspace.add_label(name, color.name())

    def _delete_label(self) -> None:
        label_id = self._current_label_id()
        if label_id is None:
            return
        label = self.workspace.document.find_label(label_id)
        reply = QMessageBox.question(
            self,
            "Delete Label",
            f"Delete label '{label.name}'? Regions using it will keep their shape but lose the label.",
        )
        if reply == QMessageBox.StandardButton.Yes:
            self.workspace.delete_label(label_id)

    def _toggle_label_hidden(self) -> None:
        label_id = self._current_label_id()
        if label_id:
            self.workspace.toggle_label_hidden(label_id)

    def _toggle_label_locked(self) -> None:
        label_id = self._current_label_id()
        if label_id:
            self.workspace.toggle_label_locked(label_id)

    def _delete_label_group(self) -> None:
        label_id = self._current_label_id()
        if label_id and not self.workspace.delete_label_group(label_id):
            self._show_status_message("Nothing deleted: label is locked or has no regions here")

    def _on_label_item_changed(self, current: Optional[QListWidgetItem], _previous) -> None:
        if self._syncing:
            return
        self.workspace.set_active_label(current.data(Qt.ItemDataRole.UserRole) if current else None)

    # === Regions ===

    def _current_region_id(self) -> Optional[str]:
        item = self.region_list.currentItem()
        return item.data(Qt.ItemDataRole.UserRole) if item else None

    def _on_region_item_changed(self, current: Optional[QListWidgetItem], _previous) -> None:
        if self._syncing or current is None:
            return
        self.workspace.select_annotation(current.data(Qt.ItemDataRole.UserRole))

    def _toggle_region_hidden(self) -> None:
        region_id = self._current_region_id()
        if region_id:
            self.workspace.toggle_annotation_hidden(region_id)

    def _toggle_region_locked(self) -> None:
        region_id = self._current_region_id()
        if region_id and not self.workspace.toggle_annotation_locked(region_id):
            self._show_status_message("Region's label is locked")

    def _delete_region(self) -> None:
        region_id = self._current_region_id()
        if region_id and not self.workspace.delete_annotation(region_id):
            self._show_status_message("Region is locked")

    # === View ===

    def _zoom_step(self, zoom_in: bool) -> None:
        """Zoom around the canvas center."""
        center = QPointF(self.drawing_area.rect().center())
        self.workspace.zoom_at(center, ZOOM_STEP if zoom_in else 1 / ZOOM_STEP)

    # === List refresh ===

    def _schedule_refresh(self) -> None:
        # Lists may be the sender of the change, so rebuild them on the next loop turn
        if not self._refresh_pending:
            self._refresh_pending = True
            QTimer.singleShot(0, self._refresh_all)

    def _refresh_all(self) -> None:
        """Rebuild the side lists from the workspace."""
        self._refresh_pending = False
        self._syncing = True
        try:
            self._refresh_images()
            self._refresh_labels()
            self._refresh_regions()
            self._refresh_history()
        finally:
            self._syncing = False
        self._update_status()

    def _refresh_images(self) -> None:
        self.image_list.clear()
        current_id = self.workspace.current_image_id
        for image in self.workspace.document.images:
            item = QListWidgetItem(f"{image.name} ({len(image.annotations)})")
            item.setData(Qt.ItemDataRole.UserRole, image.id)
            self.image_list.addItem(item)
            if image.id == current_id:
                self.image_list.setCurrentItem(item)

    def _refresh_labels(self) -> None:
        document = self.workspace.document
        self.label_list.clear()
        for label in document.labels:
            flags = []
            if document.is_label_hidden(label.id):
                flags.append("hidden")
            if document.is_label_locked(label.id):
                flags.append("locked")
            text = label.name + (f" [{', '.join(flags)}]" if flags else "")
            item = QListWidgetItem(_color_icon(label.color), text)
            item.setData(Qt.ItemDataRole.UserRole, label.id)
            self.label_list.addItem(item)
            if label.id == document.active_label_id:
                self.label_list.setCurrentItem(item)

    def _refresh_regions(self) -> None:
        self.region_list.clear()
        image = self.workspace.current_image
        if image is None:
            return

        document = self.workspace.document
        for i, ann in enumerate(image.annotations):
            label = document.label_of(ann).label
            item = QListWidgetItem(
                _color_icon(ann.color),
                _annotation_title(i, ann, label.name if label else None),
            )
            item.setData(Qt.ItemDataRole.UserRole, ann.id)
            self.region_list.addItem(item)
            if ann.id == self.workspace.selected_id:
                self.region_list.setCurrentItem(item)

    def _refresh_history(self) -> None:
        self.history_list.clear()
        for description, is_undo_stack in self.workspace.history.get_history():
            item = QListWidgetItem(description)
            if not is_undo_stack:
                item.setForeground(QColor("#9ca3af"))
            self.history_list.addItem(item)

    def _sync_region_selection(self, annotation_id: Optional[str]) -> None:
        self._syncing = True
        try:
            self.region_list.clearSelection()
            for row in range(self.region_list.count()):
                item = self.region_list.item(row)
                if item.data(Qt.ItemDataRole.UserRole) == annotation_id:
                    self.region_list.setCurrentItem(item)
                    break
        finally:
            self._syncing = False

    def _update_status(self) -> None:
        image = self.workspace.current_image
        document = self.workspace.document
        if image is None:
            self.file_label.setText("No image")
        else:
            self.file_label.setText(f"{image.name}  {image.width}x{image.height}")
        boxes = sum(img.box_count for img in document.images)
        polygons = sum(img.polygon_count for img in document.images)
        self.count_label.setText(
            f"Images: {len(document.images)} | Boxes: {boxes} | Polygons: {polygons}"
        )

    def _update_undo_redo_state(self) -> None:
        """Update undo/redo action enabled states."""
        history = self.workspace.history
        self.undo_action.setEnabled(history.can_undo())
        self.redo_action.setEnabled(history.can_redo())

        # Update tooltips with descriptions
        if history.can_undo():
            self.undo_action.setToolTip(f"Undo: {history.undo_description()}")
        else:
            self.undo_action.setToolTip("Undo")

        if history.can_redo():
            self.redo_action.setToolTip(f"Redo: {history.redo_description()}")
        else:
            self.redo_action.setToolTip("Redo")

    # === Export / reset ===

    def _export_dataset(self, shape_type: ShapeType) -> None:
        """Export a YOLO dataset archive for one shape kind."""
        target_dir = QFileDialog.getExistingDirectory(
            self,
            "Export Dataset To",
            self.config.export_directory or self.config.default_directory,
        )
        if not target_dir:
            return

        try:
            archive = DatasetExporter(self.workspace.document).export(Path(target_dir), shape_type)
        except ExportError as e:
            logger.error(f"Export failed: {e}")
            QMessageBox.critical(self, "Export Error", str(e))
            return

        self.config_manager.update(export_directory=target_dir)
        QMessageBox.information(self, "Export Complete", f"Dataset written to:\n{archive}")

    def _reset_everything(self) -> None:
        reply = QMessageBox.question(
            self,
            "Reset Everything",
            "Remove all images, labels, regions and the saved session?",
        )
        if reply != QMessageBox.StandardButton.Yes:
            return

        self._stop_image_loading()
        self.workspace.reset()
        self._refresh_all()

    def _show_status_message(self, message: str) -> None:
        """Show a status bar message."""
        self.status_bar.showMessage(message, 5000)

    # === Event Handlers ===

    def closeEvent(self, event) -> None:
        """Handle window close."""
        self._stop_image_loading()

        if self.config.autosave and self.autosave.pending:
            self.autosave.flush()

        super().closeEvent(event)
