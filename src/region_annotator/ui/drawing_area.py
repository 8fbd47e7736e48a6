"""Drawing area canvas widget for region annotation."""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from PyQt6.QtCore import Qt, QPointF, QRectF
from PyQt6.QtGui import (
    QPainter, QColor, QPen, QFont, QFontMetrics, QPolygonF, QMouseEvent,
    QKeyEvent, QWheelEvent, QKeySequence, QResizeEvent
)
from PyQt6.QtWidgets import QWidget

from ..core.edit_state import EditState
from ..core.models import (
    CLOSE_THRESHOLD_PX, DEFAULT_COLOR, HANDLE_SIZE_PX, ZOOM_STEP,
    Annotation, BoxGeometry, PolygonGeometry
)
from ..core.hit_testing import box_handle_points
from ..core.shortcuts import ShortcutMap
from ..core.workspace import AnnotationWorkspace

logger = logging.getLogger(__name__)


class DrawingArea(QWidget):
    """
    Canvas widget showing the current image and its regions.

    Owns no editing state: pointer and key input are forwarded to the
    workspace, and painting reads the workspace's view transform and
    the state machine's drafts.
    """

    # Draft polygon vertex radii in canvas pixels
    POLY_START_RADIUS = 7
    POLY_POINT_RADIUS = 4
    VERTEX_RADIUS = 5

    BACKGROUND = QColor("#0b1220")
    HANDLE_FILL = QColor("#ffffff")
    HANDLE_STROKE = QColor("#111827")
    DRAFT_POINT_FILL = QColor(251, 146, 60, 46)
    DRAFT_POINT_STROKE = QColor(251, 146, 60, 242)
    CLOSE_RING = QColor(34, 197, 94, 217)

    def __init__(
        self,
        workspace: AnnotationWorkspace,
        shortcuts: ShortcutMap,
        parent: Optional[QWidget] = None
    ) -> None:
        """Initialize the drawing area."""
        super().__init__(parent)
        self.workspace = workspace
        self.shortcuts = shortcuts

        # Visual settings
        self.line_thickness = 2
        self.font_size = 10

        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setMinimumSize(320, 240)

        self.workspace.changed.connect(self.update)

    def apply_settings(self, line_thickness: int, font_size: int) -> None:
        self.line_thickness = line_thickness
        self.font_size = font_size
        self.update()

    # === Events ===

    def resizeEvent(self, event: QResizeEvent) -> None:
        """Keep the viewport size in sync and refit the image."""
        super().resizeEvent(event)
        self.workspace.set_viewport_size(self.width(), self.height())
        self.workspace.fit_to_view()

    def wheelEvent(self, event: QWheelEvent) -> None:
        """Handle mouse wheel for zooming around the cursor."""
        delta = event.angleDelta().y()
        if delta == 0:
            super().wheelEvent(event)
            return

        factor = ZOOM_STEP if delta > 0 else 1 / ZOOM_STEP
        self.workspace.zoom_at(event.position(), factor)
        event.accept()

    def mousePressEvent(self, event: QMouseEvent) -> None:
        """Handle mouse press events."""
        self.setFocus()
        if event.button() != Qt.MouseButton.LeftButton:
            super().mousePressEvent(event)
            return
        self.workspace.pointer_down(event.position())

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        """Handle mouse move events."""
        self.workspace.pointer_move(event.position())

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        """Finish a drag or box draw; a release off the canvas cancels it."""
        if event.button() != Qt.MouseButton.LeftButton:
            super().mouseReleaseEvent(event)
            return

        pos = event.position()
        if not QRectF(self.rect()).contains(pos):
            logger.debug("Pointer released outside canvas, cancelling")
            self.workspace.cancel()
            return
        self.workspace.pointer_up(pos)

    def mouseDoubleClickEvent(self, event: QMouseEvent) -> None:
        """Handle double-click to finish a polygon."""
        if self.workspace.machine.state == EditState.DRAWING_POLYGON:
            self.workspace.finish_polygon()
            event.accept()
            return
        super().mouseDoubleClickEvent(event)

    def keyPressEvent(self, event: QKeyEvent) -> None:
        """Resolve the key chord against the configured shortcuts."""
        key = event.key()
        if key in (Qt.Key.Key_Control, Qt.Key.Key_Shift, Qt.Key.Key_Alt, Qt.Key.Key_Meta):
            super().keyPressEvent(event)
            return

        modifiers = event.modifiers()
        action = self.shortcuts.resolve_key(
            QKeySequence(int(key)).toString(),
            ctrl=bool(modifiers & (
                Qt.KeyboardModifier.ControlModifier | Qt.KeyboardModifier.MetaModifier
            )),
            shift=bool(modifiers & Qt.KeyboardModifier.ShiftModifier),
            alt=bool(modifiers & Qt.KeyboardModifier.AltModifier),
        )
        if action is None:
            super().keyPressEvent(event)
            return

        self.workspace.handle_shortcut(action)
        event.accept()

    # === Painting ===

    def paintEvent(self, event) -> None:
        """Draw the image, visible regions and any draft shape."""
        painter = QPainter(self)
        try:
            painter.setRenderHint(QPainter.RenderHint.Antialiasing)
            painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
            painter.fillRect(self.rect(), self.BACKGROUND)

            image = self.workspace.current_image
            if image is None:
                return

            view = self.workspace.view
            if image.image is not None and not image.image.isNull():
                painter.drawImage(view.image_rect(image.width, image.height), image.image)

            document = self.workspace.document
            selected_id = self.workspace.selected_id
            for ann in image.annotations:
                if document.effective_hidden(ann):
                    continue
                self._draw_annotation(painter, ann, ann.id == selected_id)

            self._draw_drafts(painter)
        finally:
            painter.end()

    def _draw_annotation(self, painter: QPainter, ann: Annotation, selected: bool) -> None:
        """Draw a single region with its label and, when selected, its handles."""
        view = self.workspace.view
        document = self.workspace.document
        color = QColor(ann.color or DEFAULT_COLOR)
        fill = QColor(color)
        fill.setAlphaF(0.10)

        painter.setPen(QPen(color, self.line_thickness))
        painter.setBrush(fill)

        geometry = ann.geometry
        anchor: Optional[QPointF] = None
        vertices: List[QPointF] = []

        if isinstance(geometry, BoxGeometry):
            top_left = view.image_to_canvas(geometry.x, geometry.y)
            painter.drawRect(QRectF(
                top_left.x(),
                top_left.y(),
                view.image_to_canvas_length(geometry.w),
                view.image_to_canvas_length(geometry.h),
            ))
            anchor = top_left
        elif isinstance(geometry, PolygonGeometry) and len(geometry) >= 2:
            vertices = [view.image_to_canvas(p.x(), p.y()) for p in geometry.points]
            painter.drawPolygon(QPolygonF(vertices))
            anchor = vertices[0]

        label = document.label_of(ann).label
        if label is not None and anchor is not None:
            self._draw_label(painter, label.name, anchor, color)

        if not selected or document.effective_locked(ann):
            return

        painter.setPen(QPen(self.HANDLE_STROKE, 1))
        painter.setBrush(self.HANDLE_FILL)
        if isinstance(geometry, BoxGeometry):
            half = HANDLE_SIZE_PX / 2
            for _, point in box_handle_points(geometry, view):
                painter.drawRect(QRectF(point.x() - half, point.y() - half, HANDLE_SIZE_PX, HANDLE_SIZE_PX))
        else:
            for point in vertices:
                painter.drawEllipse(point, self.VERTEX_RADIUS, self.VERTEX_RADIUS)

    def _draw_label(self, painter: QPainter, text: str, point: QPointF, color: QColor) -> None:
        """Draw a label with background above the given position."""
        font = QFont("Arial")
        font.setPointSizeF(self.font_size)
        font_metrics = QFontMetrics(font)
        padding = 3

        rect_width = font_metrics.horizontalAdvance(text) + 2 * padding
        rect_height = font_metrics.height() + 2 * padding
        background_rect = QRectF(point.x(), point.y() - rect_height, rect_width, rect_height)

        background_color = QColor(color)
        background_color.setAlpha(180)

        brightness = (
            background_color.red() * 299 +
            background_color.green() * 587 +
            background_color.blue() * 114
        ) / 1000
        text_color = Qt.GlobalColor.black if brightness > 128 else Qt.GlobalColor.white

        painter.save()
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(background_color)
        painter.drawRect(background_rect)
        painter.setFont(font)
        painter.setPen(text_color)
        painter.drawText(background_rect, Qt.AlignmentFlag.AlignCenter, text)
        painter.restore()

    def _draw_drafts(self, painter: QPainter) -> None:
        """Draw the box or polygon currently being drawn."""
        machine = self.workspace.machine
        view = self.workspace.view
        stroke = QColor(self.workspace.document.active_color)

        if machine.state == EditState.DRAWING_BOX and machine.box_draft is not None:
            draft = machine.box_draft
            top_left = view.image_to_canvas(draft.x, draft.y)
            pen = QPen(stroke, 2)
            pen.setDashPattern([3, 2])
            painter.setPen(pen)
            painter.setBrush(Qt.BrushStyle.NoBrush)
            painter.drawRect(QRectF(
                top_left.x(),
                top_left.y(),
                view.image_to_canvas_length(draft.w),
                view.image_to_canvas_length(draft.h),
            ))
            return

        if machine.state != EditState.DRAWING_POLYGON or not machine.polygon_points:
            return

        points = [view.image_to_canvas(p.x(), p.y()) for p in machine.polygon_points]
        hover = None
        if machine.polygon_hover is not None:
            hover = view.image_to_canvas(machine.polygon_hover.x(), machine.polygon_hover.y())

        painter.setPen(QPen(stroke, 2))
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawPolyline(QPolygonF(points + ([hover] if hover is not None else [])))

        painter.setPen(QPen(self.DRAFT_POINT_STROKE, 2))
        painter.setBrush(self.DRAFT_POINT_FILL)
        for i, point in enumerate(points):
            radius = self.POLY_START_RADIUS if i == 0 else self.POLY_POINT_RADIUS
            painter.drawEllipse(point, radius, radius)

        # Ring around the first vertex when a click would close the polygon
        if len(points) >= 3 and hover is not None:
            first = points[0]
            if math.hypot(hover.x() - first.x(), hover.y() - first.y()) <= CLOSE_THRESHOLD_PX:
                pen = QPen(self.CLOSE_RING, 2)
                pen.setDashPattern([2, 2])
                painter.setPen(pen)
                painter.setBrush(Qt.BrushStyle.NoBrush)
                painter.drawEllipse(first, CLOSE_THRESHOLD_PX, CLOSE_THRESHOLD_PX)
