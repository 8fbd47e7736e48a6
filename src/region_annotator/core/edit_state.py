"""Pointer-driven drawing and editing state machine."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from PyQt6.QtCore import QPointF

from .hit_testing import HitKind, HitTester
from .models import (
    CLOSE_THRESHOLD_PX, MIN_BBOX_SIZE_IMG,
    Annotation, AnnotationDocument, BoxGeometry, ImageRecord, PolygonGeometry, clamp
)
from .undo_redo import AddAnnotationCommand, Command, ReplaceAnnotationCommand, UndoRedoManager
from .view_transform import ViewTransform

logger = logging.getLogger(__name__)


class EditMode(str, Enum):
    """Kind of shape created by clicking on empty canvas."""

    BOX = "box"
    POLYGON = "polygon"


class EditState(str, Enum):
    """Current session of the state machine."""

    IDLE = "idle"
    DRAWING_BOX = "drawingBox"
    DRAWING_POLYGON = "drawingPolygon"
    DRAGGING = "dragging"


DRAG_DESCRIPTIONS = {
    HitKind.BOX_MOVE: "Move Box",
    HitKind.BOX_RESIZE: "Resize Box",
    HitKind.POLYGON_VERTEX: "Move Point",
    HitKind.POLYGON_MOVE: "Move Polygon",
}


@dataclass
class EditContext:
    """Everything a transition reads besides the machine's own session."""

    document: AnnotationDocument
    image: ImageRecord
    view: ViewTransform
    mode: EditMode = EditMode.BOX


@dataclass
class DragSession:
    """A drag in progress, from pointer-down to pointer-up."""

    kind: HitKind
    annotation_id: str
    anchor: QPointF
    before: Annotation
    handle: Optional[str] = None
    vertex_index: Optional[int] = None
    # Bounds of the polygon at drag start, (min_x, min_y, max_x, max_y)
    base_bounds: Optional[Tuple[float, float, float, float]] = None


# === Geometry operations ===

def clamp_point_to_image(point: QPointF, img_width: float, img_height: float) -> QPointF:
    return QPointF(clamp(point.x(), 0, img_width), clamp(point.y(), 0, img_height))


def normalize_box(box: BoxGeometry, img_width: float, img_height: float) -> BoxGeometry:
    """Clip a box's origin into the image, then its size to what remains."""
    x = clamp(box.x, 0, img_width)
    y = clamp(box.y, 0, img_height)
    return BoxGeometry(
        x=x,
        y=y,
        w=clamp(box.w, 0, img_width - x),
        h=clamp(box.h, 0, img_height - y),
    )


def apply_box_move(
    base: BoxGeometry,
    anchor: QPointF,
    current: QPointF,
    img_width: float,
    img_height: float
) -> BoxGeometry:
    """Translate a box by the pointer delta, keeping its size and clamping its position."""
    dx = current.x() - anchor.x()
    dy = current.y() - anchor.y()
    return BoxGeometry(
        x=clamp(base.x + dx, 0, img_width - base.w),
        y=clamp(base.y + dy, 0, img_height - base.h),
        w=base.w,
        h=base.h,
    )


def apply_box_resize(
    base: BoxGeometry,
    handle: str,
    current: QPointF,
    img_width: float,
    img_height: float
) -> BoxGeometry:
    """
    Move the edges named by a handle to the pointer.

    The result is normalized so a handle dragged past the opposite edge
    flips the box. When an axis falls below MIN_BBOX_SIZE_IMG the edge
    driven by the handle is pushed back from the other one.

    Args:
        base: Box at drag start
        handle: One of n, s, e, w, ne, nw, se, sw
        current: Pointer position in image coordinates
        img_width: Image width in pixels
        img_height: Image height in pixels

    Returns:
        Resized box inside the image
    """
    x1, y1, x2, y2 = base.x, base.y, base.x2, base.y2

    if "n" in handle:
        y1 = current.y()
    if "s" in handle:
        y2 = current.y()
    if "w" in handle:
        x1 = current.x()
    if "e" in handle:
        x2 = current.x()

    rx1, rx2 = min(x1, x2), max(x1, x2)
    ry1, ry2 = min(y1, y2), max(y1, y2)

    if rx2 - rx1 < MIN_BBOX_SIZE_IMG:
        if "w" in handle:
            rx1 = rx2 - MIN_BBOX_SIZE_IMG
        else:
            rx2 = rx1 + MIN_BBOX_SIZE_IMG
    if ry2 - ry1 < MIN_BBOX_SIZE_IMG:
        if "n" in handle:
            ry1 = ry2 - MIN_BBOX_SIZE_IMG
        else:
            ry2 = ry1 + MIN_BBOX_SIZE_IMG

    rx1 = clamp(rx1, 0, img_width)
    rx2 = clamp(rx2, 0, img_width)
    ry1 = clamp(ry1, 0, img_height)
    ry2 = clamp(ry2, 0, img_height)

    return BoxGeometry(
        x=rx1,
        y=ry1,
        w=clamp(rx2 - rx1, MIN_BBOX_SIZE_IMG, img_width - rx1),
        h=clamp(ry2 - ry1, MIN_BBOX_SIZE_IMG, img_height - ry1),
    )


def apply_polygon_vertex(
    base: PolygonGeometry,
    index: int,
    current: QPointF,
    img_width: float,
    img_height: float
) -> PolygonGeometry:
    if not 0 <= index < len(base):
        return base
    return base.with_point(index, clamp_point_to_image(current, img_width, img_height))


def apply_polygon_move(
    base: PolygonGeometry,
    base_bounds: Tuple[float, float, float, float],
    anchor: QPointF,
    current: QPointF,
    img_width: float,
    img_height: float
) -> PolygonGeometry:
    """
    Translate every vertex by the pointer delta.

    The delta is clamped against the bounds of the point set taken at
    drag start, so a polygon already outside the image before the drag
    is clamped asymmetrically.
    """
    min_x, min_y, max_x, max_y = base_bounds
    dx = clamp(current.x() - anchor.x(), -min_x, img_width - max_x)
    dy = clamp(current.y() - anchor.y(), -min_y, img_height - max_y)
    return base.translated(dx, dy)


class EditStateMachine:
    """
    Turns pointer-down/move/up sequences into geometry edits.

    Holds a single session slot: while a box is being drawn or a shape
    dragged, further pointer-downs are ignored. A drag mutates the live
    annotation for immediate feedback and is reconciled into one
    committed command on pointer-up. Sessions that never reach a commit
    are discarded without touching history.
    """

    def __init__(self, history: UndoRedoManager) -> None:
        self.history = history
        self.state = EditState.IDLE
        self.selected_id: Optional[str] = None

        self.drag: Optional[DragSession] = None
        self.box_anchor: Optional[QPointF] = None
        self.box_draft: Optional[BoxGeometry] = None
        self.polygon_points: List[QPointF] = []
        self.polygon_hover: Optional[QPointF] = None

    @property
    def is_idle(self) -> bool:
        return self.state == EditState.IDLE

    def _reset_session(self) -> None:
        self.state = EditState.IDLE
        self.drag = None
        self.box_anchor = None
        self.box_draft = None
        self.polygon_points = []
        self.polygon_hover = None

    def _image_point(self, ctx: EditContext, canvas_point: QPointF) -> QPointF:
        point = ctx.view.canvas_to_image(canvas_point.x(), canvas_point.y())
        return clamp_point_to_image(point, ctx.image.width, ctx.image.height)

    # === Transitions ===

    def pointer_down(self, ctx: EditContext, canvas_point: QPointF) -> None:
        """Handle a primary-button press at a canvas position."""
        if self.state in (EditState.DRAGGING, EditState.DRAWING_BOX):
            return

        image_point = self._image_point(ctx, canvas_point)

        if self.state == EditState.DRAWING_POLYGON:
            self._polygon_click(ctx, image_point, canvas_point)
            return

        hit = HitTester(ctx.document).hit_test(ctx.image, ctx.view, canvas_point, self.selected_id)
        if hit is not None:
            ann = ctx.image.find_annotation(hit.annotation_id)
            self.selected_id = ann.id
            if ctx.document.effective_locked(ann):
                logger.debug(f"Annotation {ann.id} is locked, not starting a drag")
                return

            base_bounds = None
            if hit.kind == HitKind.POLYGON_MOVE:
                base_bounds = ann.geometry.bounds()

            self.drag = DragSession(
                kind=hit.kind,
                annotation_id=ann.id,
                anchor=image_point,
                before=ann.snapshot(),
                handle=hit.handle,
                vertex_index=hit.vertex_index,
                base_bounds=base_bounds,
            )
            self.state = EditState.DRAGGING
            return

        self.selected_id = None

        if ctx.mode == EditMode.BOX:
            self.state = EditState.DRAWING_BOX
            self.box_anchor = image_point
            self.box_draft = BoxGeometry(image_point.x(), image_point.y(), 0.0, 0.0)
        else:
            self.state = EditState.DRAWING_POLYGON
            self.polygon_points = [image_point]

    def pointer_move(self, ctx: EditContext, canvas_point: QPointF) -> None:
        """Handle pointer motion, with or without a button held."""
        image_point = self._image_point(ctx, canvas_point)

        if self.state == EditState.DRAGGING:
            ann = ctx.image.find_annotation(self.drag.annotation_id)
            if ann is None or ctx.document.effective_hidden(ann) or ctx.document.effective_locked(ann):
                return
            ann.geometry = self._drag_geometry(ctx.image, image_point)
        elif self.state == EditState.DRAWING_BOX:
            self.box_draft = BoxGeometry.from_corners(
                self.box_anchor.x(), self.box_anchor.y(), image_point.x(), image_point.y()
            )
        elif self.state == EditState.DRAWING_POLYGON:
            self.polygon_hover = image_point

    def pointer_up(
        self,
        ctx: EditContext,
        canvas_point: Optional[QPointF] = None
    ) -> Optional[Command]:
        """
        Finish a drag or a box draw.

        Args:
            ctx: Edit context
            canvas_point: Release position; updates the session first if given

        Returns:
            The committed command, or None if nothing was committed
        """
        if canvas_point is not None and self.state in (EditState.DRAGGING, EditState.DRAWING_BOX):
            self.pointer_move(ctx, canvas_point)

        if self.state == EditState.DRAGGING:
            return self._finish_drag(ctx)
        if self.state == EditState.DRAWING_BOX:
            return self._finish_box(ctx)
        return None

    def finish_polygon(self, ctx: EditContext) -> Optional[Command]:
        """Close the polygon being drawn, or discard it if it has fewer than 3 points."""
        if self.state != EditState.DRAWING_POLYGON:
            return None
        return self._commit_polygon(ctx)

    def cancel(self, ctx: Optional[EditContext] = None) -> None:
        """
        Drop the active session without committing.

        A drag restores the live annotation from its start snapshot.
        """
        if self.state == EditState.DRAGGING and ctx is not None:
            ann = ctx.image.find_annotation(self.drag.annotation_id)
            if ann is not None:
                ann.restore(self.drag.before)
        if self.state != EditState.IDLE:
            logger.debug(f"Cancelled {self.state.value} session")
        self._reset_session()

    def select(self, annotation_id: Optional[str]) -> None:
        self.selected_id = annotation_id

    # === Session helpers ===

    def _drag_geometry(self, image: ImageRecord, point: QPointF):
        drag = self.drag
        base = drag.before.geometry
        w, h = image.width, image.height

        if drag.kind == HitKind.BOX_MOVE:
            return apply_box_move(base, drag.anchor, point, w, h)
        if drag.kind == HitKind.BOX_RESIZE:
            return apply_box_resize(base, drag.handle, point, w, h)
        if drag.kind == HitKind.POLYGON_VERTEX:
            return apply_polygon_vertex(base, drag.vertex_index, point, w, h)
        if drag.kind == HitKind.POLYGON_MOVE:
            return apply_polygon_move(base, drag.base_bounds, drag.anchor, point, w, h)
        raise ValueError(f"Unknown drag kind: {drag.kind}")

    def _finish_drag(self, ctx: EditContext) -> Optional[Command]:
        drag = self.drag
        self._reset_session()

        ann = ctx.image.find_annotation(drag.annotation_id)
        if ann is None:
            return None

        after = ann.snapshot()
        if after == drag.before:
            return None

        command = ReplaceAnnotationCommand(
            ctx.image, drag.before, after, DRAG_DESCRIPTIONS[drag.kind]
        )
        self.history.commit(command)
        return command

    def _finish_box(self, ctx: EditContext) -> Optional[Command]:
        draft = normalize_box(self.box_draft, ctx.image.width, ctx.image.height)
        self._reset_session()

        if draft.w < MIN_BBOX_SIZE_IMG or draft.h < MIN_BBOX_SIZE_IMG:
            logger.debug(f"Discarded box below minimum size: {draft}")
            return None

        annotation = Annotation.box(
            draft,
            color=ctx.document.active_color,
            label_id=ctx.document.active_label_id,
        )
        return self._commit_new(ctx, annotation)

    def _polygon_click(self, ctx: EditContext, image_point: QPointF, canvas_point: QPointF) -> None:
        first = self.polygon_points[0]
        first_canvas = ctx.view.image_to_canvas(first.x(), first.y())
        distance = math.hypot(
            canvas_point.x() - first_canvas.x(), canvas_point.y() - first_canvas.y()
        )

        if len(self.polygon_points) >= 3 and distance <= CLOSE_THRESHOLD_PX:
            self._commit_polygon(ctx)
            return

        self.polygon_points.append(image_point)

    def _commit_polygon(self, ctx: EditContext) -> Optional[Command]:
        points = list(self.polygon_points)
        self._reset_session()

        if len(points) < 3:
            logger.debug(f"Discarded polygon with {len(points)} points")
            return None

        annotation = Annotation.polygon(
            points,
            color=ctx.document.active_color,
            label_id=ctx.document.active_label_id,
        )
        return self._commit_new(ctx, annotation)

    def _commit_new(self, ctx: EditContext, annotation: Annotation) -> Command:
        command = AddAnnotationCommand(ctx.image, annotation)
        self.history.commit(command)
        self.selected_id = annotation.id
        return command
