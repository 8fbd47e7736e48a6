"""Resolve canvas clicks into edit targets."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from PyQt6.QtCore import QPointF

from .models import (
    HANDLE_SIZE_PX, VERTEX_HIT_RADIUS_PX,
    Annotation, AnnotationDocument, BoxGeometry, ImageRecord, PolygonGeometry
)
from .view_transform import ViewTransform

logger = logging.getLogger(__name__)

# Box handles, clockwise from the top-left corner
HANDLES = ("nw", "n", "ne", "e", "se", "s", "sw", "w")

# Guards the ray-casting division on horizontal edges
_EDGE_EPSILON = 1e-9


class HitKind(str, Enum):
    """What a click on an annotation would edit."""

    BOX_RESIZE = "box-resize"
    BOX_MOVE = "box-move"
    POLYGON_VERTEX = "polygon-vertex"
    POLYGON_MOVE = "polygon-move"


@dataclass(frozen=True)
class HitResult:
    """The most specific interactive target under a canvas point."""

    annotation_id: str
    kind: HitKind
    handle: Optional[str] = None
    vertex_index: Optional[int] = None


def point_in_box(point: QPointF, box: BoxGeometry) -> bool:
    return box.contains(point)


def point_in_polygon(point: QPointF, vertices: Sequence[QPointF]) -> bool:
    """Even-odd ray casting test."""
    inside = False
    px, py = point.x(), point.y()
    j = len(vertices) - 1
    for i in range(len(vertices)):
        xi, yi = vertices[i].x(), vertices[i].y()
        xj, yj = vertices[j].x(), vertices[j].y()
        if (yi > py) != (yj > py):
            dy = (yj - yi) or _EDGE_EPSILON
            if px < (xj - xi) * (py - yi) / dy + xi:
                inside = not inside
        j = i
    return inside


def box_handle_points(box: BoxGeometry, view: ViewTransform) -> List[Tuple[str, QPointF]]:
    """
    Get the canvas positions of the eight resize handles.

    Returns:
        List of (handle, canvas point) in HANDLES order
    """
    x1, y1, x2, y2 = box.x, box.y, box.x2, box.y2
    xm = (x1 + x2) / 2
    ym = (y1 + y2) / 2
    positions = {
        "nw": (x1, y1), "n": (xm, y1), "ne": (x2, y1), "e": (x2, ym),
        "se": (x2, y2), "s": (xm, y2), "sw": (x1, y2), "w": (x1, ym),
    }
    return [(h, view.image_to_canvas(*positions[h])) for h in HANDLES]


def hit_box_handle(box: BoxGeometry, view: ViewTransform, canvas_point: QPointF) -> Optional[str]:
    """Find the first handle whose square contains the canvas point."""
    for handle, hp in box_handle_points(box, view):
        if (abs(canvas_point.x() - hp.x()) <= HANDLE_SIZE_PX and
                abs(canvas_point.y() - hp.y()) <= HANDLE_SIZE_PX):
            return handle
    return None


def hit_polygon_vertex(
    polygon: PolygonGeometry,
    image_point: QPointF,
    tolerance: float
) -> Optional[int]:
    for i, p in enumerate(polygon.points):
        if math.hypot(image_point.x() - p.x(), image_point.y() - p.y()) <= tolerance:
            return i
    return None


class HitTester:
    """
    Classifies a canvas point against the visible annotations of an image.

    Annotations are tested from the top of the paint order down, and the
    first match wins. Per annotation the priority is: vertex or handle of
    the selected shape, then the shape body.
    """

    def __init__(self, document: AnnotationDocument) -> None:
        self.document = document

    def hit_test(
        self,
        image: ImageRecord,
        view: ViewTransform,
        canvas_point: QPointF,
        selected_id: Optional[str] = None
    ) -> Optional[HitResult]:
        """
        Find the target under a canvas point.

        Args:
            image: Image whose annotations are tested
            view: Current view transform
            canvas_point: Pointer position in canvas pixels
            selected_id: Identifier of the selected annotation, if any

        Returns:
            HitResult, or None when nothing is hit
        """
        image_point = view.canvas_to_image(canvas_point.x(), canvas_point.y())

        for ann in reversed(image.annotations):
            if self.document.effective_hidden(ann):
                continue

            result = self._hit_annotation(
                ann, view, canvas_point, image_point, ann.id == selected_id
            )
            if result is not None:
                return result

        return None

    def _hit_annotation(
        self,
        ann: Annotation,
        view: ViewTransform,
        canvas_point: QPointF,
        image_point: QPointF,
        is_selected: bool
    ) -> Optional[HitResult]:
        geometry = ann.geometry

        if isinstance(geometry, PolygonGeometry):
            if is_selected:
                tolerance = view.canvas_to_image_length(VERTEX_HIT_RADIUS_PX)
                index = hit_polygon_vertex(geometry, image_point, tolerance)
                if index is not None:
                    return HitResult(ann.id, HitKind.POLYGON_VERTEX, vertex_index=index)
            if len(geometry) and point_in_polygon(image_point, geometry.points):
                return HitResult(ann.id, HitKind.POLYGON_MOVE)
            return None

        if isinstance(geometry, BoxGeometry):
            if is_selected:
                handle = hit_box_handle(geometry, view, canvas_point)
                if handle:
                    return HitResult(ann.id, HitKind.BOX_RESIZE, handle=handle)
            if point_in_box(image_point, geometry):
                return HitResult(ann.id, HitKind.BOX_MOVE)
            return None

        raise TypeError(f"Unknown geometry: {type(geometry).__name__}")
