"""Data models for Region Annotator images, labels and annotations."""

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Set, Tuple, Union

from PyQt6.QtCore import QPointF
from PyQt6.QtGui import QImage

logger = logging.getLogger(__name__)

# View limits
MIN_SCALE = 0.05
MAX_SCALE = 30.0
ZOOM_STEP = 1.12
FIT_MARGIN = 0.98

# Interaction tolerances, in canvas pixels
CLOSE_THRESHOLD_PX = 12
VERTEX_HIT_RADIUS_PX = 8
HANDLE_SIZE_PX = 10

# Smallest box edge, in image pixels
MIN_BBOX_SIZE_IMG = 3

DEFAULT_COLOR = "#fb923c"


def new_id() -> str:
    """Generate a short random identifier."""
    return uuid.uuid4().hex[:12]


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]; the upper bound wins when low > high."""
    return min(high, max(low, value))


class ShapeType(str, Enum):
    """Type of annotation shape."""

    BOX = "box"
    POLYGON = "polygon"


@dataclass(frozen=True)
class BoxGeometry:
    """Axis-aligned rectangle in image coordinates."""

    x: float
    y: float
    w: float
    h: float

    @property
    def x2(self) -> float:
        return self.x + self.w

    @property
    def y2(self) -> float:
        return self.y + self.h

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> BoxGeometry:
        """Build a box from two opposite corners in any order."""
        return cls(
            x=min(x1, x2),
            y=min(y1, y2),
            w=abs(x2 - x1),
            h=abs(y2 - y1),
        )

    def contains(self, point: QPointF) -> bool:
        """Check if a point lies inside the box, edges included."""
        return self.x <= point.x() <= self.x2 and self.y <= point.y() <= self.y2

    def translated(self, dx: float, dy: float) -> BoxGeometry:
        return dataclasses.replace(self, x=self.x + dx, y=self.y + dy)

    def is_valid(self, img_width: float, img_height: float) -> bool:
        """Check the minimum size and image bounds invariants."""
        return (
            self.w >= MIN_BBOX_SIZE_IMG and
            self.h >= MIN_BBOX_SIZE_IMG and
            self.x >= 0 and self.y >= 0 and
            self.x2 <= img_width and self.y2 <= img_height
        )


@dataclass(frozen=True)
class PolygonGeometry:
    """
    Simple polygon in image coordinates.

    Closure is implicit: a trailing copy of the first point is dropped.
    """

    points: Tuple[QPointF, ...]

    def __post_init__(self) -> None:
        points = [QPointF(p) for p in self.points]
        if len(points) > 3 and points[0] == points[-1]:
            points.pop()
        object.__setattr__(self, "points", tuple(points))

    def __len__(self) -> int:
        return len(self.points)

    def bounds(self) -> Tuple[float, float, float, float]:
        """
        Get the bounding box of the point set.

        Returns:
            Tuple of (min_x, min_y, max_x, max_y)
        """
        if not self.points:
            return (0.0, 0.0, 0.0, 0.0)

        xs = [p.x() for p in self.points]
        ys = [p.y() for p in self.points]
        return (min(xs), min(ys), max(xs), max(ys))

    def with_point(self, index: int, point: QPointF) -> PolygonGeometry:
        """Return a copy with a single vertex replaced."""
        points = list(self.points)
        points[index] = QPointF(point)
        return PolygonGeometry(tuple(points))

    def translated(self, dx: float, dy: float) -> PolygonGeometry:
        return PolygonGeometry(tuple(QPointF(p.x() + dx, p.y() + dy) for p in self.points))

    def is_valid(self, img_width: float, img_height: float) -> bool:
        """Check the vertex count and image bounds invariants."""
        return len(self.points) >= 3 and all(
            0 <= p.x() <= img_width and 0 <= p.y() <= img_height
            for p in self.points
        )


Geometry = Union[BoxGeometry, PolygonGeometry]

_GEOMETRY_TYPES = {
    ShapeType.BOX: BoxGeometry,
    ShapeType.POLYGON: PolygonGeometry,
}


@dataclass(frozen=True)
class Label:
    """A class name with its display color."""

    name: str
    color: str = DEFAULT_COLOR
    id: str = field(default_factory=new_id)


@dataclass
class Annotation:
    """
    A labeled box or polygon region attached to one image.

    The label is referenced by identifier only; deleting the label
    leaves the annotation in place with an unresolved reference.
    """

    type: ShapeType
    geometry: Geometry
    color: str = DEFAULT_COLOR
    label_id: Optional[str] = None
    hidden: bool = False
    locked: bool = False
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.type = ShapeType(self.type)
        expected = _GEOMETRY_TYPES[self.type]
        if not isinstance(self.geometry, expected):
            raise ValueError(
                f"{self.type.value} annotation needs {expected.__name__}, "
                f"got {type(self.geometry).__name__}"
            )

    @classmethod
    def box(cls, geometry: BoxGeometry, **kwargs) -> Annotation:
        return cls(type=ShapeType.BOX, geometry=geometry, **kwargs)

    @classmethod
    def polygon(cls, points: Iterable[QPointF], **kwargs) -> Annotation:
        return cls(type=ShapeType.POLYGON, geometry=PolygonGeometry(tuple(points)), **kwargs)

    def snapshot(self) -> Annotation:
        """Copy the annotation; geometry values are immutable and shared."""
        return dataclasses.replace(self)

    def restore(self, snapshot: Annotation) -> None:
        """Copy every field of a snapshot into this instance."""
        for f in dataclasses.fields(self):
            setattr(self, f.name, getattr(snapshot, f.name))


@dataclass
class ImageRecord:
    """
    A decoded image and the ordered annotations drawn on it.

    The annotation order is the paint order: later entries are on top.
    """

    name: str
    width: int
    height: int
    image: Optional[QImage] = None
    source_path: Optional[str] = None
    annotations: List[Annotation] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    @property
    def key(self) -> Tuple[str, int, int]:
        """Persistence key: a change in dimensions invalidates a saved match."""
        return (self.name, self.width, self.height)

    def index_of(self, annotation_id: str) -> int:
        """Get the list index of an annotation, or -1 if absent."""
        for i, ann in enumerate(self.annotations):
            if ann.id == annotation_id:
                return i
        return -1

    def find_annotation(self, annotation_id: Optional[str]) -> Optional[Annotation]:
        if annotation_id is None:
            return None
        index = self.index_of(annotation_id)
        return self.annotations[index] if index >= 0 else None

    @property
    def box_count(self) -> int:
        """Count of bounding box annotations."""
        return sum(1 for a in self.annotations if a.type == ShapeType.BOX)

    @property
    def polygon_count(self) -> int:
        """Count of polygon annotations."""
        return sum(1 for a in self.annotations if a.type == ShapeType.POLYGON)


@dataclass(frozen=True)
class LabelRef:
    """Result of resolving an annotation's label reference."""

    label: Optional[Label] = None
    index: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return self.label is not None


UNRESOLVED = LabelRef()


@dataclass
class AnnotationDocument:
    """
    All images, labels and label-level flags of a session.

    Holds pure data plus derived queries. Structural changes are made
    by commands committed through the undo/redo manager.
    """

    images: List[ImageRecord] = field(default_factory=list)
    labels: List[Label] = field(default_factory=list)
    label_hidden: Set[str] = field(default_factory=set)
    label_locked: Set[str] = field(default_factory=set)
    active_label_id: Optional[str] = None

    def find_image(self, image_id: Optional[str]) -> Optional[ImageRecord]:
        return next((img for img in self.images if img.id == image_id), None)

    def find_label(self, label_id: Optional[str]) -> Optional[Label]:
        if not label_id:
            return None
        return next((lbl for lbl in self.labels if lbl.id == label_id), None)

    def label_index(self, label_id: Optional[str]) -> Optional[int]:
        """Get the class index of a label, or None if it no longer exists."""
        if not label_id:
            return None
        for i, lbl in enumerate(self.labels):
            if lbl.id == label_id:
                return i
        return None

    def label_of(self, annotation: Annotation) -> LabelRef:
        """
        Resolve the label an annotation refers to.

        Stale identifiers resolve to UNRESOLVED rather than raising.
        """
        index = self.label_index(annotation.label_id)
        if index is None:
            return UNRESOLVED
        return LabelRef(label=self.labels[index], index=index)

    def is_label_hidden(self, label_id: Optional[str]) -> bool:
        return bool(label_id) and label_id in self.label_hidden

    def is_label_locked(self, label_id: Optional[str]) -> bool:
        return bool(label_id) and label_id in self.label_locked

    def effective_hidden(self, annotation: Annotation) -> bool:
        return annotation.hidden or self.is_label_hidden(annotation.label_id)

    def effective_locked(self, annotation: Annotation) -> bool:
        return annotation.locked or self.is_label_locked(annotation.label_id)

    @property
    def active_label(self) -> Optional[Label]:
        return self.find_label(self.active_label_id)

    @property
    def active_color(self) -> str:
        """Color for new shapes: the active label's, or the default."""
        label = self.active_label
        return label.color if label else DEFAULT_COLOR
