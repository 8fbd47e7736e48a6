"""Tests for core models."""

import pytest
from PyQt6.QtCore import QPointF

from region_annotator.core.models import (
    DEFAULT_COLOR,
    Annotation,
    AnnotationDocument,
    BoxGeometry,
    ImageRecord,
    Label,
    PolygonGeometry,
    ShapeType,
    clamp,
    new_id,
)


class TestHelpers:
    """Tests for module-level helpers."""

    def test_new_id_is_short_hex(self):
        """Identifiers are 12 hex characters and differ between calls."""
        first, second = new_id(), new_id()
        assert len(first) == 12
        int(first, 16)
        assert first != second

    def test_clamp_inside_range(self):
        assert clamp(5, 0, 10) == 5
        assert clamp(-1, 0, 10) == 0
        assert clamp(11, 0, 10) == 10

    def test_clamp_inverted_range_prefers_upper_bound(self):
        """When low > high the upper bound wins."""
        assert clamp(0, 5, 2) == 2


class TestBoxGeometry:
    """Tests for BoxGeometry."""

    def test_from_corners_normalizes(self):
        """Corners in any order give a positive size."""
        box = BoxGeometry.from_corners(100, 60, 10, 10)

        assert box == BoxGeometry(10, 10, 90, 50)
        assert box.x2 == 100
        assert box.y2 == 60

    def test_contains_edges(self):
        box = BoxGeometry(10, 10, 20, 20)

        assert box.contains(QPointF(10, 10))
        assert box.contains(QPointF(30, 30))
        assert not box.contains(QPointF(30.5, 15))

    def test_translated_keeps_size(self):
        box = BoxGeometry(10, 10, 20, 30).translated(5, -5)

        assert box == BoxGeometry(15, 5, 20, 30)

    def test_is_valid(self):
        assert BoxGeometry(0, 0, 3, 3).is_valid(100, 100)
        assert not BoxGeometry(0, 0, 2, 10).is_valid(100, 100)
        assert not BoxGeometry(90, 0, 20, 10).is_valid(100, 100)


class TestPolygonGeometry:
    """Tests for PolygonGeometry."""

    def test_closing_duplicate_is_dropped(self):
        """A trailing copy of the first point is not kept."""
        polygon = PolygonGeometry((QPointF(0, 0), QPointF(10, 0), QPointF(10, 10), QPointF(0, 0)))

        assert len(polygon) == 3

    def test_points_are_copied(self):
        """Mutating the source point does not leak into the geometry."""
        point = QPointF(1, 1)
        polygon = PolygonGeometry((point, QPointF(5, 1), QPointF(3, 4)))
        point.setX(99)

        assert polygon.points[0].x() == 1

    def test_bounds(self):
        polygon = PolygonGeometry((QPointF(5, 20), QPointF(40, 10), QPointF(25, 35)))

        assert polygon.bounds() == (5, 10, 40, 35)

    def test_with_point_replaces_one_vertex(self):
        polygon = PolygonGeometry((QPointF(0, 0), QPointF(10, 0), QPointF(10, 10)))
        moved = polygon.with_point(1, QPointF(20, 5))

        assert moved.points[1] == QPointF(20, 5)
        assert moved.points[0] == polygon.points[0]
        assert polygon.points[1] == QPointF(10, 0)

    def test_translated(self):
        polygon = PolygonGeometry((QPointF(0, 0), QPointF(10, 0), QPointF(10, 10)))
        moved = polygon.translated(3, 4)

        assert [(p.x(), p.y()) for p in moved.points] == [(3, 4), (13, 4), (13, 14)]

    def test_is_valid(self):
        triangle = PolygonGeometry((QPointF(0, 0), QPointF(10, 0), QPointF(10, 10)))
        segment = PolygonGeometry((QPointF(0, 0), QPointF(10, 0)))

        assert triangle.is_valid(10, 10)
        assert not triangle.is_valid(5, 5)
        assert not segment.is_valid(10, 10)


class TestAnnotation:
    """Tests for the Annotation class."""

    def test_create_box(self):
        """Test creating a bounding box annotation."""
        ann = Annotation.box(BoxGeometry(1, 2, 3, 4))

        assert ann.type == ShapeType.BOX
        assert ann.color == DEFAULT_COLOR
        assert ann.label_id is None
        assert ann.hidden is False
        assert ann.locked is False
        assert len(ann.id) == 12

    def test_create_polygon(self):
        """Test creating a polygon annotation."""
        ann = Annotation.polygon([QPointF(0, 0), QPointF(5, 0), QPointF(5, 5)], label_id="x")

        assert ann.type == ShapeType.POLYGON
        assert len(ann.geometry) == 3
        assert ann.label_id == "x"

    def test_type_must_match_geometry(self):
        """A box tag with polygon geometry is rejected."""
        polygon = PolygonGeometry((QPointF(0, 0), QPointF(5, 0), QPointF(5, 5)))

        with pytest.raises(ValueError):
            Annotation(type=ShapeType.BOX, geometry=polygon)

    def test_type_accepts_string(self):
        ann = Annotation(type="box", geometry=BoxGeometry(0, 0, 5, 5))

        assert ann.type is ShapeType.BOX

    def test_snapshot_is_independent(self):
        """Changing the live annotation leaves the snapshot untouched."""
        ann = Annotation.box(BoxGeometry(0, 0, 5, 5))
        snap = ann.snapshot()

        ann.geometry = BoxGeometry(10, 10, 5, 5)
        ann.hidden = True

        assert snap.geometry == BoxGeometry(0, 0, 5, 5)
        assert snap.hidden is False
        assert snap.id == ann.id

    def test_restore(self):
        ann = Annotation.box(BoxGeometry(0, 0, 5, 5))
        snap = ann.snapshot()
        ann.geometry = BoxGeometry(1, 1, 5, 5)
        ann.locked = True

        ann.restore(snap)

        assert ann == snap


class TestImageRecord:
    """Tests for ImageRecord."""

    def test_key(self, image):
        assert image.key == ("street.jpg", 200, 150)

    def test_lookup(self, image, box_annotation, triangle_annotation):
        image.annotations.extend([box_annotation, triangle_annotation])

        assert image.index_of("ann-tri") == 1
        assert image.index_of("missing") == -1
        assert image.find_annotation("ann-box") is box_annotation
        assert image.find_annotation(None) is None

    def test_counts(self, image, box_annotation, triangle_annotation):
        image.annotations.extend([box_annotation, triangle_annotation])

        assert image.box_count == 1
        assert image.polygon_count == 1


class TestAnnotationDocument:
    """Tests for AnnotationDocument derived queries."""

    def test_label_of_resolves_index(self, document, box_annotation):
        ref = document.label_of(box_annotation)

        assert ref.resolved
        assert ref.label.name == "truck"
        assert ref.index == 2

    def test_label_of_stale_identifier(self, document):
        """A deleted label resolves to an explicit unresolved result."""
        ann = Annotation.box(BoxGeometry(0, 0, 5, 5), label_id="gone")
        ref = document.label_of(ann)

        assert not ref.resolved
        assert ref.index is None

    def test_label_of_unlabeled(self, document):
        ann = Annotation.box(BoxGeometry(0, 0, 5, 5))

        assert not document.label_of(ann).resolved

    def test_effective_hidden(self, document, box_annotation):
        assert not document.effective_hidden(box_annotation)

        document.label_hidden.add("lbl-truck")
        assert document.effective_hidden(box_annotation)

        document.label_hidden.clear()
        box_annotation.hidden = True
        assert document.effective_hidden(box_annotation)

    def test_effective_locked(self, document, box_annotation):
        assert not document.effective_locked(box_annotation)

        document.label_locked.add("lbl-truck")
        assert document.effective_locked(box_annotation)

    def test_active_color(self, document):
        assert document.active_color == DEFAULT_COLOR

        document.active_label_id = "lbl-bus"
        assert document.active_label.name == "bus"
        assert document.active_color == "#22c55e"

    def test_find(self, document, image):
        assert document.find_image(image.id) is image
        assert document.find_image("nope") is None
        assert document.find_label("lbl-car").name == "car"
        assert document.find_label(None) is None

    def test_label_is_frozen(self):
        label = Label(name="car")

        with pytest.raises(Exception):
            label.name = "bus"

    def test_empty_document(self):
        document = AnnotationDocument()

        assert document.images == []
        assert document.active_label is None
        assert ImageRecord(name="a", width=1, height=1).annotations == []
