"""Tests for session persistence and autosave."""

import json

import pytest
from PyQt6.QtCore import QPointF

from region_annotator.core.models import (
    Annotation, AnnotationDocument, BoxGeometry, ImageRecord, ShapeType
)
from region_annotator.core.session_store import (
    SESSION_VERSION,
    AutosaveScheduler,
    SessionStore,
    annotation_from_dict,
    annotation_to_dict,
    document_to_payload,
)


@pytest.fixture
def session_path(tmp_path):
    return tmp_path / "session.json"


@pytest.fixture
def store(session_path):
    return SessionStore(session_path)


def write_session(path, payload):
    path.write_text(json.dumps(payload))


class TestAnnotationSerialization:
    """Tests for annotation dict conversion."""

    def test_box_fields(self, box_annotation):
        data = annotation_to_dict(box_annotation)

        assert data["type"] == "box"
        assert data["bbox"] == {"x": 20, "y": 30, "w": 60, "h": 40}
        assert data["points"] is None
        assert data["labelId"] == "lbl-truck"

    def test_polygon_from_dict(self):
        ann = annotation_from_dict({
            "id": "p1",
            "type": "polygon",
            "points": [{"x": 0, "y": 0}, {"x": 4, "y": 0}, {"x": 4, "y": 3}],
            "locked": True,
        })

        assert ann.type == ShapeType.POLYGON
        assert ann.geometry.points[2] == QPointF(4, 3)
        assert ann.locked is True
        assert ann.hidden is False

    def test_legacy_type_names(self):
        """Older sessions wrote "bbox" and "poly"."""
        ann = annotation_from_dict({"type": "bbox", "bbox": {"x": 1, "y": 2, "w": 3, "h": 4}})

        assert ann.type == ShapeType.BOX
        assert ann.geometry == BoxGeometry(1, 2, 3, 4)
        assert ann.id

    @pytest.mark.parametrize("data", [
        {"type": "box"},
        {"type": "polygon", "points": [{"x": 0, "y": 0}]},
        {"type": "circle"},
        {"type": "box", "bbox": {"x": 1}},
    ])
    def test_malformed(self, data):
        with pytest.raises((KeyError, ValueError)):
            annotation_from_dict(data)


class TestSessionStore:
    """Tests for SessionStore save and restore."""

    def test_save_and_restore(self, store, document, image, box_annotation, triangle_annotation):
        image.annotations.extend([box_annotation, triangle_annotation])
        document.active_label_id = "lbl-bus"
        document.label_hidden.add("lbl-car")
        document.label_locked.add("lbl-truck")

        assert store.save(document)

        restored = AnnotationDocument()
        fresh_store = SessionStore(store.session_path)
        assert fresh_store.restore(restored)

        assert restored.labels == document.labels
        assert restored.active_label_id == "lbl-bus"
        assert restored.label_hidden == {"lbl-car"}
        assert restored.label_locked == {"lbl-truck"}
        assert restored.images == []
        assert fresh_store.pending_keys == [("street.jpg", 200, 150)]

        reimported = ImageRecord(name="street.jpg", width=200, height=150)
        assert fresh_store.apply_pending(reimported)
        assert reimported.annotations == [box_annotation, triangle_annotation]

    def test_pending_is_consumed(self, store, document, image, box_annotation):
        image.annotations.append(box_annotation)
        store.save(document)
        store.restore(AnnotationDocument())

        assert store.apply_pending(ImageRecord(name="street.jpg", width=200, height=150))
        assert not store.apply_pending(ImageRecord(name="street.jpg", width=200, height=150))

    def test_dimension_mismatch_does_not_apply(self, store, document, image, box_annotation):
        image.annotations.append(box_annotation)
        store.save(document)
        store.restore(AnnotationDocument())

        resized = ImageRecord(name="street.jpg", width=400, height=300)

        assert not store.apply_pending(resized)
        assert resized.annotations == []

    def test_missing_file(self, store):
        assert not store.restore(AnnotationDocument())

    def test_version_mismatch(self, store, session_path):
        write_session(session_path, {"version": SESSION_VERSION + 1, "labels": [
            {"id": "a", "name": "car", "color": "#fff"}
        ]})
        document = AnnotationDocument()

        assert not store.restore(document)
        assert document.labels == []

    def test_corrupt_json(self, store, session_path):
        session_path.write_text("{not json")

        assert not store.restore(AnnotationDocument())

    def test_malformed_annotation_is_skipped(self, store, session_path):
        write_session(session_path, {
            "version": SESSION_VERSION,
            "labels": [{"id": "a", "name": "car"}, {"name": "no id"}],
            "images": [{
                "name": "a.png", "w": 10, "h": 10,
                "annotations": [
                    {"type": "box"},
                    {"type": "bbox", "bbox": {"x": 1, "y": 1, "w": 5, "h": 5}, "labelId": "a"},
                ],
            }],
        })
        document = AnnotationDocument()

        assert store.restore(document)
        assert [lbl.name for lbl in document.labels] == ["car"]

        image = ImageRecord(name="a.png", width=10, height=10)
        store.apply_pending(image)
        assert len(image.annotations) == 1
        assert image.annotations[0].label_id == "a"

    def test_save_failure_returns_false(self, tmp_path, document):
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = SessionStore(blocker / "session.json")

        assert store.save(document) is False

    def test_clear_deletes_file(self, store, session_path, document, image, box_annotation):
        image.annotations.append(box_annotation)
        store.save(document)
        store.restore(AnnotationDocument())

        store.clear()

        assert not session_path.exists()
        assert store.pending_keys == []
        store.clear()

    def test_payload_shape(self, document, image, box_annotation):
        image.annotations.append(box_annotation)
        payload = document_to_payload(document)

        assert payload["version"] == SESSION_VERSION
        assert "savedAt" in payload
        assert payload["images"][0]["w"] == 200
        assert payload["images"][0]["annotations"][0]["id"] == "ann-box"
        json.dumps(payload)


class TestAutosaveScheduler:
    """Tests for the debounced autosave."""

    def test_schedule_is_pending_until_flushed(self, qapp, store, document):
        scheduler = AutosaveScheduler(store, lambda: document, delay_ms=10000)
        results = []
        scheduler.saved.connect(results.append)

        scheduler.schedule()
        scheduler.schedule()

        assert scheduler.pending
        assert not store.session_path.exists()

        assert scheduler.flush()
        assert not scheduler.pending
        assert results == [True]
        assert store.session_path.exists()

    def test_flush_reads_current_document(self, qapp, store, document):
        current = {"doc": document}
        scheduler = AutosaveScheduler(store, lambda: current["doc"])
        replacement = AnnotationDocument(images=[ImageRecord(name="x.png", width=4, height=4)])
        current["doc"] = replacement

        scheduler.flush()

        saved = json.loads(store.session_path.read_text())
        assert [img["name"] for img in saved["images"]] == ["x.png"]

    def test_timer_fires(self, qapp, store, document):
        from PyQt6.QtCore import QEventLoop, QTimer

        scheduler = AutosaveScheduler(store, lambda: document, delay_ms=5)
        loop = QEventLoop()
        scheduler.saved.connect(lambda ok: loop.quit())
        QTimer.singleShot(2000, loop.quit)

        scheduler.schedule()
        loop.exec()

        assert store.session_path.exists()
