"""Session persistence with debounced autosave."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from PyQt6.QtCore import QObject, QPointF, QTimer, pyqtSignal

from .models import (
    DEFAULT_COLOR, Annotation, AnnotationDocument, BoxGeometry, ImageRecord, Label,
    PolygonGeometry, ShapeType, new_id
)

logger = logging.getLogger(__name__)

SESSION_VERSION = 1
DEFAULT_SESSION_PATH = Path("session.json")

ImageKey = Tuple[str, int, int]

# Type names written by older sessions
_TYPE_ALIASES = {"bbox": "box", "poly": "polygon"}


def annotation_to_dict(annotation: Annotation) -> Dict[str, Any]:
    """Serialize an annotation to a JSON-compatible dict."""
    geometry = annotation.geometry
    bbox = None
    points = None
    if isinstance(geometry, BoxGeometry):
        bbox = {"x": geometry.x, "y": geometry.y, "w": geometry.w, "h": geometry.h}
    else:
        points = [{"x": p.x(), "y": p.y()} for p in geometry.points]

    return {
        "id": annotation.id,
        "type": annotation.type.value,
        "color": annotation.color,
        "labelId": annotation.label_id,
        "bbox": bbox,
        "points": points,
        "hidden": annotation.hidden,
        "locked": annotation.locked,
    }


def annotation_from_dict(data: Dict[str, Any]) -> Annotation:
    """
    Deserialize an annotation.

    Raises:
        ValueError: If the type or geometry is missing or malformed
    """
    type_name = _TYPE_ALIASES.get(data.get("type"), data.get("type"))
    shape_type = ShapeType(type_name)

    if shape_type == ShapeType.BOX:
        bbox = data.get("bbox")
        if not bbox:
            raise ValueError("box annotation without bbox")
        geometry = BoxGeometry(
            float(bbox["x"]), float(bbox["y"]), float(bbox["w"]), float(bbox["h"])
        )
    else:
        points = data.get("points") or []
        if len(points) < 3:
            raise ValueError(f"polygon annotation with {len(points)} points")
        geometry = PolygonGeometry(tuple(QPointF(float(p["x"]), float(p["y"])) for p in points))

    return Annotation(
        type=shape_type,
        geometry=geometry,
        color=data.get("color") or DEFAULT_COLOR,
        label_id=data.get("labelId") or None,
        hidden=bool(data.get("hidden")),
        locked=bool(data.get("locked")),
        id=data.get("id") or new_id(),
    )


def document_to_payload(document: AnnotationDocument) -> Dict[str, Any]:
    """Build the versioned session payload."""
    return {
        "version": SESSION_VERSION,
        "savedAt": datetime.now(timezone.utc).isoformat(),
        "labels": [
            {"id": lbl.id, "name": lbl.name, "color": lbl.color}
            for lbl in document.labels
        ],
        "activeLabelId": document.active_label_id,
        "labelHidden": sorted(document.label_hidden),
        "labelLocked": sorted(document.label_locked),
        "images": [
            {
                "name": img.name,
                "w": img.width,
                "h": img.height,
                "annotations": [annotation_to_dict(a) for a in img.annotations],
            }
            for img in document.images
        ],
    }


class SessionStore:
    """
    Saves and restores labels and annotations as JSON.

    Image pixels are not stored. Restored annotations wait in a pending
    table keyed by (name, width, height) until an image with the same
    key is imported.
    """

    def __init__(self, session_path: Path = DEFAULT_SESSION_PATH) -> None:
        """
        Initialize the session store.

        Args:
            session_path: Path to the session JSON file
        """
        self.session_path = Path(session_path)
        self._pending: Dict[ImageKey, List[Annotation]] = {}

    @property
    def pending_keys(self) -> List[ImageKey]:
        return list(self._pending)

    def save(self, document: AnnotationDocument) -> bool:
        """
        Write the session file.

        Returns:
            True if save was successful
        """
        try:
            payload = document_to_payload(document)
            self.session_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.session_path, "w") as f:
                json.dump(payload, f)
            logger.debug(f"Saved session to {self.session_path}")
            return True
        except Exception as e:
            logger.warning(f"Auto-save failed: {e}")
            return False

    def restore(self, document: AnnotationDocument) -> bool:
        """
        Load labels and label flags into a document and queue annotations.

        Returns:
            True if a session was restored
        """
        if not self.session_path.exists():
            logger.info(f"No session at {self.session_path}")
            return False

        try:
            with open(self.session_path, "r") as f:
                saved = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Restore failed: {e}")
            return False

        if not isinstance(saved, dict) or saved.get("version") != SESSION_VERSION:
            logger.warning(f"Ignoring session with unsupported version in {self.session_path}")
            return False

        document.labels = [
            Label(name=lbl["name"], color=lbl.get("color") or DEFAULT_COLOR, id=lbl["id"])
            for lbl in saved.get("labels") or []
            if isinstance(lbl, dict) and lbl.get("id") and lbl.get("name")
        ]
        document.active_label_id = saved.get("activeLabelId") or None
        document.label_hidden = set(saved.get("labelHidden") or [])
        document.label_locked = set(saved.get("labelLocked") or [])

        self._pending.clear()
        for record in saved.get("images") or []:
            if not isinstance(record, dict):
                continue
            name, width, height = record.get("name"), record.get("w"), record.get("h")
            if not name or not width or not height:
                continue

            annotations = []
            for item in record.get("annotations") or []:
                try:
                    annotations.append(annotation_from_dict(item))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping saved annotation on {name}: {e}")
            self._pending[(name, int(width), int(height))] = annotations

        logger.info(
            f"Restored {len(document.labels)} labels and "
            f"{len(self._pending)} image records from {self.session_path}"
        )
        return True

    def apply_pending(self, image: ImageRecord) -> bool:
        """
        Attach saved annotations to a newly imported image.

        The pending record is consumed; a record saved for the same name
        with other dimensions does not match.

        Returns:
            True if annotations were applied
        """
        pending = self._pending.pop(image.key, None)
        if pending is None:
            return False
        image.annotations = [a.snapshot() for a in pending]
        logger.info(f"Applied {len(pending)} saved annotations to {image.name}")
        return True

    def clear(self) -> None:
        """Forget pending records and delete the session file."""
        self._pending.clear()
        try:
            self.session_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete session file: {e}")


class AutosaveScheduler(QObject):
    """
    Debounces session writes.

    Every schedule() restarts a single-shot timer; the store is written
    once the timer fires.
    """

    saved = pyqtSignal(bool)

    def __init__(
        self,
        store: SessionStore,
        document_provider: Callable[[], AnnotationDocument],
        delay_ms: int = 250,
        parent: Optional[QObject] = None
    ) -> None:
        super().__init__(parent)
        self.store = store
        self._document_provider = document_provider
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(delay_ms)
        self._timer.timeout.connect(self.flush)

    @property
    def pending(self) -> bool:
        return self._timer.isActive()

    def schedule(self) -> None:
        self._timer.start()

    def flush(self) -> bool:
        """Write immediately, cancelling any pending timer."""
        self._timer.stop()
        ok = self.store.save(self._document_provider())
        self.saved.emit(ok)
        return ok
